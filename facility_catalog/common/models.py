"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True, order=True)
class PlaceRef:
    place_group: str
    place: str

    def to_dict(self) -> dict[str, str]:
        return {"place_group": self.place_group, "place": self.place}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "PlaceRef":
        return cls(place_group=str(payload["place_group"]), place=str(payload["place"]))


@dataclass(frozen=True)
class NormalizedRecord:
    name: str
    type: str
    address: str
    city: str
    state: str
    lat: float | None
    lng: float | None
    website: str
    source: str
    source_url: str
    place_group: str = ""
    place: str = ""
    source_file: str = ""
    row_index: int = 0

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CanonicalFacility:
    id: str
    slug: str
    name: str
    type: str
    address: str
    lat: float | None
    lng: float | None
    website: str | None
    external_reference_url: str | None
    appears_in: set[PlaceRef] = field(default_factory=set)

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "type": self.type,
            "address": self.address,
            "lat": self.lat,
            "lng": self.lng,
            "website": self.website,
            "external_reference_url": self.external_reference_url,
            "appears_in": [ref.to_dict() for ref in sorted(self.appears_in)],
        }

    def summary(self) -> dict[str, Any]:
        return {
            "facility_id": self.id,
            "name": self.name,
            "type": self.type,
            "address": self.address,
            "lat": self.lat,
            "lng": self.lng,
            "website": self.website,
            "source_url": self.external_reference_url,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CanonicalFacility":
        appears = {
            PlaceRef.from_dict(entry)
            for entry in payload.get("appears_in") or []
            if isinstance(entry, dict) and entry.get("place_group") and entry.get("place")
        }
        return cls(
            id=str(payload["id"]),
            slug=str(payload.get("slug") or payload["id"]),
            name=str(payload.get("name") or ""),
            type=str(payload.get("type") or "other"),
            address=str(payload.get("address") or ""),
            lat=payload.get("lat"),
            lng=payload.get("lng"),
            website=payload.get("website") or None,
            external_reference_url=payload.get("external_reference_url") or None,
            appears_in=appears,
        )


@dataclass(frozen=True)
class PlaceDecision:
    accepted: bool
    name: str | None = None
    slug: str | None = None
    reason: str | None = None
    salvaged: bool = False
    trusted: bool = False
