"""Nominatim search: place query to bounding box."""

from __future__ import annotations

from dataclasses import dataclass

from facility_catalog.common.errors import StageError
from facility_catalog.common.http import HttpClient


@dataclass(frozen=True)
class BoundingBox:
    south: float
    west: float
    north: float
    east: float

    def to_dict(self) -> dict[str, float]:
        return {"south": self.south, "west": self.west, "north": self.north, "east": self.east}


def geocode_to_bbox(client: HttpClient, endpoint: str, query: str) -> BoundingBox:
    payload = client.get_json(
        endpoint,
        source_type="nominatim",
        params={"format": "json", "limit": 1, "q": query},
    )
    if not isinstance(payload, list) or not payload:
        raise StageError(f"Nominatim returned no results for: {query}")

    # boundingbox is [south, north, west, east] as strings.
    box = payload[0].get("boundingbox") if isinstance(payload[0], dict) else None
    try:
        south, north, west, east = (float(value) for value in box)
    except (TypeError, ValueError) as exc:
        raise StageError(f"Nominatim returned no bounding box for: {query}") from exc
    return BoundingBox(south=south, west=west, north=north, east=east)
