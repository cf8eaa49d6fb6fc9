"""Fingerprint records and resolve them onto one canonical facility per real site."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

from facility_catalog.common.constants import (
    DEFAULT_FACILITY_NAME,
    FACILITY_ID_PREFIX,
    FINGERPRINT_DECIMALS,
    MANUAL_FACILITY_ID_PREFIX,
    PLACEHOLDER_NAMES,
)
from facility_catalog.common.errors import ContractError
from facility_catalog.common.ids import short_hash
from facility_catalog.common.models import CanonicalFacility, NormalizedRecord, PlaceRef
from facility_catalog.common.text import norm_str, normalise_address, slugify

MIN_ADDRESS_LENGTH = 6
MANUAL_SOURCES = frozenset({"manual"})
_DIGIT_RE = re.compile(r"\d")


@dataclass(frozen=True)
class TypeTaxonomy:
    rules: tuple[tuple[str, tuple[str, ...]], ...]
    default: str = "other"

    @classmethod
    def from_config(cls, cfg: dict) -> "TypeTaxonomy":
        rules = tuple(
            (str(entry["type"]), tuple(str(k).lower() for k in entry["keywords"]))
            for entry in cfg["types"]
        )
        return cls(rules=rules, default=str(cfg["default"]))

    @property
    def known_types(self) -> set[str]:
        return {name for name, _ in self.rules} | {self.default}

    def canonical(self, label: str, name: str = "", fallback: str | None = None) -> str:
        label_text = norm_str(label)
        if label_text.replace(" ", "_") in self.known_types:
            return label_text.replace(" ", "_")
        text = f"{label_text} {norm_str(name)}"
        for canonical_type, keywords in self.rules:
            if any(keyword in text for keyword in keywords):
                return canonical_type
        return fallback or self.default


def _round_coord(value: float | None) -> str:
    if value is None:
        return ""
    return repr(round(value, FINGERPRINT_DECIMALS))


def fingerprint(record: NormalizedRecord, canonical_type: str) -> str:
    return "|".join(
        [
            f"lat:{_round_coord(record.lat)}",
            f"lng:{_round_coord(record.lng)}",
            f"type:{norm_str(canonical_type)}",
            f"name:{norm_str(record.name)}",
            f"addr:{norm_str(record.address)}",
            f"web:{norm_str(record.website)}",
            f"ref:{norm_str(record.source_url)}",
        ]
    )


def manual_key(record: NormalizedRecord, canonical_type: str) -> str:
    # Curated entries keep their id when coordinates are added later.
    return f"{slugify(record.name, None)}|{normalise_address(record.address)}|{slugify(canonical_type, None)}"


def is_placeholder_name(name: str | None) -> bool:
    return not name or name.strip().lower() in PLACEHOLDER_NAMES


def is_weak_address(address: str | None) -> bool:
    """True when the address is probably only a locality, not a street address.

    That is: missing, shorter than ``MIN_ADDRESS_LENGTH`` (6) characters, or
    without any digit, so a bare city name such as "Amarillo" counts as weak.
    """
    if not address:
        return True
    return len(address.strip()) < MIN_ADDRESS_LENGTH or not _DIGIT_RE.search(address)


def identity_conflict(stored: CanonicalFacility, incoming: CanonicalFacility) -> str | None:
    """Describe a mismatch in hashed fields, which only a short-id collision can produce."""
    if stored.type != incoming.type:
        return f"type {stored.type!r} vs {incoming.type!r}"
    # Manual keys leave coordinates out; fingerprinted ids fix them at mint time.
    if stored.id.startswith(MANUAL_FACILITY_ID_PREFIX) or not (stored.has_coordinates and incoming.has_coordinates):
        return None
    if (_round_coord(stored.lat), _round_coord(stored.lng)) != (_round_coord(incoming.lat), _round_coord(incoming.lng)):
        return f"coordinates {stored.lat},{stored.lng} vs {incoming.lat},{incoming.lng}"
    return None


def apply_improvements(target: CanonicalFacility, candidate: CanonicalFacility) -> bool:
    """Fold ``candidate`` into ``target`` without regressing any known value."""
    before = target.to_dict()

    if is_placeholder_name(target.name) and not is_placeholder_name(candidate.name):
        target.name = candidate.name
        target.slug = slugify(candidate.name) or target.id
    if candidate.address and (
        not target.address or (is_weak_address(target.address) and not is_weak_address(candidate.address))
    ):
        target.address = candidate.address
    if not target.website and candidate.website:
        target.website = candidate.website
    if not target.external_reference_url and candidate.external_reference_url:
        target.external_reference_url = candidate.external_reference_url
    if not target.has_coordinates and candidate.has_coordinates:
        target.lat = candidate.lat
        target.lng = candidate.lng
    target.appears_in |= candidate.appears_in

    return target.to_dict() != before


def _sort_key(item: tuple[NormalizedRecord, PlaceRef | None]) -> tuple:
    record, place_ref = item
    return (
        record.source_file,
        record.row_index,
        record.source,
        record.name,
        record.address,
        record.type,
        record.city,
        record.state,
        record.website,
        record.source_url,
        "" if record.lat is None else repr(record.lat),
        "" if record.lng is None else repr(record.lng),
        place_ref.place_group if place_ref else "",
        place_ref.place if place_ref else "",
    )


@dataclass
class FacilityResolver:
    """Assigns stable facility ids and merges repeated observations."""

    taxonomy: TypeTaxonomy
    default_types: dict[str, str] = field(default_factory=dict)
    facilities: dict[str, CanonicalFacility] = field(default_factory=dict)
    skipped: int = 0
    _key_to_id: dict[str, str] = field(default_factory=dict)
    _id_to_key: dict[str, str] = field(default_factory=dict)

    def canonical_type(self, record: NormalizedRecord) -> str:
        return self.taxonomy.canonical(record.type, record.name, self.default_types.get(record.source))

    def facility_id(self, record: NormalizedRecord) -> str:
        canonical_type = self.canonical_type(record)
        if record.source in MANUAL_SOURCES:
            key = f"manual|{manual_key(record, canonical_type)}"
            prefix = MANUAL_FACILITY_ID_PREFIX
        else:
            key = fingerprint(record, canonical_type)
            prefix = FACILITY_ID_PREFIX

        facility_id = self._key_to_id.get(key)
        if facility_id is not None:
            return facility_id

        facility_id = prefix + short_hash(key)
        previous = self._id_to_key.get(facility_id)
        if previous is not None and previous != key:
            raise ContractError(f"Facility id collision on {facility_id}: {previous!r} vs {key!r}")
        self._key_to_id[key] = facility_id
        self._id_to_key[facility_id] = key
        return facility_id

    def observe(self, record: NormalizedRecord, place_ref: PlaceRef | None = None) -> str | None:
        if not record.name and not record.address and not record.has_coordinates:
            self.skipped += 1
            return None

        facility_id = self.facility_id(record)
        candidate = CanonicalFacility(
            id=facility_id,
            slug=slugify(record.name) or facility_id,
            name=record.name or DEFAULT_FACILITY_NAME,
            type=self.canonical_type(record),
            address=record.address,
            lat=record.lat if record.has_coordinates else None,
            lng=record.lng if record.has_coordinates else None,
            website=record.website or None,
            external_reference_url=record.source_url or None,
            appears_in={place_ref} if place_ref else set(),
        )

        existing = self.facilities.get(facility_id)
        if existing is None:
            self.facilities[facility_id] = candidate
        else:
            apply_improvements(existing, candidate)
        return facility_id

    def resolve(self, items: Iterable[tuple[NormalizedRecord, PlaceRef | None]]) -> dict[int, str | None]:
        """Observe every item in a canonical order; returns a map of input position to facility id."""
        indexed = list(items)
        order = sorted(range(len(indexed)), key=lambda idx: _sort_key(indexed[idx]))
        assigned: dict[int, str | None] = {}
        for idx in order:
            record, place_ref = indexed[idx]
            assigned[idx] = self.observe(record, place_ref)
        return assigned
