"""Map heterogeneous raw source rows onto one normalised record shape."""

from __future__ import annotations

from typing import Any, Mapping

from facility_catalog.common.models import NormalizedRecord
from facility_catalog.common.text import clean_str, collapse_whitespace, extract_city_from_address
from facility_catalog.pipeline.coordinates import to_wgs84

DEFAULT_FIELDS: dict[str, list[str]] = {
    "name": ["name", "facility_name", "site_name", "Site Name", "permittee"],
    "city": ["city", "site_city", "address_city", "mailing_city"],
    "state": ["state", "site_state", "address_state"],
    "zip": ["zip", "zipcode", "postcode", "site_zip"],
    "address": [
        "address",
        "full_address",
        "site_address",
        "street_address",
        "location_address",
        "mailing_address",
    ],
    "address_lines": ["street"],
    "near_lines": [],
    "type": ["type", "facility_type", "site_type"],
    "lat": ["lat", "latitude", "Latitude"],
    "lng": ["lng", "lon", "longitude", "Longitude"],
    "website": ["website", "url", "contact_website"],
    "source_url": ["source_url", "sourceUrl", "external_reference_url", "osm_url", "tceq_url"],
}


def resolve_field_map(overrides: Mapping[str, list[str]] | None) -> dict[str, list[str]]:
    fields = {key: list(values) for key, values in DEFAULT_FIELDS.items()}
    for key, values in (overrides or {}).items():
        fields[key] = list(dict.fromkeys([*values, *fields.get(key, [])]))
    return fields


def _lookup_first(raw: Mapping[str, Any], candidates: list[str]) -> Any:
    for key in candidates:
        if key in raw and raw[key] not in (None, ""):
            value = raw[key]
            if isinstance(value, str) and not value.strip():
                continue
            return value
    return None


def _lookup_str(raw: Mapping[str, Any], candidates: list[str]) -> str:
    return collapse_whitespace(_lookup_first(raw, candidates))


def _join_parts(raw: Mapping[str, Any], candidates: list[str]) -> list[str]:
    return [collapse_whitespace(raw[key]) for key in candidates if clean_str(raw.get(key))]


def build_address(raw: Mapping[str, Any], fields: Mapping[str, list[str]]) -> str:
    full = _lookup_str(raw, fields["address"])
    if full:
        return full

    lines = _join_parts(raw, fields["address_lines"])
    tail = [
        _lookup_str(raw, fields["city"]),
        _lookup_str(raw, fields["state"]),
        _lookup_str(raw, fields["zip"]),
    ]
    if lines:
        return " ".join(part for part in [*lines, *tail] if part)

    near = _join_parts(raw, fields["near_lines"])
    return " ".join(near)


def _source_url(raw: Mapping[str, Any], fields: Mapping[str, list[str]]) -> str:
    url = _lookup_str(raw, fields["source_url"])
    if url:
        return url
    # Curated files put the reference link under "source".
    source = clean_str(raw.get("source"))
    if source.lower().startswith(("http://", "https://")):
        return source
    return ""


def normalize_record(
    raw: Any,
    source: str,
    *,
    fields: Mapping[str, list[str]] | None = None,
    state_code: str = "",
    place_group: str = "",
    place: str = "",
    source_file: str = "",
    row_index: int = 0,
    source_epsg: int | None = None,
) -> NormalizedRecord | None:
    """Return a :class:`NormalizedRecord`, or ``None`` when the row has neither name nor address.

    Coordinates are only coerced (and reprojected when ``source_epsg`` is given);
    validation happens in :func:`facility_catalog.pipeline.coordinates.validate_coordinate`.
    """
    if not isinstance(raw, Mapping):
        return None
    field_map = fields or DEFAULT_FIELDS

    name = _lookup_str(raw, field_map["name"])
    address = build_address(raw, field_map)
    if not name and not address:
        return None

    city = _lookup_str(raw, field_map["city"]) or extract_city_from_address(address, state_code)
    state = _lookup_str(raw, field_map["state"]) or state_code
    lat, lng = to_wgs84(_lookup_first(raw, field_map["lat"]), _lookup_first(raw, field_map["lng"]), source_epsg)

    return NormalizedRecord(
        name=name,
        type=_lookup_str(raw, field_map["type"]),
        address=address,
        city=city,
        state=state,
        lat=lat,
        lng=lng,
        website=_lookup_str(raw, field_map["website"]),
        source=source,
        source_url=_source_url(raw, field_map),
        place_group=place_group,
        place=place,
        source_file=source_file,
        row_index=row_index,
    )
