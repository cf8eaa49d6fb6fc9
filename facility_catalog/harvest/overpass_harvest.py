"""Overpass harvest of disposal facilities inside a place's bounding box."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from facility_catalog.common.errors import StageError
from facility_catalog.common.fs import write_json
from facility_catalog.common.geometry import extract_point_from_element
from facility_catalog.common.http import HttpClient, TimeoutConfig
from facility_catalog.common.text import clean_str, slugify
from facility_catalog.harvest.nominatim import BoundingBox, geocode_to_bbox

FEATURE_FILTERS = (
    ("amenity", "waste_transfer_station"),
    ("amenity", "recycling"),
    ("landuse", "landfill"),
)
GENERIC_NAMES = {
    "unnamed site",
    "unnamed",
    "recycle facility",
    "recycling",
    "landfill",
    "transfer station",
}
WEBSITE_TAGS = ("website", "contact:website", "url")
CITY_TAGS = ("addr:city", "contact:city", "city", "is_in:city")
OSM_BASE_URL = "https://www.openstreetmap.org"
_DIGIT_RE = re.compile(r"\d")


def build_overpass_query(bbox: BoundingBox, timeout_seconds: int = 25) -> str:
    area = f"{bbox.south},{bbox.west},{bbox.north},{bbox.east}"
    filters = "".join(f'  nwr["{key}"="{value}"]({area});\n' for key, value in FEATURE_FILTERS)
    return f"[out:json][timeout:{int(timeout_seconds)}];\n(\n{filters});\nout center tags;"


def facility_type_from_tags(tags: dict[str, Any]) -> str:
    if tags.get("landuse") == "landfill":
        return "landfill"
    if tags.get("amenity") == "waste_transfer_station":
        return "transfer_station"
    if tags.get("amenity") == "recycling":
        return "recycling"
    return "other"


def city_from_tags(tags: dict[str, Any]) -> str:
    return next((clean_str(tags[k]) for k in CITY_TAGS if clean_str(tags.get(k))), "")


def address_from_tags(tags: dict[str, Any]) -> str:
    street = " ".join(p for p in (clean_str(tags.get("addr:housenumber")), clean_str(tags.get("addr:street"))) if p)
    parts = [street, clean_str(tags.get("addr:city")), clean_str(tags.get("addr:state"))]
    head = ", ".join(p for p in parts if p)
    postcode = clean_str(tags.get("addr:postcode"))
    return f"{head} {postcode}".strip() if postcode else head


def has_real_name(name: str) -> bool:
    text = clean_str(name).lower()
    return bool(text) and text not in GENERIC_NAMES


def has_useful_address(address: str) -> bool:
    # Real street addresses carry a house number.
    return bool(_DIGIT_RE.search(clean_str(address)))


def element_to_record(element: dict[str, Any]) -> dict[str, Any] | None:
    lat, lng = extract_point_from_element(element)
    if lat is None or lng is None:
        return None
    tags = element.get("tags") or {}
    name = clean_str(tags.get("name"))
    address = address_from_tags(tags)
    website = next((clean_str(tags[k]) for k in WEBSITE_TAGS if clean_str(tags.get(k))), "")
    if not (has_real_name(name) or has_useful_address(address) or website):
        return None
    return {
        "name": name,
        "type": facility_type_from_tags(tags),
        "address": address,
        "city": city_from_tags(tags),
        "lat": lat,
        "lng": lng,
        "website": website,
        "osm_url": f"{OSM_BASE_URL}/{element.get('type')}/{element.get('id')}",
    }


def place_doc_path(data_dir: Path, cfg: dict, place: str) -> Path:
    return data_dir / cfg["sources"]["osm"]["dir"] / f"{slugify(place)}.json"


def run_overpass_harvest(
    place_group: str,
    cfg: dict,
    seed: dict,
    data_dir: Path,
    http_client: HttpClient,
) -> dict:
    overpass_cfg = cfg["overpass"]
    bbox = geocode_to_bbox(http_client, cfg["nominatim"]["search_endpoint"], seed["query"])
    query = build_overpass_query(bbox, overpass_cfg["timeout_seconds"])
    payload = http_client.post_form_json(
        overpass_cfg["endpoint"],
        source_type="overpass",
        data={"data": query},
        timeout=TimeoutConfig(connect=20, read=float(overpass_cfg["timeout_seconds"]) + 30),
        post_heavy_sleep=(1.1, 2.6),
    )
    remark = clean_str(payload.get("remark")) if isinstance(payload, dict) else ""
    # Overpass reports query timeouts as a 200 with a partial result.
    if "runtime error" in remark.lower():
        raise StageError(f"Overpass query for {seed['place']} did not complete: {remark}")

    items: dict[str, dict] = {}
    for element in payload.get("elements", []) if isinstance(payload, dict) else []:
        record = element_to_record(element)
        if record is not None:
            items.setdefault(record["osm_url"], record)

    out_payload = {
        "place_group": place_group,
        "place": seed["place"],
        "query": seed["query"],
        "bbox": bbox.to_dict(),
        "items": [items[key] for key in sorted(items)],
    }
    write_json(place_doc_path(data_dir, cfg, seed["place"]), out_payload)
    return {
        "place": seed["place"],
        "elements": len(payload.get("elements", [])) if isinstance(payload, dict) else 0,
        "items": len(items),
    }
