"""Place centroids and k-nearest-neighbor graph."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Mapping

from facility_catalog.common.fs import read_json_or, write_json_if_changed
from facility_catalog.common.geometry import centroid, haversine_km, km_to_mi
from facility_catalog.common.logging import log_event
from facility_catalog.pipeline.coordinates import validate_coordinate
from facility_catalog.pipeline.places import PLACES_FILENAME, places_dir

CENTROIDS_FILENAME = "_centroids.json"
NEIGHBORS_FILENAME = "_neighbors.json"
DEFAULT_K = 10


def place_centroid(facilities: Iterable[dict]) -> tuple[float, float, int] | None:
    points = []
    for facility in facilities:
        lat, lng = validate_coordinate(facility.get("lat"), facility.get("lng"))
        if lat is not None:
            points.append((lat, lng))
    return centroid(points)


def build_neighbor_graph(
    centroids: Mapping[str, tuple[float, float]],
    k: int = DEFAULT_K,
) -> dict[str, list[dict]]:
    """Rank every other place by great-circle distance in miles (0.1 precision, ties by slug)."""
    graph: dict[str, list[dict]] = {}
    for slug in sorted(centroids):
        lat, lng = centroids[slug]
        edges = []
        for other in centroids:
            if other == slug:
                continue
            other_lat, other_lng = centroids[other]
            miles = round(km_to_mi(haversine_km(lat, lng, other_lat, other_lng)), 1)
            edges.append({"slug": other, "distance": miles})
        edges.sort(key=lambda edge: (edge["distance"], edge["slug"]))
        graph[slug] = edges[:k]
    return graph


def run_neighbors(
    place_group: str,
    cfg: dict,
    data_dir: Path,
    run_id: str,
    logger: logging.Logger,
) -> dict:
    out_dir = places_dir(data_dir, cfg, place_group)
    places = read_json_or(out_dir / PLACES_FILENAME, [])
    if not isinstance(places, list):
        places = []

    centroids: dict[str, dict] = {}
    for entry in places:
        slug = entry.get("slug") if isinstance(entry, dict) else None
        if not slug:
            continue
        doc = read_json_or(out_dir / f"{slug}.json", {})
        result = place_centroid(doc.get("facilities") or []) if isinstance(doc, dict) else None
        if result is None:
            continue
        lat, lng, count = result
        centroids[slug] = {"lat": lat, "lng": lng, "count": count}

    k = int(cfg["neighbors"].get("k", DEFAULT_K))
    graph = build_neighbor_graph({slug: (c["lat"], c["lng"]) for slug, c in centroids.items()}, k)

    write_json_if_changed(out_dir / CENTROIDS_FILENAME, centroids)
    write_json_if_changed(out_dir / NEIGHBORS_FILENAME, graph)
    log_event(
        logger,
        f"Neighbor graph built for {place_group}",
        run_id=run_id,
        stage="neighbors",
        place_group=place_group,
        event="neighbors_built",
        rows_in=len(places),
        rows_out=len(graph),
    )
    return {"place_group": place_group, "places": len(places), "centroids": len(centroids), "k": k}
