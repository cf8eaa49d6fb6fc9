"""Geometry helpers."""

from __future__ import annotations

import math
from typing import Any, Iterable

from facility_catalog.common.constants import EARTH_RADIUS_KM, KM_TO_MI


def extract_point_from_element(element: dict[str, Any]) -> tuple[float | None, float | None]:
    # Nodes carry lat/lon; ways and relations carry center with `out center`.
    lat = element.get("lat")
    lon = element.get("lon")
    center = element.get("center") or {}
    if lat is None:
        lat = center.get("lat")
    if lon is None:
        lon = center.get("lon")
    if lat is None or lon is None:
        return None, None
    return float(lat), float(lon)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    x = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(x)))


def km_to_mi(km: float) -> float:
    return km * KM_TO_MI


def centroid(points: Iterable[tuple[float, float]]) -> tuple[float, float, int] | None:
    sum_lat = 0.0
    sum_lng = 0.0
    count = 0
    for lat, lng in points:
        sum_lat += lat
        sum_lng += lng
        count += 1
    if count == 0:
        return None
    return sum_lat / count, sum_lng / count, count
