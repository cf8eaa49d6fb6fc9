"""Coordinate coercion, CRS transformation, and validation."""

from __future__ import annotations

import math
from functools import lru_cache
from typing import Any

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

WGS84_EPSG = 4326


def safe_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def validate_coordinate(lat: Any, lng: Any) -> tuple[float | None, float | None]:
    """Return ``(lat, lng)`` as floats, or ``(None, None)`` when unusable.

    ``(0, 0)`` is treated as unset rather than as a point in the Gulf of Guinea.
    """
    lat_f = safe_float(lat)
    lng_f = safe_float(lng)
    if lat_f is None or lng_f is None:
        return None, None
    if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
        return None, None
    if not (-90 <= lat_f <= 90 and -180 <= lng_f <= 180):
        return None, None
    if lat_f == 0 and lng_f == 0:
        return None, None
    return lat_f, lng_f


@lru_cache(maxsize=16)
def _transformer(source_epsg: int) -> Transformer:
    return Transformer.from_crs(CRS.from_epsg(source_epsg), CRS.from_epsg(WGS84_EPSG), always_xy=True)


def to_wgs84(lat: Any, lng: Any, source_epsg: int | None) -> tuple[float | None, float | None]:
    """Transform a source-CRS pair (``lat`` = northing, ``lng`` = easting) to WGS84."""
    y = safe_float(lat)
    x = safe_float(lng)
    if y is None or x is None:
        return None, None
    if source_epsg is None or int(source_epsg) == WGS84_EPSG:
        return y, x
    try:
        transformed_lng, transformed_lat = _transformer(int(source_epsg)).transform(x, y)
    except (CRSError, ProjError):
        return None, None
    return transformed_lat, transformed_lng
