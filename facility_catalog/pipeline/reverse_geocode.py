"""Persistent, paced reverse-geocode cache."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from facility_catalog.common.clock import Pacer
from facility_catalog.common.constants import REVERSE_GEOCODE_DECIMALS
from facility_catalog.common.fs import read_json_or, write_json_if_changed
from facility_catalog.common.http import HttpClient, HttpRequestError
from facility_catalog.common.logging import get_logger, log_event

ReverseLookup = Callable[[float, float], "str | None"]

PLACE_ADDRESS_KEYS = ("city", "town", "village", "hamlet")


def cache_key(lat: float, lng: float) -> str:
    return f"{lat:.{REVERSE_GEOCODE_DECIMALS}f},{lng:.{REVERSE_GEOCODE_DECIMALS}f}"


def nominatim_reverse_lookup(client: HttpClient, endpoint: str) -> ReverseLookup:
    def _lookup(lat: float, lng: float) -> str | None:
        payload = client.get_json(
            endpoint,
            source_type="nominatim",
            params={"format": "jsonv2", "lat": lat, "lon": lng, "zoom": 10, "addressdetails": 1},
        )
        address = payload.get("address") if isinstance(payload, dict) else None
        if not isinstance(address, dict):
            return None
        for key in PLACE_ADDRESS_KEYS:
            value = address.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    return _lookup


class ReverseGeocodeCache:
    """Coordinate bucket -> place name ("" for a cached miss)."""

    def __init__(
        self,
        path: Path,
        lookup: ReverseLookup,
        *,
        min_interval: float = 1.1,
        pacer: Pacer | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.path = path
        self.lookup = lookup
        self.pacer = pacer or Pacer(min_interval)
        self.logger = logger or get_logger("reverse_geocode")
        self.hits = 0
        self.misses = 0
        self.failures = 0
        self.entries: dict[str, str] = {}
        self._dirty = False

        stored = read_json_or(path, {})
        if isinstance(stored, dict):
            self.entries = {str(k): str(v or "") for k, v in stored.items()}
        else:
            log_event(
                self.logger,
                "Reverse geocode cache is not a mapping; starting empty",
                event="reverse_geocode_cache_reset",
                status="warn",
            )

    def resolve(self, lat: float, lng: float) -> str | None:
        key = cache_key(lat, lng)
        if key in self.entries:
            self.hits += 1
            return self.entries[key] or None

        self.misses += 1
        self.pacer.wait()
        try:
            name = self.lookup(lat, lng)
        except HttpRequestError as exc:
            # Not cached so a later run retries this bucket.
            self.failures += 1
            log_event(
                self.logger,
                f"Reverse geocode failed for {key}: {exc}",
                event="reverse_geocode_failed",
                status="warn",
                error_code=exc.error_code,
            )
            return None

        self.entries[key] = (name or "").strip()
        self._dirty = True
        return self.entries[key] or None

    def save(self) -> bool:
        if not self._dirty:
            return False
        self._dirty = False
        return write_json_if_changed(self.path, self.entries)
