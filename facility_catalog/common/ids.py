"""Run and facility identifier helpers."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone

from facility_catalog.common.constants import FACILITY_ID_HEX_LENGTH


def generate_run_id() -> str:
    now = datetime.now(tz=timezone.utc)
    return now.strftime("run-%Y%m%dT%H%M%S%fZ")


def sha1_hex(value: str) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()


def short_hash(value: str, length: int = FACILITY_ID_HEX_LENGTH) -> str:
    return sha1_hex(value)[:length]


def collision_probability(count: int, hex_length: int = FACILITY_ID_HEX_LENGTH) -> float:
    """Birthday-bound probability that ``count`` ids share a truncated hash."""
    space = 16 ** hex_length
    if count < 2:
        return 0.0
    return min(1.0, count * (count - 1) / (2 * space))
