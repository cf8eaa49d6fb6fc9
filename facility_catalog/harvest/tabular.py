"""Government tabular export reader."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from facility_catalog.common.fs import iter_csv_rows
from facility_catalog.common.text import clean_str


def _matches(row: dict[str, str], filters: Mapping[str, object]) -> bool:
    for column, expected in filters.items():
        if clean_str(row.get(column)).upper() != clean_str(expected).upper():
            return False
    return True


def read_government_export(path: Path, filters: Mapping[str, object] | None = None) -> list[dict[str, str]]:
    """Rows of a quoted-field CSV export that match every ``column: value`` filter."""
    filters = filters or {}
    return [row for row in iter_csv_rows(path) if _matches(row, filters)]
