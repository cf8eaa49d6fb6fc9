"""Durable canonical catalog: one document per facility plus an index."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from facility_catalog.common.fs import list_json_files, read_json, read_json_or, write_json_if_changed
from facility_catalog.common.logging import log_event
from facility_catalog.common.models import CanonicalFacility
from facility_catalog.common.errors import ContractError
from facility_catalog.pipeline.identity import apply_improvements, identity_conflict

INDEX_FILENAME = "index.json"


@dataclass(frozen=True)
class CatalogWriteResult:
    written: int
    unchanged: int
    total: int


def facilities_dir(catalog_dir: Path) -> Path:
    return catalog_dir / "facilities"


def facility_path(catalog_dir: Path, facility_id: str) -> Path:
    return facilities_dir(catalog_dir) / f"{facility_id}.json"


def index_path(catalog_dir: Path) -> Path:
    return facilities_dir(catalog_dir) / INDEX_FILENAME


def _index_sort_key(facility: CanonicalFacility) -> tuple[str, str]:
    return facility.name.lower(), facility.id


def load_catalog(catalog_dir: Path, logger: logging.Logger | None = None) -> dict[str, CanonicalFacility]:
    catalog: dict[str, CanonicalFacility] = {}
    for path in list_json_files(facilities_dir(catalog_dir)):
        if path.name == INDEX_FILENAME:
            continue
        payload = read_json_or(path, None)
        if not isinstance(payload, dict) or not payload.get("id"):
            if logger is not None:
                log_event(
                    logger,
                    f"Skipping unreadable catalog document {path.name}",
                    event="catalog_doc_skipped",
                    status="warn",
                    error_code="SOURCE_FORMAT_ERROR",
                )
            continue
        facility = CanonicalFacility.from_dict(payload)
        catalog[facility.id] = facility
    return catalog


def write_index(catalog_dir: Path, facilities: Iterable[CanonicalFacility]) -> bool:
    ordered = sorted(facilities, key=_index_sort_key)
    return write_json_if_changed(index_path(catalog_dir), [facility.to_dict() for facility in ordered])


def merge_into_catalog(
    incoming: Mapping[str, CanonicalFacility],
    catalog_dir: Path,
    logger: logging.Logger | None = None,
) -> CatalogWriteResult:
    """Merge resolved facilities into the on-disk catalog without regressing stored values."""
    catalog = load_catalog(catalog_dir, logger)
    written = 0
    unchanged = 0

    for facility_id in sorted(incoming):
        stored = catalog.get(facility_id)
        if stored is None:
            stored = incoming[facility_id]
            catalog[facility_id] = stored
        else:
            conflict = identity_conflict(stored, incoming[facility_id])
            if conflict:
                raise ContractError(f"Facility id collision with stored {facility_id}: {conflict}")
            apply_improvements(stored, incoming[facility_id])

        if write_json_if_changed(facility_path(catalog_dir, facility_id), stored.to_dict()):
            written += 1
        else:
            unchanged += 1

    write_index(catalog_dir, catalog.values())
    if logger is not None:
        log_event(
            logger,
            "Catalog merged",
            event="catalog_merged",
            rows_in=len(incoming),
            rows_out=len(catalog),
        )
    return CatalogWriteResult(written=written, unchanged=unchanged, total=len(catalog))


def backfill_facility_ids(path: Path, container_key: str | None, ids_by_row: Mapping[int, str]) -> bool:
    """Stamp resolved ids onto a harvested per-place document; rewrites only on change."""
    if not ids_by_row:
        return False
    doc = read_json(path)
    rows = doc if container_key is None else doc[container_key]
    for row_index, facility_id in sorted(ids_by_row.items()):
        row = rows[row_index]
        if isinstance(row, dict):
            row["facility_id"] = facility_id
    return write_json_if_changed(path, doc)


def remove_facilities(catalog_dir: Path, facility_ids: Iterable[str]) -> list[str]:
    removed = []
    for facility_id in sorted(set(facility_ids)):
        path = facility_path(catalog_dir, facility_id)
        if path.exists():
            path.unlink()
            removed.append(facility_id)
    if removed:
        write_index(catalog_dir, load_catalog(catalog_dir).values())
    return removed
