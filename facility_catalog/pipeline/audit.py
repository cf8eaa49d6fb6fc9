"""Drift and coverage audit between the canonical catalog and generated artifacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from facility_catalog.common.constants import SAMPLE_LIMIT
from facility_catalog.common.fs import list_dir_names, read_json_or, remove_tree, write_json
from facility_catalog.common.logging import log_event
from facility_catalog.common.models import CanonicalFacility
from facility_catalog.common.text import slugify
from facility_catalog.pipeline.catalog import load_catalog, remove_facilities
from facility_catalog.pipeline.places import (
    observed_ids_path,
    published_place_names,
    renderable_members,
    write_place_documents,
)
from facility_catalog.pipeline.sources import load_seed_places

FACILITY_ARTIFACT_DIR = "facility"


def _finding(items: list[str]) -> dict:
    ordered = sorted(items)
    return {"count": len(ordered), "sample": ordered[:SAMPLE_LIMIT]}


def site_dir(data_dir: Path, cfg: dict) -> Path:
    return data_dir / cfg["output"]["site_dir"]


def renderable_places(catalog: dict[str, CanonicalFacility], place_group: str) -> set[str]:
    return set(renderable_members(catalog, place_group))


def observed_facility_ids(data_dir: Path) -> set[str] | None:
    """Union of facility ids seen by the latest build of every group; ``None`` before any build."""
    paths = sorted((data_dir / "intermediate").glob("*_observed.json"))
    if not paths:
        return None
    observed: set[str] = set()
    for path in paths:
        payload = read_json_or(path, {})
        if isinstance(payload, dict):
            observed.update(str(fid) for fid in payload.get("facility_ids") or [])
    return observed


def compare_place_artifacts(expected: set[str], generated: set[str]) -> tuple[list[str], list[str]]:
    """Return ``(stale, missing)``: generated without data, and data without a generated artifact."""
    return sorted(generated - expected), sorted(expected - generated)


@dataclass(frozen=True)
class AuditFindings:
    place_group: str
    renderable: int
    generated: int
    stale_places: list[str]
    missing_places: list[str]
    seeds_without_data: list[str]
    stale_facilities: list[str]
    orphans: list[str]

    @property
    def has_drift(self) -> bool:
        return bool(self.stale_places or self.missing_places or self.stale_facilities)

    def to_report(self) -> dict:
        return {
            "place_group": self.place_group,
            "renderable_places": self.renderable,
            "generated_places": self.generated,
            "stale_places": _finding(self.stale_places),
            "missing_places": _finding(self.missing_places),
            "seed_places_without_data": _finding(self.seeds_without_data),
            "stale_facilities": _finding(self.stale_facilities),
            "orphan_facilities": _finding(self.orphans),
        }


def audit_group(place_group: str, cfg: dict, data_dir: Path) -> AuditFindings:
    site = site_dir(data_dir, cfg)
    catalog = load_catalog(data_dir / cfg["output"]["catalog_dir"])
    renderable = renderable_places(catalog, place_group)
    generated = set(list_dir_names(site / place_group))
    stale_places, missing_places = compare_place_artifacts(renderable, generated)

    seed_path = data_dir / cfg["places"]["seed_list"]
    seeds = load_seed_places(seed_path, place_group, cfg["place_group"]["state_code"]) if seed_path.exists() else []
    seeds_without_data = sorted({slugify(seed["place"]) for seed in seeds} - renderable)

    generated_facilities = set(list_dir_names(site / FACILITY_ARTIFACT_DIR))
    stale_facilities = sorted(generated_facilities - set(catalog))

    observed = observed_facility_ids(data_dir)
    orphans: list[str] = []
    if observed is not None and observed_ids_path(data_dir, place_group).exists():
        for facility in catalog.values():
            linked = {ref.place_group for ref in facility.appears_in}
            if facility.id not in observed and (not linked or place_group in linked):
                orphans.append(facility.id)

    return AuditFindings(
        place_group=place_group,
        renderable=len(renderable),
        generated=len(generated),
        stale_places=stale_places,
        missing_places=missing_places,
        seeds_without_data=seeds_without_data,
        stale_facilities=stale_facilities,
        orphans=sorted(orphans),
    )


def run_audit(place_group: str, cfg: dict, data_dir: Path, run_id: str, logger: logging.Logger) -> dict:
    findings = audit_group(place_group, cfg, data_dir)
    report = findings.to_report()
    write_json(data_dir / "out" / "reports" / f"{place_group}_audit.json", report)

    log_event(
        logger,
        f"Audit complete for {place_group}",
        run_id=run_id,
        stage="audit",
        place_group=place_group,
        event="audit_complete",
        status="warn" if findings.has_drift else "ok",
        rows_in=findings.renderable,
        rows_out=len(findings.stale_places),
    )
    return report


def prune_stale(
    place_group: str,
    cfg: dict,
    data_dir: Path,
    logger: logging.Logger,
    *,
    run_id: str | None = None,
    apply: bool = False,
) -> dict:
    """Delete stale generated artifacts and orphaned catalog facilities; a dry run unless ``apply``."""
    findings = audit_group(place_group, cfg, data_dir)
    site = site_dir(data_dir, cfg)
    place_targets = [f"{place_group}/{slug}" for slug in findings.stale_places]
    facility_targets = [f"{FACILITY_ARTIFACT_DIR}/{fid}" for fid in findings.stale_facilities]

    removed_facilities: list[str] = []
    if apply:
        for relative in [*place_targets, *facility_targets]:
            remove_tree(site / relative)
        catalog_dir = data_dir / cfg["output"]["catalog_dir"]
        removed_facilities = remove_facilities(catalog_dir, findings.orphans)
        if removed_facilities:
            names = published_place_names(data_dir, cfg, place_group)
            write_place_documents(data_dir, cfg, place_group, load_catalog(catalog_dir), names)

    log_event(
        logger,
        f"{'Pruned' if apply else 'Dry run: would prune'} {len(place_targets)} place and "
        f"{len(facility_targets)} facility artifacts for {place_group}",
        run_id=run_id,
        stage="prune",
        place_group=place_group,
        event="prune_applied" if apply else "prune_dry_run",
        status="warn" if (place_targets or facility_targets) else "ok",
    )
    return {
        "place_group": place_group,
        "applied": apply,
        "stale_place_artifacts": _finding(place_targets),
        "stale_facility_artifacts": _finding(facility_targets),
        "orphan_facilities": _finding(findings.orphans),
        "removed_facilities": removed_facilities,
    }
