"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from facility_catalog.common.fs import read_json, write_json

QUALITY_TOTAL_KEYS = (
    "records_in",
    "normalized",
    "skipped_unidentifiable",
    "invalid_coordinates",
    "facilities",
    "places_accepted",
    "records_unplaced",
    "renderable_places",
)
DRIFT_KEYS = ("stale_places", "missing_places", "stale_facilities", "orphan_facilities")


def write_run_summary(
    data_dir: Path,
    run_id: str,
    run_date: str,
    place_groups: list[str],
    failed: list[str] | None = None,
) -> Path:
    group_reports = {}
    totals = {key: 0 for key in QUALITY_TOTAL_KEYS}
    drift = {key: 0 for key in DRIFT_KEYS}
    rejections: dict[str, int] = {}
    warning_count = 0
    error_count = len(failed or [])

    for place_group in place_groups:
        reports_dir = data_dir / "out" / "reports"
        quality_path = reports_dir / f"{place_group}_quality.json"
        audit_path = reports_dir / f"{place_group}_audit.json"
        if not quality_path.exists():
            group_reports[place_group] = {"status": "missing_report"}
            error_count += 1
            continue

        quality = read_json(quality_path)
        counts = quality.get("counts", {})
        for key in QUALITY_TOTAL_KEYS:
            totals[key] += int(counts.get(key, 0))
        for reason, count in quality.get("rejections", {}).items():
            rejections[reason] = rejections.get(reason, 0) + int(count)
        skipped_sources = quality.get("skipped_sources", [])
        warning_count += len(skipped_sources)

        entry = {"counts": counts, "rejections": quality.get("rejections", {}), "skipped_sources": skipped_sources}
        if audit_path.exists():
            audit = read_json(audit_path)
            entry["drift"] = {key: audit.get(key, {}).get("count", 0) for key in DRIFT_KEYS}
            for key in DRIFT_KEYS:
                drift[key] += entry["drift"][key]
        group_reports[place_group] = entry

    status = "success"
    if error_count > 0:
        status = "error"
    elif warning_count > 0 or any(drift.values()):
        status = "partial"

    summary_path = data_dir / "out" / "reports" / "run_summary.json"
    payload = {
        "run_id": run_id,
        "run_date": run_date,
        "status": status,
        "place_groups": place_groups,
        "failed": sorted(failed or []),
        "totals": totals,
        "rejections": dict(sorted(rejections.items())),
        "drift": drift,
        "warning_count": warning_count,
        "error_count": error_count,
        "group_reports": group_reports,
    }
    write_json(summary_path, payload)
    return summary_path
