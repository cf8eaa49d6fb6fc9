"""Harvest orchestration with fail-soft semantics."""

from __future__ import annotations

import logging
import time
from pathlib import Path

from facility_catalog.common.errors import ConfigError, PipelineError, StageError
from facility_catalog.common.http import HttpClient
from facility_catalog.common.logging import log_event
from facility_catalog.harvest.overpass_harvest import run_overpass_harvest
from facility_catalog.pipeline.sources import load_seed_places


def run_harvest_for_group(
    place_group: str,
    cfg: dict,
    data_dir: Path,
    run_id: str,
    logger: logging.Logger,
    http_client: HttpClient | None = None,
) -> dict:
    if not cfg["overpass"]["enabled"]:
        log_event(logger, "Overpass harvest disabled", run_id=run_id, stage="harvest", place_group=place_group)
        return {"place_group": place_group, "run_id": run_id, "enabled": False, "results": {}, "failed_places": []}

    seed_path = data_dir / cfg["places"]["seed_list"]
    if not seed_path.exists():
        raise ConfigError(f"Missing seed place list: {seed_path}")
    seeds = load_seed_places(seed_path, place_group, cfg["place_group"]["state_code"])

    failures: list[str] = []
    results: dict[str, dict] = {}

    owns_client = http_client is None
    client = http_client or HttpClient()
    try:
        for seed in seeds:
            started = time.monotonic()
            try:
                results[seed["place"]] = run_overpass_harvest(place_group, cfg, seed, data_dir, client)
            except PipelineError as exc:
                failures.append(seed["place"])
                log_event(
                    logger,
                    f"Harvest failed for {seed['place']}: {exc}",
                    run_id=run_id,
                    stage="harvest",
                    place_group=place_group,
                    place=seed["place"],
                    source="osm",
                    event="place_harvest_failed",
                    status="error",
                    error_code=exc.error_code,
                )
                continue
            log_event(
                logger,
                f"Harvested {seed['place']}",
                run_id=run_id,
                stage="harvest",
                place_group=place_group,
                place=seed["place"],
                source="osm",
                event="place_harvested",
                rows_in=results[seed["place"]]["elements"],
                rows_out=results[seed["place"]]["items"],
                duration_ms=int((time.monotonic() - started) * 1000),
            )
    finally:
        if owns_client:
            client.close()

    if seeds and len(failures) >= len(seeds):
        raise StageError(f"All places failed to harvest for {place_group}")

    return {
        "place_group": place_group,
        "run_id": run_id,
        "enabled": True,
        "results": results,
        "failed_places": failures,
    }
