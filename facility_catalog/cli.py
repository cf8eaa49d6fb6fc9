"""CLI entrypoint for the facility catalog pipeline."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from facility_catalog.common.clock import parse_run_date
from facility_catalog.common.config_loader import ConfigBundle, load_all_configs, resolve_groups
from facility_catalog.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS, STAGES
from facility_catalog.common.errors import ConfigError, ContractError, PipelineError
from facility_catalog.common.ids import generate_run_id
from facility_catalog.common.logging import build_logger, log_event
from facility_catalog.harvest.runner import run_harvest_for_group
from facility_catalog.pipeline.audit import prune_stale, run_audit
from facility_catalog.pipeline.neighbors import run_neighbors
from facility_catalog.pipeline.places import run_place_build
from facility_catalog.pipeline.reports import write_run_summary

HARD_FAIL_ERRORS = (ConfigError, ContractError)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=[*STAGES, "all", "prune"])
    parser.add_argument("--group", default="all")
    parser.add_argument("--run-date", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--strict", action="store_true")
    parser.add_argument("--apply", action="store_true", help="prune: delete instead of reporting")
    return parser.parse_args(argv)


def execute_stage(stage: str, place_group: str, cfg: dict, bundle: ConfigBundle, data_dir: Path, run_id: str, logger):
    if stage == "harvest":
        return run_harvest_for_group(place_group, cfg, data_dir, run_id, logger)
    if stage == "merge":
        return run_place_build(place_group, cfg, bundle, data_dir, run_id, logger)
    if stage == "neighbors":
        return run_neighbors(place_group, cfg, data_dir, run_id, logger)
    if stage == "audit":
        return run_audit(place_group, cfg, data_dir, run_id, logger)
    raise ValueError(f"Unknown stage: {stage}")


def run_prune(args: argparse.Namespace, bundle: ConfigBundle, groups: list[str], data_dir: Path, run_id: str, logger):
    for place_group in groups:
        prune_stale(place_group, bundle.groups[place_group], data_dir, logger, run_id=run_id, apply=args.apply)
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    run_date = parse_run_date(args.run_date)
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    try:
        bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
        groups = resolve_groups(args.group, bundle)
    except ConfigError as exc:
        log_event(logger, str(exc), run_id=run_id, event="CONFIG_INVALID", status="fatal", error_code=exc.error_code)
        return EXIT_HARD_FAIL

    if args.command == "prune":
        return run_prune(args, bundle, groups, data_dir, run_id, logger)

    stages = STAGES if args.command == "all" else (args.command,)
    failed: list[str] = []

    for stage in stages:
        log_event(logger, "stage start", run_id=run_id, stage=stage, event="STAGE_START", status="ok")
        for place_group in groups:
            cfg = bundle.groups[place_group]
            try:
                execute_stage(stage, place_group, cfg, bundle, data_dir, run_id, logger)
            except HARD_FAIL_ERRORS as exc:
                log_event(
                    logger,
                    f"{stage} aborted for {place_group}: {exc}",
                    run_id=run_id,
                    stage=stage,
                    place_group=place_group,
                    event="STAGE_FAIL",
                    status="fatal",
                    error_code=exc.error_code,
                )
                return EXIT_HARD_FAIL
            except PipelineError as exc:
                failed.append(f"{stage}:{place_group}")
                log_event(
                    logger,
                    f"stage failed for place group {place_group}: {exc}",
                    run_id=run_id,
                    stage=stage,
                    place_group=place_group,
                    event="STAGE_FAIL",
                    status="error",
                    error_code=exc.error_code,
                )
                if args.strict:
                    return EXIT_HARD_FAIL
            except Exception as exc:
                failed.append(f"{stage}:{place_group}")
                logger.exception(
                    f"unexpected failure for place group {place_group}: {exc}",
                    extra={
                        "run_id": run_id,
                        "stage": stage,
                        "place_group": place_group,
                        "event": "STAGE_FAIL",
                        "status": "error",
                        "error_code": "UNEXPECTED_ERROR",
                    },
                )
                if args.strict:
                    return EXIT_HARD_FAIL
        log_event(logger, "stage end", run_id=run_id, stage=stage, event="STAGE_END", status="ok")

    if {"merge", "audit"} & set(stages):
        write_run_summary(data_dir, run_id=run_id, run_date=run_date, place_groups=groups, failed=failed)
    if failed:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
