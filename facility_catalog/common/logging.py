"""JSON logging with stable schema."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from facility_catalog.common.clock import utc_timestamp_iso
from facility_catalog.common.constants import JSON_LOG_FIELDS
from facility_catalog.common.fs import ensure_dir

STATUS_LEVELS = {
    "ok": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {field: getattr(record, field, None) for field in JSON_LOG_FIELDS}
        payload["timestamp"] = utc_timestamp_iso()
        payload["message"] = record.getMessage()
        if payload["status"] is None:
            payload["status"] = record.levelname.lower()
        return json.dumps(payload, ensure_ascii=False)


def build_logger(run_id: str, data_dir: Path, level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(f"facility_catalog.{run_id}")
    logger.setLevel("WARNING" if level.upper() == "WARN" else level.upper())
    logger.handlers.clear()
    logger.propagate = False

    stream = logging.StreamHandler()
    stream.setFormatter(JsonLineFormatter())
    logger.addHandler(stream)

    log_path = data_dir / "run_meta" / f"{run_id}.log.jsonl"
    ensure_dir(log_path.parent)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(JsonLineFormatter())
    logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Module logger for library code that is not handed the run logger."""
    return logging.getLogger(f"facility_catalog.{name}")


def log_event(logger: logging.Logger, message: str, **event_fields: Any) -> None:
    status = event_fields.setdefault("status", "ok")
    logger.log(STATUS_LEVELS.get(status, logging.INFO), message, extra=event_fields)
