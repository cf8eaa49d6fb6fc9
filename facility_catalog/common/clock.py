"""UTC run metadata and call pacing helpers."""

from __future__ import annotations

import time
from datetime import date, datetime, timezone
from typing import Callable


def utc_today_iso() -> str:
    return datetime.now(tz=timezone.utc).date().isoformat()


def parse_run_date(value: str | None) -> str:
    if not value:
        return utc_today_iso()
    return date.fromisoformat(value).isoformat()


def utc_timestamp_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds")


class Pacer:
    """Blocks until at least ``min_interval`` seconds passed since the last call."""

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = min_interval
        self.clock = clock
        self.sleep = sleep
        self.last_call: float | None = None

    def wait(self) -> float:
        waited = 0.0
        if self.last_call is not None:
            remaining = self.min_interval - (self.clock() - self.last_call)
            if remaining > 0:
                self.sleep(remaining)
                waited = remaining
        self.last_call = self.clock()
        return waited
