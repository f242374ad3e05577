"""Helpers for estimating and logging progress of long frame passes."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from time import perf_counter


def _format_duration(seconds: float) -> str:
    """Return a compact human-readable duration string."""
    total_seconds = int(round(seconds))
    if total_seconds <= 0:
        return "<1s"
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds_remaining = divmod(remainder, 60)
    if hours:
        return f"{hours}h{minutes:02d}m{seconds_remaining:02d}s"
    if minutes:
        return f"{minutes}m{seconds_remaining:02d}s"
    return f"{seconds_remaining}s"


def eta_string(elapsed: float, completed: int, total: int) -> str:
    """Format an ETA string given elapsed time and progress counters."""
    if completed <= 0 or total <= 0 or completed > total or elapsed <= 0.0:
        return "ETA estimating"

    estimated_total = elapsed * total / completed
    remaining = max(0.0, estimated_total - elapsed)
    finish_time = datetime.now() + timedelta(seconds=remaining)
    return f"ETA {_format_duration(remaining)} (finish {finish_time.strftime('%H:%M:%S')})"


class ProgressLogger:
    """Log ``completed/total`` roughly every five percent of a pass."""

    def __init__(self, logger: logging.Logger, label: str, total: int) -> None:
        self.logger = logger
        self.label = label
        self.total = total
        self.completed = 0
        self.interval = max(1, total // 20)
        self._started = perf_counter()
        self._lock = threading.Lock()

    def advance(self, step: int = 1) -> None:
        with self._lock:
            previous = self.completed
            self.completed += step
            completed = self.completed
        if self.total <= 0:
            return
        crossed = completed // self.interval != previous // self.interval
        if crossed or completed == self.total:
            percent = (completed / self.total) * 100.0
            elapsed = perf_counter() - self._started
            self.logger.info(
                "%s: %s/%s (%0.1f%%, %s)",
                self.label,
                completed,
                self.total,
                percent,
                eta_string(elapsed, completed, self.total),
            )


__all__ = ["ProgressLogger", "eta_string"]
