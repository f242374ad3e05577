"""Fixed-cadence scheduling for animated heatmap sequences."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from frame_stats.models import HeatmapResult


def run_heatmap_sequence(
    analyzer: Any,
    start: int,
    end: int,
    length: int,
    *,
    interval_ms: int = 20,
    logger: Optional[logging.Logger] = None,
) -> List[HeatmapResult]:
    """Render ``[s, s + length - 1]`` heatmaps for successive ``s``, one per tick.

    The first window starts at ``start`` and windows keep advancing by one
    frame while ``s + length < end``. The scheduler stops itself after the
    final window or on the first rendering error, which is re-raised.
    """
    log = logger or analyzer.logger
    starts = analyzer.prepare_sequence(start, end, length)
    pending = iter(starts)
    results: List[HeatmapResult] = []
    errors: List[Exception] = []

    scheduler = BlockingScheduler()

    def stop() -> None:
        if scheduler.running:
            scheduler.shutdown(wait=False)

    def render_next() -> None:
        window_start = next(pending, None)
        if window_start is None:
            stop()
            return
        try:
            results.append(analyzer.render_heatmap(window_start, window_start + length - 1))
        except Exception as exc:
            log.error("Heatmap window starting at %s failed: %s", window_start, exc)
            errors.append(exc)
            stop()
            return
        if len(results) == len(starts):
            stop()

    scheduler.add_job(
        render_next,
        trigger=IntervalTrigger(seconds=interval_ms / 1000.0),
        id="heatmap_sequence",
        name="Heatmap Sequence",
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(),
    )

    log.info(
        "Starting heatmap sequence: %s windows of %s frames every %sms",
        len(starts),
        length,
        interval_ms,
    )
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        log.info("Heatmap sequence stopped after %s windows", len(results))
        stop()

    if errors:
        raise errors[0]
    return results


__all__ = ["run_heatmap_sequence"]
