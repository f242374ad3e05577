"""High-level entry points tying the cache, statistics and output sink together."""

from __future__ import annotations

import logging
from time import perf_counter
from typing import List, Optional

import numpy as np

from frame_stats.cache import FrameCache
from frame_stats.config import Config
from frame_stats.models import BackgroundModel, HeatmapResult
from frame_stats.rendering import ImageSink, Renderer
from frame_stats.scheduler import run_heatmap_sequence
from frame_stats.sources import FrameSource, build_frame_source
from frame_stats.statistics import DifferenceAccumulator, MeanModel, VarianceWindowSearch


class FrameAnalyzer:
    """Facade running heatmap and background-model analyses for one frame source."""

    def __init__(
        self,
        config: Config,
        *,
        source: Optional[FrameSource] = None,
        sink: Optional[ImageSink] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.logger = logger or logging.getLogger("frame_stats")
        semantics = config.global_settings.semantics

        self.source = source or build_frame_source(config.source, self.logger)
        self.cache = FrameCache(
            self.source,
            load_workers=config.source.load_workers,
            logger=self.logger,
        )
        self.sink = sink or ImageSink(config.global_settings.output_dir, logger=self.logger)
        self.renderer = Renderer(gain=config.heatmap.gain, logger=self.logger)
        self.accumulator = DifferenceAccumulator(semantics)
        self.mean_model = MeanModel()
        self.window_search = VarianceWindowSearch(
            semantics=semantics,
            sentinel_color=config.background.sentinel_color,
            workers=config.background.search_workers,
            logger=self.logger,
        )

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    def ensure_cached(self, start: int, end: int) -> FrameCache:
        """Load ``[start, end]`` unless the cache already holds it."""
        if not self.cache.holds(start, end):
            self.cache.load(start, end)
        shape = self.cache.shape
        if shape is not None:
            self.sink.ensure_shape(shape)
        return self.cache

    # ------------------------------------------------------------------
    # Heatmaps
    # ------------------------------------------------------------------

    def heatmap(self, start: Optional[int] = None, end: Optional[int] = None) -> HeatmapResult:
        start = self.config.heatmap.start if start is None else start
        end = self.config.heatmap.end if end is None else end
        self.ensure_cached(start, end)
        return self.render_heatmap(start, end)

    def render_heatmap(self, start: int, end: int) -> HeatmapResult:
        """Accumulate and render ``[start, end]`` from frames already cached."""
        accumulator = self.accumulator.accumulate(self.cache, start, end)
        image = self.renderer.render(accumulator, self.sink.read())
        result = HeatmapResult(start=start, end=end, accumulator=accumulator, image=image)
        self.sink.write(image, f"heatmap_{result.center_frame:06d}.png")
        self.logger.info(
            "Heatmap [%s, %s] centred on frame %s (peak %s)",
            start,
            end,
            result.center_frame,
            int(accumulator.max()) if accumulator.size else 0,
        )
        return result

    def sequence_starts(self, start: int, end: int, length: int) -> List[int]:
        """Window starts for an animated sequence; always at least ``start``."""
        if length <= 0:
            raise ValueError(f"Sequence window length must be positive, got {length}")
        starts = [start]
        while starts[-1] + length < end:
            starts.append(starts[-1] + 1)
        return starts

    def prepare_sequence(self, start: int, end: int, length: int) -> List[int]:
        starts = self.sequence_starts(start, end, length)
        self.ensure_cached(start, max(end - 1, starts[-1] + length - 1))
        return starts

    def heatmap_sequence(
        self,
        start: Optional[int] = None,
        end: Optional[int] = None,
        length: Optional[int] = None,
        *,
        interval_ms: Optional[int] = None,
    ) -> List[HeatmapResult]:
        """Render sliding-window heatmaps, one per scheduler tick."""
        settings = self.config.heatmap
        return run_heatmap_sequence(
            self,
            settings.sequence_start if start is None else start,
            settings.sequence_end if end is None else end,
            settings.sequence_length if length is None else length,
            interval_ms=settings.sequence_interval_ms if interval_ms is None else interval_ms,
        )

    # ------------------------------------------------------------------
    # Background models
    # ------------------------------------------------------------------

    def background_mean(self, frame_count: Optional[int] = None) -> np.ndarray:
        frame_count = self.config.background.frame_count if frame_count is None else frame_count
        if frame_count <= 0:
            raise ValueError(f"Frame count must be positive, got {frame_count}")
        self.ensure_cached(0, frame_count - 1)

        mean = self.mean_model.compute_mean(self.cache, 0, frame_count - 1)
        self.sink.write(self.mean_model.write(mean, self.sink.read()), "background_mean.png")
        self.logger.info("Mean background computed over %s frames", frame_count)
        return mean

    def background_stdev(
        self,
        frame_count: Optional[int] = None,
        window_size: Optional[int] = None,
    ) -> BackgroundModel:
        frame_count = self.config.background.frame_count if frame_count is None else frame_count
        window_size = self.config.background.window_size if window_size is None else window_size

        self.background_mean(frame_count)
        started = perf_counter()
        model = self.window_search.search(
            self.cache,
            self.sink.read(),
            frame_count,
            window_size,
            self.sink.read(),
            first_frame=0,
        )
        self.sink.write(model.image, "background_stdev.png")
        self.logger.info(
            "Lowest-deviation background (%s-frame windows over %s frames) done in %.2fs; %s pixels failed",
            window_size,
            frame_count,
            perf_counter() - started,
            model.failed_pixels,
        )
        return model


__all__ = ["FrameAnalyzer"]
