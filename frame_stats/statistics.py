"""Per-pixel temporal statistics over a cached frame range.

Three passes live here:

* :class:`DifferenceAccumulator` sums absolute channel-0 differences between
  consecutive frames (the heatmap input).
* :class:`MeanModel` floors the per-pixel mean over a range.
* :class:`VarianceWindowSearch` picks, for every pixel, the fixed-length
  window with the smallest deviation and emits its first-frame sample.

Every pass is vectorised across pixels. The window search additionally splits
the image into row bands processed on a thread pool; window sums come from
integer cumulative sums, so the winners match a naive nested loop exactly.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

import numpy as np

from frame_stats.cache import FrameCache
from frame_stats.config import DEFAULT_SENTINEL_COLOR, SEMANTICS_CORRECTED, SEMANTICS_FAITHFUL
from frame_stats.models import BackgroundModel
from frame_stats.progress import ProgressLogger

# Upper bound on int64 elements held per row band during the window search.
BAND_ELEMENT_BUDGET = 4_000_000


def _check_semantics(semantics: str) -> str:
    if semantics not in (SEMANTICS_FAITHFUL, SEMANTICS_CORRECTED):
        raise ValueError(f"Unknown statistics semantics: {semantics!r}")
    return semantics


def mirror_into(buffer: np.ndarray, values: np.ndarray) -> np.ndarray:
    """Copy ``buffer`` and write ``values`` into its RGB channels, keeping alpha."""
    if buffer.shape[:2] != values.shape:
        raise ValueError(
            f"Output buffer {buffer.shape[:2]} does not match values {values.shape}"
        )
    output = buffer.copy()
    output[..., 0] = values
    output[..., 1] = values
    output[..., 2] = values
    return output


class DifferenceAccumulator:
    """Accumulate absolute inter-frame differences per pixel.

    With ``"faithful"`` semantics the final consecutive pair of the range is
    skipped, i.e. pairs ``(i, i + 1)`` for ``i`` in ``[start, end - 2]``.
    ``"corrected"`` includes it.
    """

    def __init__(self, semantics: str = SEMANTICS_FAITHFUL) -> None:
        self.semantics = _check_semantics(semantics)

    def last_pair_start(self, start: int, end: int) -> int:
        return end - 2 if self.semantics == SEMANTICS_FAITHFUL else end - 1

    def accumulate(self, cache: FrameCache, start: int, end: int) -> np.ndarray:
        if end < start:
            raise ValueError(f"Invalid frame range [{start}, {end}]")

        accum = np.zeros(cache.get(start).shape, dtype=np.int64)
        previous = cache.get(start).channel0.astype(np.int16)
        for index in range(start, self.last_pair_start(start, end) + 1):
            current = cache.get(index + 1).channel0.astype(np.int16)
            accum += np.abs(previous - current)
            previous = current
        return accum


class MeanModel:
    """Floored per-pixel mean of channel 0 across a frame range."""

    def compute_mean(self, cache: FrameCache, start: int, end: int) -> np.ndarray:
        if end < start:
            raise ValueError(f"Invalid frame range [{start}, {end}]")

        total = np.zeros(cache.get(start).shape, dtype=np.int64)
        for index in range(start, end + 1):
            total += cache.get(index).channel0
        count = end - start + 1
        return (total // count).astype(np.uint8)

    @staticmethod
    def write(mean: np.ndarray, buffer: np.ndarray) -> np.ndarray:
        return mirror_into(buffer, mean)


class VarianceWindowSearch:
    """Select each pixel's most stable window of ``window_size`` frames.

    ``"faithful"`` ranks windows by ``sqrt(sum((x - mean) ** 2))`` against the
    precomputed mean, without dividing by the window size. ``"corrected"``
    ranks them by the population standard deviation around the window's own
    mean. In both cases the earliest window wins ties.
    """

    def __init__(
        self,
        *,
        semantics: str = SEMANTICS_FAITHFUL,
        sentinel_color: Sequence[int] = DEFAULT_SENTINEL_COLOR,
        workers: int = 1,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.semantics = _check_semantics(semantics)
        self.sentinel_color = tuple(int(channel) for channel in sentinel_color)
        self.workers = max(1, workers)
        self.logger = logger or logging.getLogger(__name__)

    def search(
        self,
        cache: FrameCache,
        mean: np.ndarray,
        frame_count: int,
        window_size: int,
        buffer: np.ndarray,
        *,
        first_frame: Optional[int] = None,
    ) -> BackgroundModel:
        """Search windows starting at ``first_frame + s`` for ``s`` in ``[0, frame_count - window_size]``.

        ``first_frame`` defaults to the start of the cached range. ``mean`` may
        be the 2-D mean image or an RGBA buffer holding it in channel 0.
        """
        if window_size <= 0:
            raise ValueError(f"Window size must be positive, got {window_size}")
        if mean.ndim == 3:
            mean = mean[..., 0]

        height, width = buffer.shape[:2]
        if mean.shape != (height, width):
            raise ValueError(f"Mean image {mean.shape} does not match buffer {(height, width)}")

        best_start = np.full((height, width), -1, dtype=np.int64)
        best_stdev = np.full((height, width), np.inf, dtype=np.float64)
        values = np.zeros((height, width), dtype=np.uint8)

        window_count = frame_count - window_size + 1
        if window_count <= 0:
            self.logger.warning(
                "No %s-frame window fits in %s frames; marking every pixel as failed",
                window_size,
                frame_count,
            )
        else:
            if first_frame is None:
                first_frame = cache.start if cache.start is not None else 0
            bands = self._row_bands(height, width, frame_count)
            progress = ProgressLogger(self.logger, "Background window search", len(bands))

            def run_band(rows: slice) -> None:
                stack = cache.channel_stack(first_frame, first_frame + frame_count - 1, rows)
                offsets, stdev, picked = self._search_band(stack, mean[rows], window_size)
                best_start[rows] = offsets + first_frame
                best_stdev[rows] = stdev
                values[rows] = picked
                progress.advance()

            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                for future in [executor.submit(run_band, rows) for rows in bands]:
                    future.result()

        image = mirror_into(buffer, values)
        failed = best_start < 0
        if np.any(failed):
            image[failed, 0] = self.sentinel_color[0]
            image[failed, 1] = self.sentinel_color[1]
            image[failed, 2] = self.sentinel_color[2]

        return BackgroundModel(
            image=image,
            mean=mean.astype(np.uint8),
            best_start=best_start,
            best_stdev=best_stdev,
            window_size=window_size,
            frame_count=frame_count,
        )

    @staticmethod
    def _row_bands(height: int, width: int, frame_count: int) -> List[slice]:
        rows_per_band = max(1, BAND_ELEMENT_BUDGET // max(1, frame_count * width))
        return [
            slice(top, min(height, top + rows_per_band))
            for top in range(0, height, rows_per_band)
        ]

    def _search_band(
        self,
        stack: np.ndarray,
        mean: np.ndarray,
        window_size: int,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        samples = stack.astype(np.int64)

        if self.semantics == SEMANTICS_FAITHFUL:
            deviation = samples - mean.astype(np.int64)
            scores = self._window_sums(deviation * deviation, window_size)
        else:
            sums = self._window_sums(samples, window_size)
            squares = self._window_sums(samples * samples, window_size)
            # window_size ** 2 * variance, kept integral so ties stay exact
            scores = window_size * squares - sums * sums

        winner = np.argmin(scores, axis=0)
        best_score = np.take_along_axis(scores, winner[None], axis=0)[0]
        if self.semantics == SEMANTICS_FAITHFUL:
            stdev = np.sqrt(best_score.astype(np.float64))
        else:
            stdev = np.sqrt(best_score.astype(np.float64)) / window_size

        picked = np.take_along_axis(stack, winner[None], axis=0)[0]
        return winner, stdev, picked

    @staticmethod
    def _window_sums(values: np.ndarray, window_size: int) -> np.ndarray:
        cumulative = np.zeros((values.shape[0] + 1,) + values.shape[1:], dtype=np.int64)
        np.cumsum(values, axis=0, out=cumulative[1:])
        return cumulative[window_size:] - cumulative[:-window_size]


__all__ = [
    "BAND_ELEMENT_BUDGET",
    "DifferenceAccumulator",
    "MeanModel",
    "VarianceWindowSearch",
    "mirror_into",
]
