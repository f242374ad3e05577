import math
import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import frame_stats.statistics as statistics_module  # noqa: E402
from frame_stats.cache import FrameCache  # noqa: E402
from frame_stats.models import Frame  # noqa: E402
from frame_stats.sources import FrameLoadError  # noqa: E402
from frame_stats.statistics import (  # noqa: E402
    DifferenceAccumulator,
    MeanModel,
    VarianceWindowSearch,
)


class ArraySource:
    def __init__(self, frames):
        self.frames = {index: np.asarray(values, dtype=np.uint8) for index, values in enumerate(frames)}

    def decode(self, index):
        if index not in self.frames:
            raise FrameLoadError(index, "missing")
        return Frame.from_channel(index, self.frames[index])


def cache_from_series(series, shape=(1, 1)):
    """Cache one frame per value in ``series``, every pixel holding that value."""
    frames = [np.full(shape, value, dtype=np.uint8) for value in series]
    return FrameCache(ArraySource(frames), load_workers=2).load(0, len(frames) - 1)


def cache_from_pixels(pixel_series):
    """Cache frames for a 1xN image where pixel ``i`` follows ``pixel_series[i]``."""
    length = len(pixel_series[0])
    frames = [
        np.array([[series[t] for series in pixel_series]], dtype=np.uint8)
        for t in range(length)
    ]
    return FrameCache(ArraySource(frames), load_workers=2).load(0, length - 1)


def opaque_buffer(shape, alpha=255):
    buffer = np.zeros(shape + (4,), dtype=np.uint8)
    buffer[..., 3] = alpha
    return buffer


def naive_search(stack, mean, window_size):
    frame_count = stack.shape[0]
    height, width = mean.shape
    best_start = np.full((height, width), -1, dtype=np.int64)
    picked = np.zeros((height, width), dtype=np.uint8)
    for y in range(height):
        for x in range(width):
            best = 99999999.0
            for start in range(0, frame_count - window_size + 1):
                total = 0
                for frame in range(start, start + window_size):
                    diff = int(stack[frame, y, x]) - int(mean[y, x])
                    total += diff * diff
                stdev = math.sqrt(total)
                if stdev < best:
                    best = stdev
                    best_start[y, x] = start
            picked[y, x] = stack[best_start[y, x], y, x]
    return best_start, picked


def test_accumulator_stops_one_pair_short_of_range_end():
    cache = cache_from_series([10, 12, 11, 50, 12])

    faithful = DifferenceAccumulator("faithful").accumulate(cache, 0, 4)
    corrected = DifferenceAccumulator("corrected").accumulate(cache, 0, 4)

    # pairs (0,1), (1,2), (2,3); the 50 -> 12 transition is skipped
    assert int(faithful[0, 0]) == 2 + 1 + 39
    assert int(corrected[0, 0]) == 2 + 1 + 39 + 38


def test_accumulator_shape_and_bounds():
    rng = np.random.default_rng(7)
    frames = [rng.integers(0, 256, size=(3, 5), dtype=np.uint8) for _ in range(6)]
    frames[0][:] = 0
    frames[1][:] = 255
    cache = FrameCache(ArraySource(frames), load_workers=3).load(0, 5)

    accum = DifferenceAccumulator().accumulate(cache, 0, 5)

    assert accum.shape == (3, 5)
    assert np.issubdtype(accum.dtype, np.integer)
    assert accum.min() >= 0
    assert accum.max() <= 255 * (6 - 2)


def test_accumulator_single_frame_range_is_zero():
    cache = cache_from_series([10, 200])

    assert int(DifferenceAccumulator().accumulate(cache, 0, 0).sum()) == 0
    assert int(DifferenceAccumulator().accumulate(cache, 1, 1).sum()) == 0


def test_accumulator_rejects_reversed_range():
    cache = cache_from_series([1, 2, 3])

    with pytest.raises(ValueError):
        DifferenceAccumulator().accumulate(cache, 2, 1)


def test_accumulator_rejects_unknown_semantics():
    with pytest.raises(ValueError):
        DifferenceAccumulator("exact")


def test_mean_of_constant_frames_is_constant():
    cache = cache_from_series([137] * 4, shape=(2, 3))

    mean = MeanModel().compute_mean(cache, 0, 3)

    assert mean.dtype == np.uint8
    assert mean.shape == (2, 3)
    assert np.all(mean == 137)


def test_mean_is_floored_and_mirrored_without_touching_alpha():
    cache = cache_from_series([1, 2])

    mean = MeanModel().compute_mean(cache, 0, 1)
    image = MeanModel.write(mean, opaque_buffer((1, 1), alpha=42))

    assert int(mean[0, 0]) == 1
    assert image[0, 0].tolist() == [1, 1, 1, 42]


def test_window_search_selects_zero_variance_window():
    cache = cache_from_pixels([
        [0, 100, 100, 100, 200],
        [40, 40, 40, 40, 40],
    ])
    mean = MeanModel().compute_mean(cache, 0, 4)

    model = VarianceWindowSearch().search(cache, mean, 5, 3, opaque_buffer((1, 2)))

    assert model.best_start.tolist() == [[1, 0]]
    assert model.best_stdev.tolist() == [[0.0, 0.0]]
    assert model.image[0, 0].tolist() == [100, 100, 100, 255]
    assert model.image[0, 1].tolist() == [40, 40, 40, 255]
    assert model.failed_pixels == 0


def test_window_search_metric_is_root_of_summed_squares():
    # mean 52; windows of two: 8, 68, 68, 8
    cache = cache_from_series([50, 50, 60, 50, 50])
    mean = MeanModel().compute_mean(cache, 0, 4)

    model = VarianceWindowSearch().search(cache, mean, 5, 2, opaque_buffer((1, 1)))

    assert int(mean[0, 0]) == 52
    assert int(model.best_start[0, 0]) == 0  # earliest of the tied windows
    assert model.best_stdev[0, 0] == pytest.approx(math.sqrt(8))


def test_corrected_semantics_ranks_by_window_spread():
    series = [5, 5, 5, 80, 90, 70, 85]
    cache = cache_from_series(series)
    mean = MeanModel().compute_mean(cache, 0, len(series) - 1)

    faithful = VarianceWindowSearch(semantics="faithful").search(
        cache, mean, len(series), 3, opaque_buffer((1, 1))
    )
    corrected = VarianceWindowSearch(semantics="corrected").search(
        cache, mean, len(series), 3, opaque_buffer((1, 1))
    )

    assert int(faithful.best_start[0, 0]) == 3
    assert int(faithful.image[0, 0, 0]) == 80
    assert int(corrected.best_start[0, 0]) == 0
    assert int(corrected.image[0, 0, 0]) == 5
    assert corrected.best_stdev[0, 0] == 0.0


def test_window_search_marks_every_pixel_when_no_window_fits():
    cache = cache_from_series([10, 20, 30], shape=(2, 2))
    mean = MeanModel().compute_mean(cache, 0, 2)

    model = VarianceWindowSearch().search(cache, mean, 3, 5, opaque_buffer((2, 2), alpha=77))

    assert model.failed_pixels == 4
    assert np.all(model.best_start == -1)
    assert np.all(np.isinf(model.best_stdev))
    for pixel in model.image.reshape(-1, 4):
        assert pixel.tolist() == [255, 0, 0, 77]


def test_window_search_uses_configured_sentinel_color():
    cache = cache_from_series([10, 20])
    mean = MeanModel().compute_mean(cache, 0, 1)

    model = VarianceWindowSearch(sentinel_color=(0, 0, 255)).search(
        cache, mean, 2, 3, opaque_buffer((1, 1))
    )

    assert model.image[0, 0].tolist() == [0, 0, 255, 255]


def test_window_search_accepts_rgba_mean_buffer():
    cache = cache_from_series([0, 100, 100, 100, 200])
    mean = MeanModel().compute_mean(cache, 0, 4)
    mean_image = MeanModel.write(mean, opaque_buffer((1, 1)))

    model = VarianceWindowSearch().search(cache, mean_image, 5, 3, mean_image)

    assert int(model.best_start[0, 0]) == 1


def test_banded_parallel_search_matches_naive_loops(monkeypatch):
    monkeypatch.setattr(statistics_module, "BAND_ELEMENT_BUDGET", 24)
    rng = np.random.default_rng(3)
    frames = [rng.integers(0, 256, size=(5, 4), dtype=np.uint8) for _ in range(9)]
    cache = FrameCache(ArraySource(frames), load_workers=2).load(0, 8)
    mean = MeanModel().compute_mean(cache, 0, 8)

    model = VarianceWindowSearch(workers=3).search(cache, mean, 9, 4, opaque_buffer((5, 4)))
    expected_start, expected_values = naive_search(np.stack(frames), mean, 4)

    assert np.array_equal(model.best_start, expected_start)
    assert np.array_equal(model.image[..., 0], expected_values)
    assert np.array_equal(model.image[..., 1], expected_values)
