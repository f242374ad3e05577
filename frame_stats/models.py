"""Data models shared by the frame statistics pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np


@dataclass(frozen=True)
class Frame:
    """Decoded RGBA samples for a single frame index.

    ``samples`` has shape ``(height, width, 4)``. Only channel 0 feeds the
    statistics; the array is read-only once the frame is built.
    """

    index: int
    samples: np.ndarray

    def __post_init__(self) -> None:
        samples = np.asarray(self.samples)
        if samples.ndim != 3 or samples.shape[2] != 4:
            raise ValueError(
                f"Frame {self.index} expects (height, width, 4) samples, got {samples.shape}"
            )
        samples = np.ascontiguousarray(samples, dtype=np.uint8)
        samples.flags.writeable = False
        object.__setattr__(self, "samples", samples)

    @property
    def width(self) -> int:
        return int(self.samples.shape[1])

    @property
    def height(self) -> int:
        return int(self.samples.shape[0])

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height, self.width

    @property
    def channel0(self) -> np.ndarray:
        return self.samples[:, :, 0]

    @classmethod
    def from_decoded(cls, index: int, image: np.ndarray) -> "Frame":
        """Build a frame from OpenCV decoder output (grey, BGR or BGRA)."""
        if image.ndim == 2 or image.shape[2] == 1:
            rgba = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
        elif image.shape[2] == 3:
            rgba = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
        elif image.shape[2] == 4:
            rgba = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
        else:
            raise ValueError(f"Unsupported channel count {image.shape[2]} for frame {index}")
        if rgba.dtype != np.uint8:
            # 16-bit PNGs keep the top byte
            rgba = (rgba >> 8).astype(np.uint8) if rgba.dtype == np.uint16 else rgba.astype(np.uint8)
        return cls(index=index, samples=rgba)

    @classmethod
    def from_channel(cls, index: int, values: np.ndarray) -> "Frame":
        """Build an opaque frame whose RGB channels all mirror ``values``."""
        values = np.asarray(values, dtype=np.uint8)
        samples = np.empty(values.shape + (4,), dtype=np.uint8)
        samples[..., 0] = values
        samples[..., 1] = values
        samples[..., 2] = values
        samples[..., 3] = 255
        return cls(index=index, samples=samples)


@dataclass
class HeatmapResult:
    """Accumulated differences for a frame range and their rendered image."""

    start: int
    end: int
    accumulator: np.ndarray
    image: np.ndarray

    @property
    def center_frame(self) -> int:
        return (self.start + self.end) // 2


@dataclass
class BackgroundModel:
    """Per-pixel outcome of the lowest-deviation window search.

    ``best_start`` holds the winning window's first frame index, or ``-1``
    where no window fits and the sentinel colour was written instead.
    """

    image: np.ndarray
    mean: np.ndarray
    best_start: np.ndarray
    best_stdev: np.ndarray
    window_size: int
    frame_count: int

    @property
    def failed_pixels(self) -> int:
        return int(np.count_nonzero(self.best_start < 0))


__all__ = [
    "BackgroundModel",
    "Frame",
    "HeatmapResult",
]
