"""Normalisation of single-channel grids and the RGBA output sink."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

from frame_stats.statistics import mirror_into

DEFAULT_GAIN = 6.0


class Renderer:
    """Rescale accumulator-like grids into displayable 0-255 intensities."""

    def __init__(self, *, gain: float = DEFAULT_GAIN, logger: Optional[logging.Logger] = None) -> None:
        self.gain = gain
        self.logger = logger or logging.getLogger(__name__)

    def normalize(self, values: np.ndarray) -> np.ndarray:
        """Return ``values`` scaled by ``255 / max * gain``, rounded and clipped.

        An all-zero grid has an infinite scale: zeros stay 0 and every
        non-zero value saturates to 255.
        """
        values = np.asarray(values)
        peak = max(-1, int(values.max())) if values.size else -1

        if peak <= 0:
            self.logger.debug("Normalising grid with max %s; saturating non-zero values", peak)
            return np.where(values > 0, 255, 0).astype(np.uint8)

        scale = 255.0 / peak
        scale *= self.gain
        scaled = np.floor(values.astype(np.float64) * scale + 0.5)
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def render(self, values: np.ndarray, buffer: np.ndarray) -> np.ndarray:
        """Write the normalised grid into channels 0-2 of a copy of ``buffer``."""
        return mirror_into(buffer, self.normalize(values))


class ImageSink:
    """Mutable RGBA output buffer, optionally persisted as PNG on every write."""

    def __init__(self, output_dir: Optional[Path] = None, *, logger: Optional[logging.Logger] = None) -> None:
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.logger = logger or logging.getLogger(__name__)
        self._buffer: Optional[np.ndarray] = None
        self.last_path: Optional[Path] = None

    def ensure_shape(self, shape: Tuple[int, int]) -> None:
        """Allocate an opaque black buffer unless one of ``shape`` already exists."""
        if self._buffer is not None and self._buffer.shape[:2] == tuple(shape):
            return
        height, width = shape
        buffer = np.zeros((height, width, 4), dtype=np.uint8)
        buffer[..., 3] = 255
        self._buffer = buffer

    def read(self) -> np.ndarray:
        if self._buffer is None:
            raise RuntimeError("Output buffer has not been allocated; call ensure_shape first")
        return self._buffer.copy()

    def write(self, buffer: np.ndarray, name: Optional[str] = None) -> Optional[Path]:
        if buffer.ndim != 3 or buffer.shape[2] != 4:
            raise ValueError(f"Expected an RGBA buffer, got shape {buffer.shape}")
        self._buffer = np.array(buffer, dtype=np.uint8, copy=True)
        if self.output_dir is None or name is None:
            return None
        path = self._persist(name)
        self.last_path = path
        return path

    def _persist(self, name: str) -> Path:
        assert self._buffer is not None
        self.output_dir.mkdir(parents=True, exist_ok=True)
        success, encoded = cv2.imencode(".png", cv2.cvtColor(self._buffer, cv2.COLOR_RGBA2BGRA))
        if not success:
            raise RuntimeError(f"Failed to encode output image {name}")

        target = self.output_dir / name
        temp_path = target.with_name(f".tmp_{uuid.uuid4().hex}_{target.name}")
        temp_path.write_bytes(encoded.tobytes())
        temp_path.replace(target)
        self.logger.debug("Wrote %s", target)
        return target


__all__ = ["DEFAULT_GAIN", "ImageSink", "Renderer"]
