"""Bounded in-memory cache of decoded frames."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Optional, Tuple

import cv2
import numpy as np

from frame_stats.models import Frame
from frame_stats.progress import ProgressLogger
from frame_stats.sources import FrameLoadError, FrameSource


class CacheBusyError(RuntimeError):
    """Raised when a load is requested while another one is still running."""


class FrameNotCachedError(KeyError):
    """Raised when reading a frame outside the loaded range."""


class FrameCache:
    """Hold a contiguous, fully decoded range of frames.

    ``load`` decodes every index of ``[start, end]`` on a thread pool and only
    publishes the new range once all of them succeeded. Readers therefore see
    either an empty cache or a complete range, never a partial one.
    """

    def __init__(
        self,
        source: FrameSource,
        *,
        load_workers: int = 4,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.source = source
        self.load_workers = max(1, load_workers)
        self.logger = logger or logging.getLogger(__name__)
        self._frames: Dict[int, Frame] = {}
        self._range: Optional[Tuple[int, int]] = None
        self._swap_lock = threading.Lock()
        self._load_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(
        self,
        start: int,
        end: int,
        on_complete: Optional[Callable[["FrameCache"], None]] = None,
    ) -> "FrameCache":
        if start < 0 or end < start:
            raise ValueError(f"Invalid frame range [{start}, {end}]")
        if not self._load_lock.acquire(blocking=False):
            raise CacheBusyError(
                f"Cannot load [{start}, {end}] while another load is in progress"
            )
        try:
            self.clear()
            frames = self._decode_range(start, end)
            with self._swap_lock:
                self._frames = frames
                self._range = (start, end)
        finally:
            self._load_lock.release()

        self.logger.info("Cached %s frames [%s, %s]", len(frames), start, end)
        if on_complete is not None:
            on_complete(self)
        return self

    def _decode_one(self, index: int) -> Frame:
        try:
            return self.source.decode(index)
        except FrameLoadError:
            raise
        except (OSError, ValueError, cv2.error) as exc:
            raise FrameLoadError(index, str(exc)) from exc

    def _decode_range(self, start: int, end: int) -> Dict[int, Frame]:
        expected = end - start + 1
        frames: Dict[int, Frame] = {}
        shape: Optional[Tuple[int, int]] = None
        progress = ProgressLogger(self.logger, f"Frame loading [{start}, {end}]", expected)

        with ThreadPoolExecutor(max_workers=self.load_workers) as executor:
            futures = {
                executor.submit(self._decode_one, index): index
                for index in range(start, end + 1)
            }
            try:
                for future in as_completed(futures):
                    frame = future.result()
                    if shape is None:
                        shape = frame.shape
                    elif frame.shape != shape:
                        raise FrameLoadError(
                            futures[future],
                            f"size {frame.width}x{frame.height} differs from "
                            f"{shape[1]}x{shape[0]}",
                        )
                    frames[futures[future]] = frame
                    progress.advance()
            except FrameLoadError:
                for pending in futures:
                    pending.cancel()
                raise

        if len(frames) != expected:
            raise FrameLoadError(end, f"only {len(frames)} of {expected} frames completed")
        return frames

    def clear(self) -> None:
        with self._swap_lock:
            self._frames = {}
            self._range = None

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def start(self) -> Optional[int]:
        return self._range[0] if self._range else None

    @property
    def end(self) -> Optional[int]:
        return self._range[1] if self._range else None

    @property
    def shape(self) -> Optional[Tuple[int, int]]:
        with self._swap_lock:
            if not self._frames:
                return None
            return next(iter(self._frames.values())).shape

    def __len__(self) -> int:
        return len(self._frames)

    def holds(self, start: int, end: int) -> bool:
        """Return ``True`` when ``[start, end]`` is fully resident."""
        current = self._range
        return current is not None and current[0] <= start and end <= current[1]

    def get(self, index: int) -> Frame:
        with self._swap_lock:
            frame = self._frames.get(index)
            current = self._range
        if frame is None:
            if current is None:
                raise FrameNotCachedError(f"Frame {index} requested before any load completed")
            raise FrameNotCachedError(
                f"Frame {index} is outside the cached range [{current[0]}, {current[1]}]"
            )
        return frame

    def channel_stack(self, start: int, end: int, rows: slice = slice(None)) -> np.ndarray:
        """Return channel 0 of frames ``[start, end]`` as a ``(T, H, W)`` array.

        ``rows`` restricts the stack to a band of image rows.
        """
        if end < start:
            raise ValueError(f"Invalid frame range [{start}, {end}]")
        return np.stack(
            [self.get(index).channel0[rows] for index in range(start, end + 1)],
            axis=0,
        )


__all__ = ["CacheBusyError", "FrameCache", "FrameNotCachedError"]
