"""Frame sources that decode numbered PNG frames into RGBA sample grids."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol

import cv2
import numpy as np
import requests

from frame_stats.config import DEFAULT_FRAME_PATTERN, SourceSettings
from frame_stats.models import Frame


class FrameLoadError(RuntimeError):
    """Raised when a single frame cannot be fetched or decoded."""

    def __init__(self, index: int, reason: str) -> None:
        super().__init__(f"Failed to load frame {index}: {reason}")
        self.index = index
        self.reason = reason


def frame_filename(index: int, pattern: str = DEFAULT_FRAME_PATTERN) -> str:
    """Return the file name for ``index`` (``frame000042.png`` by default)."""
    if index < 0:
        raise ValueError(f"Frame index must be non-negative, got {index}")
    return pattern.format(index=index)


class FrameSource(Protocol):
    """Anything able to decode the frame for an index."""

    def decode(self, index: int) -> Frame:
        ...


class DirectoryFrameSource:
    """Read numbered frames from a directory on disk."""

    def __init__(
        self,
        root: Path,
        *,
        pattern: str = DEFAULT_FRAME_PATTERN,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.root = Path(root)
        self.pattern = pattern
        self.logger = logger or logging.getLogger(__name__)

    def path_for(self, index: int) -> Path:
        return self.root / frame_filename(index, self.pattern)

    def decode(self, index: int) -> Frame:
        path = self.path_for(index)
        if not path.exists():
            raise FrameLoadError(index, f"{path} does not exist")
        image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if image is None:
            raise FrameLoadError(index, f"OpenCV could not decode {path}")
        self.logger.debug("Decoded frame %s from %s", index, path)
        return Frame.from_decoded(index, image)


class HttpFrameSource:
    """Fetch numbered frames from ``<base_url>/<filename>``."""

    def __init__(
        self,
        base_url: str,
        *,
        pattern: str = DEFAULT_FRAME_PATTERN,
        http_timeout: int = 10,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.pattern = pattern
        self.http_timeout = http_timeout
        self.logger = logger or logging.getLogger(__name__)

    def url_for(self, index: int) -> str:
        return f"{self.base_url}/{frame_filename(index, self.pattern)}"

    def decode(self, index: int) -> Frame:
        url = self.url_for(index)
        try:
            response = requests.get(url, timeout=self.http_timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FrameLoadError(index, f"request for {url} failed: {exc}") from exc

        buffer = np.frombuffer(response.content, dtype=np.uint8)
        image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED) if buffer.size else None
        if image is None:
            raise FrameLoadError(index, f"OpenCV could not decode response from {url}")
        self.logger.debug("Downloaded frame %s from %s", index, url)
        return Frame.from_decoded(index, image)


def build_frame_source(settings: SourceSettings, logger: Optional[logging.Logger] = None) -> FrameSource:
    """Pick the configured source, preferring a local directory over HTTP."""
    if settings.frame_dir is not None:
        return DirectoryFrameSource(
            settings.frame_dir,
            pattern=settings.filename_pattern,
            logger=logger,
        )
    if settings.base_url:
        return HttpFrameSource(
            settings.base_url,
            pattern=settings.filename_pattern,
            http_timeout=settings.http_timeout,
            logger=logger,
        )
    raise ValueError("No frame source configured; set source.frame_dir or source.base_url")


__all__ = [
    "DirectoryFrameSource",
    "FrameLoadError",
    "FrameSource",
    "HttpFrameSource",
    "build_frame_source",
    "frame_filename",
]
