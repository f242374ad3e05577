import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import cv2
import numpy as np
import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from frame_stats.config import SourceSettings  # noqa: E402
from frame_stats.sources import (  # noqa: E402
    DirectoryFrameSource,
    FrameLoadError,
    HttpFrameSource,
    build_frame_source,
    frame_filename,
)


def write_bgr_frame(path: Path, bgr: tuple[int, int, int], shape=(3, 4)) -> None:
    image = np.zeros(shape + (3,), dtype=np.uint8)
    image[...] = bgr
    cv2.imwrite(str(path), image)


def test_frame_filename_is_zero_padded():
    assert frame_filename(7) == "frame000007.png"
    assert frame_filename(1500) == "frame001500.png"
    assert frame_filename(3, "img_{index:04d}.jpg") == "img_0003.jpg"


def test_frame_filename_rejects_negative_index():
    with pytest.raises(ValueError):
        frame_filename(-1)


def test_directory_source_converts_bgr_to_rgba(tmp_path):
    write_bgr_frame(tmp_path / "frame000002.png", (10, 20, 30))

    frame = DirectoryFrameSource(tmp_path).decode(2)

    assert frame.index == 2
    assert (frame.height, frame.width) == (3, 4)
    assert frame.samples[0, 0].tolist() == [30, 20, 10, 255]
    assert int(frame.channel0[1, 1]) == 30


def test_directory_source_keeps_alpha(tmp_path):
    image = np.zeros((2, 2, 4), dtype=np.uint8)
    image[..., 2] = 200
    image[..., 3] = 64
    cv2.imwrite(str(tmp_path / "frame000000.png"), image)

    frame = DirectoryFrameSource(tmp_path).decode(0)

    assert frame.samples[0, 0].tolist() == [200, 0, 0, 64]


def test_directory_source_reads_greyscale(tmp_path):
    cv2.imwrite(str(tmp_path / "frame000001.png"), np.full((2, 2), 77, dtype=np.uint8))

    frame = DirectoryFrameSource(tmp_path).decode(1)

    assert frame.samples[1, 1].tolist() == [77, 77, 77, 255]


def test_directory_source_missing_frame_raises(tmp_path):
    with pytest.raises(FrameLoadError) as excinfo:
        DirectoryFrameSource(tmp_path).decode(5)

    assert excinfo.value.index == 5


def test_directory_source_undecodable_frame_raises(tmp_path):
    (tmp_path / "frame000000.png").write_bytes(b"not a png")

    with pytest.raises(FrameLoadError):
        DirectoryFrameSource(tmp_path).decode(0)


def test_http_source_fetches_and_decodes():
    image = np.zeros((2, 3, 3), dtype=np.uint8)
    image[...] = (1, 2, 3)
    success, encoded = cv2.imencode(".png", image)
    assert success

    response = MagicMock()
    response.content = encoded.tobytes()
    response.raise_for_status.return_value = None

    source = HttpFrameSource("https://frames.example/clip/", http_timeout=4)
    with patch("frame_stats.sources.requests.get", return_value=response) as mock_get:
        frame = source.decode(12)

    mock_get.assert_called_once_with("https://frames.example/clip/frame000012.png", timeout=4)
    assert frame.samples[0, 0].tolist() == [3, 2, 1, 255]


def test_http_source_wraps_request_errors():
    source = HttpFrameSource("https://frames.example")
    with patch(
        "frame_stats.sources.requests.get",
        side_effect=requests.ConnectionError("refused"),
    ):
        with pytest.raises(FrameLoadError) as excinfo:
            source.decode(0)

    assert "refused" in str(excinfo.value)


def test_http_source_rejects_empty_body():
    response = MagicMock()
    response.content = b""
    response.raise_for_status.return_value = None

    with patch("frame_stats.sources.requests.get", return_value=response):
        with pytest.raises(FrameLoadError):
            HttpFrameSource("https://frames.example").decode(1)


def test_build_frame_source_prefers_directory(tmp_path):
    settings = SourceSettings(frame_dir=tmp_path, base_url="https://frames.example")

    assert isinstance(build_frame_source(settings), DirectoryFrameSource)
    assert isinstance(
        build_frame_source(SourceSettings(base_url="https://frames.example")),
        HttpFrameSource,
    )


def test_build_frame_source_requires_a_location():
    with pytest.raises(ValueError):
        build_frame_source(SourceSettings())
