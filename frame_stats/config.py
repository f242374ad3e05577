"""Configuration dataclasses and loading helpers for frame statistics runs."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

SEMANTICS_FAITHFUL = "faithful"
SEMANTICS_CORRECTED = "corrected"
SUPPORTED_SEMANTICS = (SEMANTICS_FAITHFUL, SEMANTICS_CORRECTED)

DEFAULT_FRAME_PATTERN = "frame{index:06d}.png"
DEFAULT_SENTINEL_COLOR = (255, 0, 0)


def _default_workers() -> int:
    """Determine a sensible default for I/O and CPU worker pools."""
    return max(1, min(8, os.cpu_count() or 1))


def _parse_positive_int(value: Any, default: int) -> int:
    """Parse a positive integer with fallback to default."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _parse_non_negative_int(value: Any, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def _parse_float(value: Any, default: float) -> float:
    """Parse a floating point number with fallback to default."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_semantics(value: Any) -> str:
    if isinstance(value, str) and value.strip().lower() in SUPPORTED_SEMANTICS:
        return value.strip().lower()
    return SEMANTICS_FAITHFUL


def _parse_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_color(value: Any, default: Tuple[int, int, int] = DEFAULT_SENTINEL_COLOR) -> Tuple[int, int, int]:
    """Parse and clamp colour definitions to RGB tuples matching the RGBA buffers."""

    def _clamp_triplet(triplet: Any) -> Optional[Tuple[int, int, int]]:
        if not isinstance(triplet, (list, tuple)) or len(triplet) != 3:
            return None
        try:
            return tuple(
                max(0, min(255, int(channel)))
                for channel in triplet
            )
        except (TypeError, ValueError):
            return None

    def _to_rgb(channels: Tuple[int, int, int], order: Optional[str]) -> Optional[Tuple[int, int, int]]:
        color_order = (order or "rgb").lower()
        if color_order == "rgb":
            return channels
        if color_order == "bgr":
            return (channels[2], channels[1], channels[0])
        return None

    if isinstance(value, dict):
        if "hex" in value and isinstance(value["hex"], str):
            return _parse_color(value["hex"], default)
        if "value" in value:
            channels = _clamp_triplet(value["value"])
            if channels is None:
                return default
            rgb = _to_rgb(channels, value.get("order"))
            return rgb if rgb is not None else default

    if isinstance(value, (list, tuple)):
        channels = _clamp_triplet(value)
        return channels if channels is not None else default

    if isinstance(value, str):
        hex_value = value.lstrip("#")
        if len(hex_value) == 6:
            try:
                return (
                    int(hex_value[0:2], 16),
                    int(hex_value[2:4], 16),
                    int(hex_value[4:6], 16),
                )
            except ValueError:
                return default

    return default


@dataclass(frozen=True)
class SourceSettings:
    """Where frames come from and how many are decoded in parallel."""

    frame_dir: Optional[Path] = None
    base_url: Optional[str] = None
    filename_pattern: str = DEFAULT_FRAME_PATTERN
    http_timeout: int = 10
    load_workers: int = field(default_factory=_default_workers)


@dataclass(frozen=True)
class HeatmapSettings:
    """Frame-differencing heatmap defaults."""

    gain: float = 6.0
    start: int = 0
    end: int = 49
    sequence_start: int = 0
    sequence_end: int = 1450
    sequence_length: int = 50
    sequence_interval_ms: int = 20


@dataclass(frozen=True)
class BackgroundSettings:
    """Background model defaults."""

    frame_count: int = 1501
    window_size: int = 20
    sentinel_color: Tuple[int, int, int] = DEFAULT_SENTINEL_COLOR
    search_workers: int = field(default_factory=_default_workers)


@dataclass(frozen=True)
class GlobalSettings:
    """Settings shared by every analysis."""

    output_dir: Optional[Path] = None
    semantics: str = SEMANTICS_FAITHFUL
    log_file: Optional[Path] = None


@dataclass(frozen=True)
class Config:
    """Root configuration object."""

    source: SourceSettings = field(default_factory=SourceSettings)
    heatmap: HeatmapSettings = field(default_factory=HeatmapSettings)
    background: BackgroundSettings = field(default_factory=BackgroundSettings)
    global_settings: GlobalSettings = field(default_factory=GlobalSettings)


def _parse_source_settings(raw: Mapping[str, Any]) -> SourceSettings:
    default = SourceSettings()
    if not isinstance(raw, Mapping):
        return default
    frame_dir = _parse_optional_str(raw.get("frame_dir"))
    return SourceSettings(
        frame_dir=Path(frame_dir) if frame_dir else None,
        base_url=_parse_optional_str(raw.get("base_url")),
        filename_pattern=_parse_optional_str(raw.get("filename_pattern")) or default.filename_pattern,
        http_timeout=_parse_positive_int(raw.get("http_timeout"), default.http_timeout),
        load_workers=_parse_positive_int(raw.get("load_workers"), default.load_workers),
    )


def _parse_heatmap_settings(raw: Mapping[str, Any]) -> HeatmapSettings:
    default = HeatmapSettings()
    if not isinstance(raw, Mapping):
        return default
    gain = _parse_float(raw.get("gain"), default.gain)
    return HeatmapSettings(
        gain=gain if gain > 0 else default.gain,
        start=_parse_non_negative_int(raw.get("start"), default.start),
        end=_parse_non_negative_int(raw.get("end"), default.end),
        sequence_start=_parse_non_negative_int(raw.get("sequence_start"), default.sequence_start),
        sequence_end=_parse_non_negative_int(raw.get("sequence_end"), default.sequence_end),
        sequence_length=_parse_positive_int(raw.get("sequence_length"), default.sequence_length),
        sequence_interval_ms=_parse_positive_int(
            raw.get("sequence_interval_ms"),
            default.sequence_interval_ms,
        ),
    )


def _parse_background_settings(raw: Mapping[str, Any]) -> BackgroundSettings:
    default = BackgroundSettings()
    if not isinstance(raw, Mapping):
        return default
    return BackgroundSettings(
        frame_count=_parse_positive_int(raw.get("frame_count"), default.frame_count),
        window_size=_parse_positive_int(raw.get("window_size"), default.window_size),
        sentinel_color=_parse_color(raw.get("sentinel_color"), default.sentinel_color),
        search_workers=_parse_positive_int(raw.get("search_workers"), default.search_workers),
    )


def _parse_global_settings(raw: Mapping[str, Any]) -> GlobalSettings:
    if not isinstance(raw, Mapping):
        return GlobalSettings()
    output_dir = _parse_optional_str(raw.get("output_dir"))
    log_file = _parse_optional_str(raw.get("log_file"))
    return GlobalSettings(
        output_dir=Path(output_dir) if output_dir else None,
        semantics=_parse_semantics(raw.get("semantics")),
        log_file=Path(log_file) if log_file else None,
    )


def _load_env_config(env: Mapping[str, str]) -> Config:
    """Fallback configuration derived from environment variables."""
    source = _parse_source_settings({
        "frame_dir": env.get("FRAME_DIR"),
        "base_url": env.get("FRAME_BASE_URL"),
        "filename_pattern": env.get("FRAME_PATTERN"),
        "http_timeout": env.get("FRAME_HTTP_TIMEOUT"),
        "load_workers": env.get("LOAD_WORKERS"),
    })
    heatmap = _parse_heatmap_settings({
        "gain": env.get("HEATMAP_GAIN"),
        "start": env.get("HEATMAP_START"),
        "end": env.get("HEATMAP_END"),
        "sequence_start": env.get("SEQUENCE_START"),
        "sequence_end": env.get("SEQUENCE_END"),
        "sequence_length": env.get("SEQUENCE_LENGTH"),
        "sequence_interval_ms": env.get("SEQUENCE_INTERVAL_MS"),
    })
    background = _parse_background_settings({
        "frame_count": env.get("FRAME_COUNT"),
        "window_size": env.get("WINDOW_SIZE"),
        "sentinel_color": env.get("SENTINEL_COLOR"),
        "search_workers": env.get("SEARCH_WORKERS"),
    })
    global_settings = _parse_global_settings({
        "output_dir": env.get("OUTPUT_DIR"),
        "semantics": env.get("STATS_SEMANTICS"),
        "log_file": env.get("LOG_FILE"),
    })
    return Config(
        source=source,
        heatmap=heatmap,
        background=background,
        global_settings=global_settings,
    )


def load_config(config_path: Path | str, env: Mapping[str, str] | None = None) -> Config:
    """Load configuration from a JSON file or environment defaults."""
    source_env = env if env is not None else os.environ
    path = Path(config_path)

    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, Mapping):
            raise ValueError(f"Expected a JSON object in {path}")
        return Config(
            source=_parse_source_settings(data.get("source", {})),
            heatmap=_parse_heatmap_settings(data.get("heatmap", {})),
            background=_parse_background_settings(data.get("background", {})),
            global_settings=_parse_global_settings(data.get("global_settings", {})),
        )

    return _load_env_config(source_env)


__all__ = [
    "BackgroundSettings",
    "Config",
    "GlobalSettings",
    "HeatmapSettings",
    "SEMANTICS_CORRECTED",
    "SEMANTICS_FAITHFUL",
    "SourceSettings",
    "SUPPORTED_SEMANTICS",
    "load_config",
    "_parse_color",
    "_parse_positive_int",
]
