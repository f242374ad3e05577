"""
Temporal frame statistics: frame-differencing heatmaps and per-pixel
background models over a cached range of video frames.
"""

from .analysis import FrameAnalyzer
from .cache import CacheBusyError, FrameCache, FrameNotCachedError
from .config import Config, load_config
from .models import BackgroundModel, Frame, HeatmapResult
from .rendering import ImageSink, Renderer
from .sources import DirectoryFrameSource, FrameLoadError, HttpFrameSource, frame_filename
from .statistics import DifferenceAccumulator, MeanModel, VarianceWindowSearch

__all__ = [
    "BackgroundModel",
    "CacheBusyError",
    "Config",
    "DifferenceAccumulator",
    "DirectoryFrameSource",
    "Frame",
    "FrameAnalyzer",
    "FrameCache",
    "FrameLoadError",
    "FrameNotCachedError",
    "HeatmapResult",
    "HttpFrameSource",
    "ImageSink",
    "MeanModel",
    "Renderer",
    "VarianceWindowSearch",
    "frame_filename",
    "load_config",
]
