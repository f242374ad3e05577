"""
Command line interface for frame-differencing heatmaps and background models.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from .analysis import FrameAnalyzer
from .cache import FrameNotCachedError
from .config import SUPPORTED_SEMANTICS, Config, load_config
from .logging_setup import configure_logging
from .sources import FrameLoadError


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Return ``config`` with command-line overrides applied."""
    source = config.source
    if args.frame_dir is not None:
        source = dataclasses.replace(source, frame_dir=args.frame_dir, base_url=None)
    elif args.base_url is not None:
        source = dataclasses.replace(source, base_url=args.base_url, frame_dir=None)
    if args.pattern is not None:
        source = dataclasses.replace(source, filename_pattern=args.pattern)

    global_settings = config.global_settings
    if args.output_dir is not None:
        global_settings = dataclasses.replace(global_settings, output_dir=args.output_dir)
    if args.semantics is not None:
        global_settings = dataclasses.replace(global_settings, semantics=args.semantics)
    if args.log_file is not None:
        global_settings = dataclasses.replace(global_settings, log_file=args.log_file)

    return dataclasses.replace(config, source=source, global_settings=global_settings)


def run_command(analyzer: FrameAnalyzer, args: argparse.Namespace) -> None:
    if args.command == "heatmap":
        analyzer.heatmap(args.start, args.end)
    elif args.command == "sequence":
        analyzer.heatmap_sequence(
            args.start,
            args.end,
            args.length,
            interval_ms=args.interval_ms,
        )
    elif args.command == "mean":
        analyzer.background_mean(args.frame_count)
    elif args.command == "background":
        analyzer.background_stdev(args.frame_count, args.window_size)
    else:
        raise ValueError(f"Unhandled command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Frame-differencing heatmaps and per-pixel background models.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.json"),
        help="Path to a JSON config file (default: config.json; falls back to environment variables).",
    )
    parser.add_argument("--frame-dir", type=Path, help="Directory holding frameNNNNNN.png files.")
    parser.add_argument("--base-url", help="Base URL serving frameNNNNNN.png files.")
    parser.add_argument("--pattern", help="Frame filename pattern (default: frame{index:06d}.png).")
    parser.add_argument("--output-dir", type=Path, help="Directory for rendered PNG outputs.")
    parser.add_argument(
        "--semantics",
        choices=SUPPORTED_SEMANTICS,
        help="'faithful' skips the final frame pair and scores windows against the global mean; 'corrected' includes it and uses each window's own deviation.",
    )
    parser.add_argument("--log-file", type=Path, help="Optional log file path.")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    heatmap_parser = subparsers.add_parser(
        "heatmap", help="Render one frame-differencing heatmap over [start, end]."
    )
    heatmap_parser.add_argument("--start", type=int, help="First frame index (default from config: 0).")
    heatmap_parser.add_argument("--end", type=int, help="Last frame index (default from config: 49).")

    sequence_parser = subparsers.add_parser(
        "sequence", help="Render sliding-window heatmaps at a fixed cadence."
    )
    sequence_parser.add_argument("--start", type=int, help="First window start (default: 0).")
    sequence_parser.add_argument("--end", type=int, help="Sequence end frame (default: 1450).")
    sequence_parser.add_argument("--length", type=int, help="Frames per window (default: 50).")
    sequence_parser.add_argument(
        "--interval-ms",
        type=int,
        help="Milliseconds between windows (default: 20).",
    )

    mean_parser = subparsers.add_parser(
        "mean", help="Average every pixel over the first N frames."
    )
    mean_parser.add_argument("--frame-count", type=int, help="Number of frames (default: 1501).")

    background_parser = subparsers.add_parser(
        "background", help="Pick each pixel's lowest-deviation window as the background."
    )
    background_parser.add_argument("--frame-count", type=int, help="Number of frames (default: 1501).")
    background_parser.add_argument("--window-size", type=int, help="Frames per window (default: 20).")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = apply_overrides(load_config(args.config), args)
    except ValueError as exc:
        parser.error(str(exc))

    logger = configure_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=config.global_settings.log_file,
    )

    try:
        analyzer = FrameAnalyzer(config, logger=logger)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        run_command(analyzer, args)
    except ValueError as exc:
        parser.error(str(exc))
    except (FrameLoadError, FrameNotCachedError, OSError, RuntimeError) as exc:
        logger.error("Analysis aborted: %s", exc)
        return 1

    if analyzer.sink.last_path is not None:
        logger.info("Last output written to %s", analyzer.sink.last_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
