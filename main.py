"""CLI entrypoint for the frame statistics tools."""

import sys

from frame_stats.cli import main


if __name__ == "__main__":
    sys.exit(main())
