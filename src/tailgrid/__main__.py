#!/usr/bin/env python3
"""Command line entry point: ``tailgrid [--url URL] [--mode stream|paged]``."""

import argparse
import logging
import sys

from . import __version__, configure_logging
from .config import MODES, Settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tailgrid", description="Live view of logs served by a log server.")
    parser.add_argument("--url", help="WebSocket URL of the log server (env TAILGRID_URL)")
    parser.add_argument("--mode", choices=MODES, help="stream the whole log, or fetch it by page")
    parser.add_argument("--page-size", type=int, help="rows per page in paged mode")
    parser.add_argument("--debounce", type=float, help="seconds to wait for resizing to settle")
    parser.add_argument("--log-file", help="where tailgrid writes its own log")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = Settings.from_env(
            url=args.url,
            mode=args.mode,
            page_size=args.page_size,
            debounce=args.debounce,
            log_file=args.log_file,
            log_level=args.log_level,
        )
    except ValueError as e:
        print(f"tailgrid: {e}", file=sys.stderr)
        return 2

    configure_logging(getattr(logging, settings.log_level, logging.INFO), settings.log_file)
    logging.getLogger(__name__).info(f"Starting with {settings!r}")

    # Import late so --help and --version work without initializing Textual
    from .ui.textual import TailgridApp

    TailgridApp(settings).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
