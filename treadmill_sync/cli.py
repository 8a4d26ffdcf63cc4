"""Command-line interface for treadmill-sync."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import TreadmillSyncApp
from .config import load_config
from .errors import ConfigInvalid

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="treadmill-sync",
        description="Drive a treadmill through randomised scenarios over a websocket telemetry link",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Connect to the treadmill and run")
    run_parser.add_argument("--url", help="Override the websocket url from the config")
    run_parser.add_argument(
        "--scenario",
        action="store_true",
        help="Start the random-walk scenario as soon as the app is up",
    )
    run_parser.add_argument(
        "--status",
        action="store_true",
        help="Enable the HTTP status endpoint regardless of the config",
    )

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigInvalid as exc:
        logging.basicConfig(level=logging.ERROR, format="%(message)s")
        LOGGER.error("Invalid configuration: %s", exc)
        return 1

    if args.command == "run":
        if args.url:
            config.link.url = args.url.strip()
        if args.scenario:
            config.scenario.autostart = True
        if args.status:
            config.status.enabled = True
        TreadmillSyncApp.start(config)
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
