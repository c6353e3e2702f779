"""Launcher for the world backup service.

Archives every configured world on a fixed interval and prunes old
archives beyond the per-world cap. Settings are re-read at the start
of each cycle.

Usage:
    python run.py
    python run.py --config config/config.json --log-level DEBUG
    python run.py --config Config.ini --once
"""

import argparse
import logging
import os
import signal
import sys
from pathlib import Path

from world_backup.backup.cycle_scheduler import CycleScheduler
from world_backup.backup.reporter import Reporter
from world_backup.config.settings import ConfigError, SettingsFile

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_CONFIG = str(PROJECT_ROOT / "config" / "config.json")

logger = logging.getLogger("world_backup")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="World Backup - periodic world archiving with retention",
    )
    parser.add_argument(
        "-c", "--config",
        default=DEFAULT_CONFIG,
        help="Path to config.json or Config.ini (default: config/config.json)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single backup cycle and exit",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    reporter = Reporter()
    scheduler = CycleScheduler(SettingsFile(args.config), reporter=reporter)

    def handle_signal(signum, frame):
        logger.info("Received signal %s, shutting down...", signum)
        scheduler.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        scheduler.run(max_cycles=1 if args.once else None)
    except ConfigError as exc:
        reporter.error(f"Configuration error: {exc}")
        return 1

    logger.info("World backup stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
