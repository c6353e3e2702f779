"""Backup cycle scheduling.

One cycle:

    1. fetch a fresh Settings snapshot (ConfigError is fatal)
    2. capture one timestamp shared by every archive of the cycle
    3. archive each world; a failing world is reported and skipped
    4. prune every world against the reloaded retention cap

then sleep for the reloaded interval and start over. The sleep waits on
a ``threading.Event`` so ``stop()`` ends the loop without waiting out
the interval.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

import psutil

from world_backup.backup.archiver import ArchiveError, archive_path, produce_archive
from world_backup.backup.backup_config import TIME_FORMAT_HUMAN
from world_backup.backup.reporter import Reporter
from world_backup.backup.retention import PruneResult, prune
from world_backup.config.settings import Settings

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_RUNNING = "running"


@dataclass
class CycleResult:
    """Outcome of one backup cycle."""
    timestamp: datetime
    settings: Settings
    produced: dict[str, Path] = field(default_factory=dict)
    failures: dict[str, ArchiveError] = field(default_factory=dict)
    prune: PruneResult = field(default_factory=PruneResult)


def format_bytes(num: float) -> str:
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if num < 1024 or unit == "TiB":
            return f"{num:.1f} {unit}"
        num /= 1024


class CycleScheduler:
    """Runs backup cycles until stopped.

    Usage::

        scheduler = CycleScheduler(SettingsFile("config/config.json"))
        scheduler.run()            # blocks; scheduler.stop() from a signal handler
    """

    def __init__(
        self,
        settings_provider: Callable[[], Settings],
        reporter: Reporter = None,
        clock: Callable[[], datetime] = None,
        stop_event: threading.Event = None,
    ):
        self.settings_provider = settings_provider
        self.reporter = reporter or Reporter()
        self.clock = clock or datetime.now
        self._stop = stop_event or threading.Event()
        self.state = STATE_IDLE
        self.cycles_completed = 0

    # ------------------------------------------------------------------
    # Single cycle
    # ------------------------------------------------------------------

    def run_cycle(self) -> CycleResult:
        """Reload settings, archive every world, then prune every world."""
        self.state = STATE_RUNNING
        try:
            settings = self.settings_provider()
            now = self.clock()
            result = CycleResult(timestamp=now, settings=settings)
            self.reporter.info(f"Backing up at: {now.strftime(TIME_FORMAT_HUMAN)}")
            self._report_free_space(settings.output_directory)

            for world_name, source in settings.worlds.items():
                self.reporter.info(f"Backing up world: {world_name}")
                destination = archive_path(settings.output_directory, world_name, now)
                try:
                    produce_archive(destination, source, root_label=settings.archive_root)
                except ArchiveError as exc:
                    result.failures[world_name] = exc
                    self.reporter.error(f"Backup of world {world_name} failed: {exc}")
                    continue
                result.produced[world_name] = destination
                self.reporter.success(f"Backup completed: {destination}")

            result.prune = prune(
                settings.output_directory,
                list(settings.worlds),
                settings.retention_cap,
                reporter=self.reporter,
            )
        finally:
            self.state = STATE_IDLE

        self.cycles_completed += 1
        return result

    def _report_free_space(self, output_directory: Path):
        try:
            usage = psutil.disk_usage(str(output_directory))
        except OSError as exc:
            logger.debug("Could not read disk usage for %s: %s", output_directory, exc)
            return
        self.reporter.info(
            f"Free space in {output_directory}: {format_bytes(usage.free)} "
            f"({100 - usage.percent:.1f}%)"
        )

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def describe(self, settings: Settings):
        """Report the startup summary for *settings*."""
        self.reporter.info(f"Interval: {settings.interval} seconds")
        self.reporter.info(f"Output Directory: {settings.output_directory}")
        self.reporter.info(f"Max Backups per World: {settings.retention_cap}")
        self.reporter.info(f"Found {len(settings.worlds)} worlds")

    def run(self, max_cycles: int = None):
        """Run cycles until stopped or *max_cycles* have completed.

        ConfigError from the settings provider propagates to the caller.
        """
        self.describe(self.settings_provider())

        cycles = 0
        while not self._stop.is_set():
            result = self.run_cycle()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break

            interval = result.settings.interval
            self.reporter.info(f"Sleeping for {interval} seconds...")
            if self._stop.wait(timeout=interval):
                break

        logger.info("Scheduler stopped after %d cycle(s)", cycles)

    def stop(self):
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()
