"""Backup progress reporting.

Every event the backup cycle emits falls into one of three categories:

    INFO     -> cycle start, world being backed up, sleep duration
    SUCCESS  -> archive produced, stale archive removed
    ERROR    -> configuration problem, archive failure, deletion failure

Reports are always logged (success at the custom ``DONE`` level) and
kept in memory so callers can inspect what a cycle did.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

logger = logging.getLogger(__name__)

REPORT_INFO = "INFO"
REPORT_SUCCESS = "SUCCESS"
REPORT_ERROR = "ERROR"

# Sits between INFO and WARNING
DONE = 25
logging.addLevelName(DONE, "DONE")


@dataclass
class Report:
    """Record of one reported event."""
    timestamp: str
    category: str
    message: str


class Reporter:
    """Logs backup events and keeps an in-memory record of them."""

    def __init__(self, max_reports: int = 1000):
        self.max_reports = max_reports
        self._reports: list[Report] = []

    def send(self, category: str, message: str) -> Report:
        report = Report(
            timestamp=datetime.now().isoformat(),
            category=category,
            message=message,
        )

        level = {
            REPORT_INFO: logging.INFO,
            REPORT_SUCCESS: DONE,
            REPORT_ERROR: logging.ERROR,
        }.get(category, logging.INFO)
        logger.log(level, "%s", message)

        self._reports.append(report)
        if len(self._reports) > self.max_reports:
            del self._reports[: len(self._reports) - self.max_reports]
        return report

    def info(self, message: str) -> Report:
        return self.send(REPORT_INFO, message)

    def success(self, message: str) -> Report:
        return self.send(REPORT_SUCCESS, message)

    def error(self, message: str) -> Report:
        return self.send(REPORT_ERROR, message)

    @property
    def reports(self) -> list[Report]:
        return list(self._reports)

    def get_reports_by_category(self, category: str) -> list[Report]:
        return [r for r in self._reports if r.category == category]
