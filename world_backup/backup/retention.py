"""Retention enforcement for world archives.

Archives are grouped by world through the file name alone: an archive
belongs to a world when its stem contains the world name. This is a
plain substring test, so a world called ``Base`` also counts the
archives of ``Base2`` toward its cap.

Within a world, archives are ordered by their full path string. Names
embed ``DD-MM-YYYY``, so this order is not chronological across month
or year boundaries; the archives deleted are the lexicographically
smallest ones.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from world_backup.backup.backup_config import ARCHIVE_SUFFIX
from world_backup.backup.reporter import Reporter

logger = logging.getLogger(__name__)


@dataclass
class PruneError:
    path: str
    error: str


@dataclass
class PruneResult:
    removed: list[Path] = field(default_factory=list)
    errors: list[PruneError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def archive_stem(path: Path) -> str:
    name = path.name
    if name.endswith(ARCHIVE_SUFFIX):
        return name[: -len(ARCHIVE_SUFFIX)]
    return path.stem


def list_archives(output_directory) -> list[Path]:
    """Regular files directly inside *output_directory* named ``*.tar.gz``.

    Directories and symlinks are skipped.
    """
    archives = []
    with os.scandir(output_directory) as it:
        for entry in it:
            if not entry.name.endswith(ARCHIVE_SUFFIX):
                continue
            try:
                if entry.is_file(follow_symlinks=False):
                    archives.append(Path(entry.path))
            except OSError:
                continue
    return archives


def archives_for_world(archives: Iterable[Path], world_name: str) -> list[Path]:
    """Archives whose stem contains *world_name*, in lexicographic order."""
    matched = [p for p in archives if world_name in archive_stem(p)]
    matched.sort(key=str)
    return matched


def select_stale(archives: list[Path], retention_cap: int) -> list[Path]:
    """The leading entries of sorted *archives* beyond *retention_cap*."""
    excess = len(archives) - retention_cap
    if excess <= 0:
        return []
    return archives[:excess]


def prune(
    output_directory,
    world_names: Iterable[str],
    retention_cap: int,
    reporter: Reporter | None = None,
) -> PruneResult:
    """Delete each world's archives beyond *retention_cap*.

    A failed deletion is recorded and the pass carries on with the
    remaining files and worlds.
    """
    result = PruneResult()

    try:
        archives = list_archives(output_directory)
    except OSError as exc:
        result.errors.append(PruneError(path=str(output_directory), error=str(exc)))
        if reporter:
            reporter.error(f"Failed to list backups in {output_directory}: {exc}")
        return result

    removed: set[Path] = set()
    for world_name in world_names:
        # Skip files an earlier world in this pass already removed
        candidates = [p for p in archives if p not in removed]
        matched = archives_for_world(candidates, world_name)
        stale = select_stale(matched, retention_cap)
        if stale:
            logger.debug(
                "World %s: %d archives, cap %d, removing %d",
                world_name, len(matched), retention_cap, len(stale),
            )

        for path in stale:
            try:
                path.unlink()
            except OSError as exc:
                result.errors.append(PruneError(path=str(path), error=str(exc)))
                if reporter:
                    reporter.error(f"Failed to remove old backup file: {exc}")
                continue
            removed.add(path)
            result.removed.append(path)
            if reporter:
                reporter.success(f"Removed old backup file: {path}")

    return result
