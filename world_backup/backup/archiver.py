"""World archiving.

Streams a world's directory tree into a gzip-compressed tarball inside
the output directory::

    output_directory/
    +-- World Backup Navezgane 14-03-2025 18_30_00.tar.gz
    |   +-- 7DaysToDieServer_Data/
    |       +-- main.ttw
    |       +-- Region/...
    +-- World Backup Pregen 14-03-2025 18_30_00.tar.gz

The tarball is written to a ``.part`` sibling first and renamed into
place once it is complete, so a file carrying the final name is always
a finished archive.
"""

import logging
import os
import tarfile
from datetime import datetime
from pathlib import Path

from world_backup.backup.backup_config import (
    ARCHIVE_PREFIX,
    ARCHIVE_SUFFIX,
    COMPRESSION_LEVEL,
    DEFAULT_ARCHIVE_ROOT,
    PARTIAL_SUFFIX,
    TIME_FORMAT,
)

logger = logging.getLogger(__name__)


class ArchiveError(Exception):
    """Raised when a world could not be archived."""

    def __init__(self, destination, source, message: str):
        super().__init__(message)
        self.destination = Path(destination)
        self.source = Path(source)


def archive_name(world_name: str, timestamp: datetime) -> str:
    """File name of the archive for *world_name* taken at *timestamp*.

    >>> archive_name("Navezgane", datetime(2025, 3, 14, 18, 30))
    'World Backup Navezgane 14-03-2025 18_30_00.tar.gz'
    """
    return f"{ARCHIVE_PREFIX} {world_name} {timestamp.strftime(TIME_FORMAT)}{ARCHIVE_SUFFIX}"


def archive_path(output_directory, world_name: str, timestamp: datetime) -> Path:
    return Path(output_directory) / archive_name(world_name, timestamp)


def produce_archive(
    destination,
    source_directory,
    root_label: str = DEFAULT_ARCHIVE_ROOT,
) -> Path:
    """Archive *source_directory* into the tarball *destination*.

    Every entry is stored under *root_label*, whatever the source
    folder is called on disk. Returns the destination path.

    Raises ArchiveError if the destination already exists or anything
    fails while walking, compressing or writing. Nothing is left under
    the destination name on failure.
    """
    destination = Path(destination)
    source_directory = Path(source_directory)

    if destination.exists():
        raise ArchiveError(
            destination, source_directory,
            f"Archive already exists: {destination}",
        )
    if not source_directory.is_dir():
        raise ArchiveError(
            destination, source_directory,
            f"Source directory does not exist: {source_directory}",
        )

    partial = destination.with_name(destination.name + PARTIAL_SUFFIX)
    try:
        with open(partial, "wb") as f:
            with tarfile.open(
                fileobj=f, mode="w:gz", compresslevel=COMPRESSION_LEVEL,
            ) as tar:
                tar.add(str(source_directory), arcname=root_label, recursive=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(partial, destination)
    except (OSError, tarfile.TarError) as exc:
        _discard(partial)
        raise ArchiveError(
            destination, source_directory,
            f"Failed to archive {source_directory} -> {destination}: {exc}",
        ) from exc

    logger.debug("Wrote %s (%d bytes)", destination, destination.stat().st_size)
    return destination


def _discard(partial: Path):
    try:
        partial.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove partial archive %s: %s", partial, exc)
