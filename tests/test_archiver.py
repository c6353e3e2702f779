"""Tests for world archiving.

Covers:
- Archive naming convention
- Round-trip: every file and directory comes back with identical bytes
- Synthetic root label inside the tarball
- No overwrite of an existing archive
- Failure handling: error propagates, nothing left under the final name
"""

import os
import tarfile
from datetime import datetime
from pathlib import Path

import pytest

from world_backup.backup.archiver import (
    ArchiveError,
    archive_name,
    archive_path,
    produce_archive,
)
from world_backup.backup.backup_config import (
    ARCHIVE_SUFFIX,
    DEFAULT_ARCHIVE_ROOT,
    PARTIAL_SUFFIX,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def world_dir(tmp_path):
    """A small world save with nested directories and binary data."""
    d = tmp_path / "MyGame"
    (d / "Region").mkdir(parents=True)
    (d / "Player" / "inventory").mkdir(parents=True)
    (d / "empty").mkdir()
    (d / "main.ttw").write_bytes(b"\x00\x01\x02world header" * 50)
    (d / "Region" / "r.0.0.7rg").write_bytes(os.urandom(4096))
    (d / "Player" / "inventory" / "slot1.dat").write_text("sword")
    (d / "players.xml").write_text("<players/>")
    return d


@pytest.fixture
def out_dir(tmp_path):
    d = tmp_path / "backups"
    d.mkdir()
    return d


def source_files(root: Path) -> dict[str, bytes]:
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in root.rglob("*") if p.is_file()
    }


def source_dirs(root: Path) -> set[str]:
    return {p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_dir()}


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

class TestArchiveName:
    def test_name_format(self):
        ts = datetime(2025, 3, 14, 18, 30, 5)
        assert archive_name("Navezgane", ts) == \
            "World Backup Navezgane 14-03-2025 18_30_05.tar.gz"

    def test_zero_padding(self):
        ts = datetime(2024, 1, 2, 3, 4, 5)
        assert archive_name("W", ts) == "World Backup W 02-01-2024 03_04_05.tar.gz"

    def test_world_name_with_spaces(self):
        ts = datetime(2024, 6, 1, 12, 0, 0)
        assert archive_name("My World", ts).startswith("World Backup My World 01-06-2024")

    def test_archive_path_in_output_directory(self, out_dir):
        ts = datetime(2024, 6, 1, 12, 0, 0)
        path = archive_path(out_dir, "Alpha", ts)
        assert path.parent == out_dir
        assert path.name.endswith(ARCHIVE_SUFFIX)

    def test_same_timestamp_different_worlds_do_not_collide(self):
        ts = datetime(2024, 6, 1, 12, 0, 0)
        assert archive_name("Alpha", ts) != archive_name("Beta", ts)


# ---------------------------------------------------------------------------
# Archive content
# ---------------------------------------------------------------------------

class TestArchiveRoundTrip:
    def test_archive_created(self, world_dir, out_dir):
        dest = out_dir / "a.tar.gz"
        result = produce_archive(dest, world_dir)
        assert result == dest
        assert dest.is_file()

    def test_gzip_compressed(self, world_dir, out_dir):
        dest = produce_archive(out_dir / "a.tar.gz", world_dir)
        with open(dest, "rb") as f:
            assert f.read(2) == b"\x1f\x8b"

    def test_every_file_restored_byte_for_byte(self, world_dir, out_dir):
        dest = produce_archive(out_dir / "a.tar.gz", world_dir)
        expected = source_files(world_dir)

        with tarfile.open(dest, "r:gz") as tar:
            for rel, content in expected.items():
                member = tar.extractfile(f"{DEFAULT_ARCHIVE_ROOT}/{rel}")
                assert member is not None, rel
                assert member.read() == content

    def test_directories_preserved(self, world_dir, out_dir):
        dest = produce_archive(out_dir / "a.tar.gz", world_dir)
        with tarfile.open(dest, "r:gz") as tar:
            dirs = {
                m.name for m in tar.getmembers() if m.isdir()
            }
        for rel in source_dirs(world_dir):
            assert f"{DEFAULT_ARCHIVE_ROOT}/{rel}" in dirs
        assert f"{DEFAULT_ARCHIVE_ROOT}/empty" in dirs

    def test_no_extra_files(self, world_dir, out_dir):
        dest = produce_archive(out_dir / "a.tar.gz", world_dir)
        with tarfile.open(dest, "r:gz") as tar:
            files = {
                m.name[len(DEFAULT_ARCHIVE_ROOT) + 1:]
                for m in tar.getmembers() if m.isfile()
            }
        assert files == set(source_files(world_dir))


class TestRootLabel:
    def test_all_entries_under_root_label(self, world_dir, out_dir):
        dest = produce_archive(out_dir / "a.tar.gz", world_dir)
        with tarfile.open(dest, "r:gz") as tar:
            names = tar.getnames()
        assert names
        for name in names:
            assert name == DEFAULT_ARCHIVE_ROOT or \
                name.startswith(DEFAULT_ARCHIVE_ROOT + "/")

    def test_source_folder_name_not_used(self, world_dir, out_dir):
        dest = produce_archive(out_dir / "a.tar.gz", world_dir)
        with tarfile.open(dest, "r:gz") as tar:
            assert not any(n.startswith("MyGame") for n in tar.getnames())

    def test_custom_root_label(self, world_dir, out_dir):
        dest = produce_archive(out_dir / "a.tar.gz", world_dir, root_label="Saves")
        with tarfile.open(dest, "r:gz") as tar:
            assert "Saves/main.ttw" in tar.getnames()


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------

class TestArchiveFailures:
    def test_missing_source_raises(self, tmp_path, out_dir):
        dest = out_dir / "a.tar.gz"
        with pytest.raises(ArchiveError):
            produce_archive(dest, tmp_path / "gone")
        assert not dest.exists()

    def test_source_is_file_raises(self, tmp_path, out_dir):
        f = tmp_path / "not_a_dir.txt"
        f.write_text("x")
        with pytest.raises(ArchiveError):
            produce_archive(out_dir / "a.tar.gz", f)

    def test_existing_destination_not_overwritten(self, world_dir, out_dir):
        dest = out_dir / "a.tar.gz"
        dest.write_bytes(b"earlier archive")

        with pytest.raises(ArchiveError) as excinfo:
            produce_archive(dest, world_dir)

        assert "already exists" in str(excinfo.value)
        assert dest.read_bytes() == b"earlier archive"

    def test_missing_output_directory_raises(self, world_dir, tmp_path):
        dest = tmp_path / "no_such_dir" / "a.tar.gz"
        with pytest.raises(ArchiveError) as excinfo:
            produce_archive(dest, world_dir)
        assert isinstance(excinfo.value.__cause__, OSError)

    def test_write_failure_leaves_nothing_behind(self, world_dir, out_dir, monkeypatch):
        def broken_add(self, *args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(tarfile.TarFile, "add", broken_add)
        dest = out_dir / "a.tar.gz"

        with pytest.raises(ArchiveError) as excinfo:
            produce_archive(dest, world_dir)

        assert "disk full" in str(excinfo.value)
        assert excinfo.value.destination == dest
        assert excinfo.value.source == world_dir
        assert list(out_dir.iterdir()) == []

    def test_no_partial_file_after_success(self, world_dir, out_dir):
        produce_archive(out_dir / "a.tar.gz", world_dir)
        assert not any(p.name.endswith(PARTIAL_SUFFIX) for p in out_dir.iterdir())
