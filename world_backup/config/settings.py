"""Settings loading and validation.

Settings are read from a JSON file (``config/config.json``) or from a
legacy INI file (``Config.ini``) and validated into an immutable
:class:`Settings` value. The scheduler asks for a fresh value at the
start of every cycle, so edits to the file take effect without a
restart.

JSON layout::

    {
      "interval_minutes": 30,
      "output_directory": "/srv/backups",
      "max_backups_per_world": 10,
      "archive_root": "7DaysToDieServer_Data",
      "worlds": {"Navezgane": "/srv/7dtd/Saves/Navezgane/MyGame"}
    }

INI layout::

    intervalminutes = 30
    outdir = /srv/backups
    maxbackupsperworld = 10

    [Worlds]
    Navezgane = /srv/7dtd/Saves/Navezgane/MyGame
"""

import configparser
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from world_backup.backup.backup_config import DEFAULT_ARCHIVE_ROOT

logger = logging.getLogger(__name__)

INI_SUFFIXES = (".ini", ".cfg")
INI_GENERAL_SECTION = "general"
INI_WORLDS_SECTION = "Worlds"

# INI key -> JSON key
INI_KEYS = {
    "intervalminutes": "interval_minutes",
    "outdir": "output_directory",
    "maxbackupsperworld": "max_backups_per_world",
    "archiveroot": "archive_root",
}


class ConfigError(Exception):
    """Raised when the settings source is missing, malformed or invalid."""

    def __init__(self, field_name: str, message: str):
        super().__init__(f"{field_name}: {message}")
        self.field = field_name
        self.message = message


@dataclass(frozen=True)
class Settings:
    """Validated snapshot of the backup settings."""
    interval: int  # seconds
    output_directory: Path
    retention_cap: int
    worlds: Mapping[str, Path] = field(default_factory=dict)
    archive_root: str = DEFAULT_ARCHIVE_ROOT

    def __post_init__(self):
        # Freeze the world mapping so a snapshot is never mutated in place
        object.__setattr__(self, "worlds", MappingProxyType(dict(self.worlds)))


def resolve_path(path_str: str) -> Path:
    return Path(os.path.expanduser(os.path.expandvars(path_str)))


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_int(value, field_name: str) -> int:
    if _is_int(value):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ConfigError(field_name, f"expected an integer, got {value!r}")


def _require(raw: dict, key: str):
    if key not in raw or raw[key] is None:
        raise ConfigError(key, "missing")
    return raw[key]


# ----------------------------------------------------------------------
# File readers
# ----------------------------------------------------------------------

def _read_json(path: Path) -> dict:
    try:
        with open(path) as f:
            raw = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigError("file", f"invalid JSON in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError("file", f"{path} must contain a JSON object")
    return raw


def _read_ini(path: Path) -> dict:
    text = path.read_text()

    # Keys before the first section header belong to the general section
    first = next(
        (line.strip() for line in text.splitlines()
         if line.strip() and not line.strip().startswith(("#", ";"))),
        "",
    )
    if not first.startswith("["):
        text = f"[{INI_GENERAL_SECTION}]\n{text}"

    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str  # keep world-name case
    try:
        parser.read_string(text, source=str(path))
    except configparser.Error as exc:
        raise ConfigError("file", f"invalid INI in {path}: {exc}") from exc

    raw: dict = {}
    if parser.has_section(INI_GENERAL_SECTION):
        for key, value in parser.items(INI_GENERAL_SECTION):
            raw[INI_KEYS.get(key.lower(), key.lower())] = value
    if parser.has_section(INI_WORLDS_SECTION):
        raw["worlds"] = dict(parser.items(INI_WORLDS_SECTION))
    return raw


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------

def parse_settings(raw: dict) -> Settings:
    """Validate a raw settings mapping (JSON key names) into Settings."""
    interval_minutes = _parse_int(_require(raw, "interval_minutes"), "interval_minutes")
    if interval_minutes <= 0:
        raise ConfigError("interval_minutes", "must be a positive integer")

    output_directory = resolve_path(str(_require(raw, "output_directory")))
    if not output_directory.exists():
        raise ConfigError(
            "output_directory", f"output directory does not exist: {output_directory}"
        )
    if not output_directory.is_dir():
        raise ConfigError(
            "output_directory", f"output path is not a directory: {output_directory}"
        )

    retention_cap = _parse_int(
        _require(raw, "max_backups_per_world"), "max_backups_per_world"
    )
    if retention_cap < 0:
        raise ConfigError("max_backups_per_world", "must be a non-negative integer")

    if "worlds" not in raw or raw["worlds"] is None:
        raise ConfigError("worlds", "no worlds section found")
    if not isinstance(raw["worlds"], dict):
        raise ConfigError("worlds", "must map world names to directories")

    worlds: dict[str, Path] = {}
    for name, path_str in raw["worlds"].items():
        if not str(name).strip():
            raise ConfigError("worlds", "world names must be non-empty")
        world_path = resolve_path(str(path_str))
        if not world_path.exists():
            raise ConfigError(
                "worlds",
                f"world directory {world_path} does not exist for world {name}",
            )
        worlds[str(name)] = world_path

    archive_root = str(raw.get("archive_root") or DEFAULT_ARCHIVE_ROOT)

    return Settings(
        interval=interval_minutes * 60,
        output_directory=output_directory,
        retention_cap=retention_cap,
        worlds=worlds,
        archive_root=archive_root,
    )


def load_settings(config_path: str) -> Settings:
    """Read and validate the settings file at *config_path*."""
    path = Path(config_path)
    if not path.is_file():
        raise ConfigError("file", f"config file not found: {config_path}")

    try:
        if path.suffix.lower() in INI_SUFFIXES:
            raw = _read_ini(path)
        else:
            raw = _read_json(path)
    except OSError as exc:
        raise ConfigError("file", f"could not read {config_path}: {exc}") from exc

    settings = parse_settings(raw)
    logger.debug("Loaded settings from %s (%d worlds)", path, len(settings.worlds))
    return settings


class SettingsFile:
    """Settings provider that re-reads its file on every call."""

    def __init__(self, config_path: str):
        self.config_path = str(config_path)

    def __call__(self) -> Settings:
        return load_settings(self.config_path)

    def __repr__(self):
        return f"SettingsFile({self.config_path!r})"
