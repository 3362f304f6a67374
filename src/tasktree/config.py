# src/tasktree/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the app, one StorageConfig for the storage engine.
- StorageConfig is a typed, frozen struct; overrides go through
  merge_storage_config() instead of deep-merging untyped dicts.
- Nothing here touches the filesystem except reading .env.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

ENV_PREFIX = "TASKTREE"
DEFAULT_PATH_PATTERN = "%s/.tasktree/tasks.json"

DEFAULT_MARKERS: tuple[str, ...] = (
    ".git",
    ".tasktree",
    "package.json",
    "Cargo.toml",
    "go.mod",
    "pyproject.toml",
)

load_dotenv(override=False)

logger = logging.getLogger(__name__)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return tuple(default)
    return tuple(p.strip() for p in raw.replace(",", " ").split() if p.strip())


def _env_path(name: str, default: Path | None) -> Path | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def check_path_pattern(pattern: str) -> str:
    """A project path pattern must hold exactly one %s (the project root)."""
    try:
        ok = pattern.count("%s") == 1 and bool(pattern % "root")
    except (TypeError, ValueError):
        ok = False
    if not ok:
        raise ValueError(f"path_pattern needs exactly one %s for the project root: {pattern!r}")
    return pattern


def _env_path_pattern(name: str, default: str) -> str:
    raw = _env(name, default)
    try:
        return check_path_pattern(raw)
    except ValueError as exc:
        logger.warning("Ignoring %s (%s), using %r", name, exc, default)
        return default


def default_data_dir() -> Path:
    """Per-user data directory ($XDG_DATA_HOME/tasktree or ~/.local/share/tasktree)."""
    xdg = os.getenv("XDG_DATA_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".local" / "share"
    return base / "tasktree"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    # ---- Locations ----
    data_dir: Path = field(default_factory=default_data_dir)
    global_path: Path | None = None
    marker_dir: str = ".tasktree"
    storage_filename: str = "tasks.json"

    # ---- Project mode ----
    project_enabled: bool = False
    use_git_root: bool = True
    path_pattern: str = DEFAULT_PATH_PATTERN
    markers: tuple[str, ...] = DEFAULT_MARKERS
    create_marker: bool = True
    auto_detect: bool = True

    # ---- Safety / encoding ----
    auto_backup: bool = True
    backup_count: int = 1
    compression: bool = True
    encryption: bool = False

    # ---- Timers ----
    save_debounce_seconds: float = 1.0

    def resolved_global_path(self) -> Path:
        if self.global_path is not None:
            return Path(self.global_path).expanduser()
        return Path(self.data_dir).expanduser() / self.storage_filename

    def project_path(self, root: str | Path) -> Path:
        return Path(self.path_pattern % str(root))

    def custom_project_path(self, root: str | Path, name: str) -> Path:
        return Path(root) / self.marker_dir / name / self.storage_filename


def merge_storage_config(
    base: StorageConfig, overrides: Mapping[str, Any] | None = None
) -> StorageConfig:
    """
    Return `base` with `overrides` applied.

    Only known fields are accepted; paths are coerced to Path, markers to a tuple,
    path_pattern is checked for its %s and backup_count is clamped to >= 1.
    """
    if not overrides:
        return base

    known = {f.name for f in dataclasses.fields(StorageConfig)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown storage config keys: {', '.join(unknown)}")

    values = dict(overrides)
    for key in ("data_dir", "global_path"):
        if values.get(key) is not None:
            values[key] = Path(values[key]).expanduser()
    if "markers" in values:
        values["markers"] = tuple(values["markers"] or ())
    if "path_pattern" in values:
        values["path_pattern"] = check_path_pattern(str(values["path_pattern"]))
    if "backup_count" in values:
        values["backup_count"] = max(1, int(values["backup_count"]))
    if "save_debounce_seconds" in values:
        values["save_debounce_seconds"] = max(0.0, float(values["save_debounce_seconds"]))

    return dataclasses.replace(base, **values)


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    log_dir: Path

    # ---- Storage ----
    storage: StorageConfig

    # ---- Background loops ----
    reminder_interval_seconds: float
    autosave_interval_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "tasktree")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), default_data_dir()) or default_data_dir()
        log_dir = _env_path(_k("LOG_DIR"), data_dir) or data_dir

        storage = StorageConfig(
            data_dir=data_dir,
            global_path=_env_path(_k("GLOBAL_PATH"), None),
            project_enabled=_env_bool(_k("PROJECT_ENABLED"), False),
            use_git_root=_env_bool(_k("USE_GIT_ROOT"), True),
            path_pattern=_env_path_pattern(_k("PATH_PATTERN"), DEFAULT_PATH_PATTERN),
            markers=_env_list(_k("MARKERS"), DEFAULT_MARKERS),
            create_marker=_env_bool(_k("CREATE_MARKER"), True),
            auto_detect=_env_bool(_k("AUTO_DETECT"), True),
            auto_backup=_env_bool(_k("AUTO_BACKUP"), True),
            backup_count=max(1, _env_int(_k("BACKUP_COUNT"), 1)),
            compression=_env_bool(_k("COMPRESSION"), True),
            encryption=_env_bool(_k("ENCRYPTION"), False),
            save_debounce_seconds=max(0.0, _env_float(_k("SAVE_DEBOUNCE"), 1.0)),
        )

        return Settings(
            app_name=app_name,
            log_level=log_level,
            log_dir=log_dir,
            storage=storage,
            reminder_interval_seconds=max(1.0, _env_float(_k("REMINDER_INTERVAL"), 30.0)),
            autosave_interval_seconds=max(1.0, _env_float(_k("AUTOSAVE_INTERVAL"), 60.0)),
        )


def get_settings() -> Settings:
    """Read settings from the environment (call once in the composition root)."""
    return Settings.from_env()
