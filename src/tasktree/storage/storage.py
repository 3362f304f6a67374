# src/tasktree/storage/storage.py

"""
Storage orchestrator.

Composes scope resolution (paths.py), the codec (codec.py) and backups
(backups.py) behind a small API used by the front-end:

    load / save / save_debounced / flush / toggle_mode / get_status

Every Storage instance owns its own config and cache; nothing is module-global.
I/O and decode failures are logged and turned into (tasks, False) / False
results. Only using the instance before setup() raises.
"""

from __future__ import annotations

import contextlib
import logging
import os
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from ..config import StorageConfig
from ..core.ports import ScopeChooser, ScopeOption
from ..errors import BackupNotFoundError, CodecError, StorageNotInitializedError, TaskDecodeError
from ..tasks.task_models import Task, deserialize_tasks
from ..tasks.task_tree import ensure_unique_ids
from .backups import BackupManager
from .codec import Codec
from .debounce import Debouncer
from .paths import (
    ResolvedPath,
    ScopeKind,
    StorageScope,
    find_project_candidates,
    resolve_path,
)

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

TaskSource = list[Task] | list[Mapping[str, Any]] | Callable[[], Iterable[Task | Mapping[str, Any]]]


class ToggleMode(StrEnum):
    GLOBAL = "global"
    PROJECT = "project"
    CUSTOM = "custom"
    AUTO = "auto"


@dataclass(slots=True)
class StorageCache:
    data: list[dict[str, Any]] | None = None
    project_root: Path | None = None
    last_save: float | None = None
    is_dirty: bool = False
    selected_scope: StorageScope | None = None
    custom_project_name: str | None = None
    cwd: Path = field(default_factory=Path.cwd)
    active_scope: StorageScope | None = None
    last_load_skipped: int = 0
    live_file_corrupt: bool = False


@dataclass(frozen=True, slots=True)
class StorageStatus:
    mode: str
    scope: StorageScope
    current_path: Path
    file_exists: bool
    global_path: Path
    project_enabled: bool
    use_git_root: bool
    auto_detect: bool
    auto_backup: bool
    backup_count: int
    compression: bool
    encryption: bool
    selected_scope: str | None
    custom_project_name: str | None
    project_root: Path | None
    last_save: float | None
    is_dirty: bool
    pending_save: bool

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class Storage:
    def __init__(
        self,
        config: StorageConfig | None = None,
        *,
        cwd: str | Path | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config: StorageConfig | None = None
        self._codec: Codec | None = None
        self._backups: BackupManager | None = None
        self._debouncer: Debouncer | None = None
        self._clock = clock
        self._pending_source: TaskSource | None = None
        self._pending_target: ResolvedPath | None = None
        self.cache = StorageCache()
        if config is not None:
            self.setup(config, cwd=cwd)

    # ---- lifecycle ----

    def setup(self, config: StorageConfig, *, cwd: str | Path | None = None) -> None:
        """(Re)initialize with `config`; resets the cache and drops any pending save."""
        if config is None:
            raise ValueError("Storage configuration is required")
        if self._debouncer is not None:
            self._debouncer.cancel()

        self._config = config
        self._codec = Codec(compression=config.compression, encryption=config.encryption)
        self._backups = BackupManager(config, self._codec, clock=self._clock)
        self._debouncer = Debouncer(self._fire_pending, config.save_debounce_seconds)
        self._pending_source = None
        self._pending_target = None
        self.cache = StorageCache(cwd=Path(cwd) if cwd is not None else Path.cwd())
        logger.debug("Storage ready cwd=%s compression=%s encryption=%s",
                     self.cache.cwd, config.compression, config.encryption)

    @property
    def initialized(self) -> bool:
        return self._config is not None

    @property
    def config(self) -> StorageConfig:
        return self._require()

    @property
    def backups(self) -> BackupManager:
        self._require()
        assert self._backups is not None
        return self._backups

    def _require(self) -> StorageConfig:
        if self._config is None:
            raise StorageNotInitializedError()
        return self._config

    def close(self) -> bool:
        """Flush any pending debounced save; call before the front-end goes away."""
        if self._config is None:
            return True
        return self.flush()

    # ---- resolution ----

    def _resolve(self, force_scope: ScopeKind | str | None = None) -> ResolvedPath:
        config = self._require()
        return resolve_path(self.cache.cwd, self.cache.selected_scope, config, force_scope)

    def current_scope(self) -> StorageScope:
        return self._resolve().scope

    def current_path(self) -> Path:
        return self._resolve().path

    def _remember(self, resolved: ResolvedPath, records: list[dict[str, Any]]) -> None:
        self.cache.data = records
        self.cache.active_scope = resolved.scope
        self.cache.project_root = resolved.scope.root

    # ---- load ----

    @staticmethod
    def _unwrap(payload: Any) -> list[Any]:
        if isinstance(payload, list):
            return payload
        if isinstance(payload, Mapping) and isinstance(payload.get("tasks"), list):
            version = payload.get("version")
            if isinstance(version, int) and version > FORMAT_VERSION:
                logger.warning("Storage file version %s is newer than %s; reading anyway",
                               version, FORMAT_VERSION)
            return payload["tasks"]
        raise CodecError(f"unexpected payload shape: {type(payload).__name__}")

    def _decode_records(self, records: list[Any]) -> list[Task]:
        tasks, skipped = deserialize_tasks(records)
        self.cache.last_load_skipped = skipped
        fixed = ensure_unique_ids(tasks)
        if fixed:
            self.cache.is_dirty = True
        return tasks

    def load(self, force_scope: ScopeKind | str | None = None) -> tuple[list[Task], bool]:
        """
        Load the task list of the resolved scope.

        - missing file: ([], True) after making sure the directory exists
        - unreadable file: ([], False)
        - undecodable file: newest readable backup, else ([], False)
        """
        resolved = self._resolve(force_scope)
        path = resolved.path
        self.cache.last_load_skipped = 0
        self.cache.is_dirty = False

        if not path.exists():
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
            except OSError:
                logger.exception("Failed to create storage directory %s", path.parent)
                return [], False
            self.cache.live_file_corrupt = False
            self._remember(resolved, [])
            return [], True

        try:
            raw = path.read_bytes()
        except OSError:
            logger.exception("Error reading storage file %s", path)
            return [], False

        try:
            records = self._unwrap(self._codec_or_raise().decode(raw))
        except CodecError as exc:
            logger.warning("Error loading tasks from %s (%s), trying backup", path, exc)
            return self._load_from_backup(resolved)

        tasks = self._decode_records(records)
        self.cache.live_file_corrupt = False
        self._remember(resolved, [t.serialize() for t in tasks])
        logger.info("Loaded %d task(s) from %s storage", len(tasks), resolved.scope.describe())
        return tasks, True

    def _load_from_backup(self, resolved: ResolvedPath) -> tuple[list[Task], bool]:
        try:
            records = self._unwrap(self.backups.load_latest_backup(resolved.path))
        except (BackupNotFoundError, CodecError, OSError) as exc:
            logger.error("Failed to load from backup (%s), using empty task list", exc)
            return [], False

        tasks = self._decode_records(records)
        # The live file stays corrupt until the next save; never snapshot it.
        self.cache.live_file_corrupt = True
        self.cache.is_dirty = True
        self._remember(resolved, [t.serialize() for t in tasks])
        return tasks, True

    def load_latest_backup(self) -> tuple[list[Task], bool]:
        """Read-only: decode the newest backup of the current scope."""
        resolved = self._resolve()
        try:
            records = self._unwrap(self.backups.load_latest_backup(resolved.path))
        except (BackupNotFoundError, CodecError, OSError) as exc:
            logger.warning("No usable backup for %s: %s", resolved.path, exc)
            return [], False
        tasks, _ = deserialize_tasks(records)
        return tasks, True

    def _codec_or_raise(self) -> Codec:
        self._require()
        assert self._codec is not None
        return self._codec

    # ---- save ----

    @staticmethod
    def _to_records(tasks: Iterable[Task | Mapping[str, Any]]) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        for item in tasks:
            if isinstance(item, Task):
                records.append(item.serialize())
            elif isinstance(item, Mapping):
                records.append(Task.deserialize(item).serialize())
            else:
                raise TypeError(f"cannot store {type(item).__name__} as a task")
        return records

    def _atomic_write(self, path: Path, data: bytes) -> bool:
        tmp = path.with_name(path.name + ".tmp")
        try:
            with open(tmp, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError:
            logger.exception("Error writing to temporary file %s", tmp)
            with contextlib.suppress(OSError):
                tmp.unlink()
            return False

        try:
            os.replace(tmp, path)
        except OSError:
            logger.exception("Error during file rename %s -> %s", tmp, path)
            with contextlib.suppress(OSError):
                tmp.unlink()
            return False

        with contextlib.suppress(OSError):
            # Best-effort: task notes may be private, keep the file private on disk.
            os.chmod(path, 0o600)
        return True

    def _save_resolved(self, tasks: Iterable[Task | Mapping[str, Any]], resolved: ResolvedPath) -> bool:
        config = self._require()
        path = resolved.path

        if config.auto_backup and not self.cache.live_file_corrupt:
            if self.backups.create_backup(path) is None and path.exists():
                logger.warning("Failed to create backup before saving %s", path)

        try:
            records = self._to_records(tasks)
        except (TaskDecodeError, TypeError, ValueError) as exc:
            logger.error("Error converting tasks for storage: %s", exc)
            return False

        payload = {"version": FORMAT_VERSION, "last_modified": time.time(), "tasks": records}
        try:
            data = self._codec_or_raise().encode(payload)
        except CodecError as exc:
            logger.error("Error encoding tasks: %s", exc)
            return False

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.exception("Failed to create storage directory %s", path.parent)
            return False

        if not self._atomic_write(path, data):
            return False

        self._remember(resolved, records)
        self.cache.last_save = time.time()
        self.cache.is_dirty = False
        self.cache.live_file_corrupt = False
        logger.info("Tasks saved to %s storage", resolved.scope.describe())
        return True

    def save(
        self,
        tasks: Iterable[Task | Mapping[str, Any]],
        force_scope: ScopeKind | str | None = None,
    ) -> bool:
        """Back up the current file (best-effort), then write `tasks` atomically."""
        return self._save_resolved(tasks, self._resolve(force_scope))

    # ---- debounced save ----

    def save_debounced(self, tasks: TaskSource) -> None:
        """
        Request a save after the configured quiet period.

        `tasks` is read when the timer fires, so mutations made while the timer is
        pending are included. The target scope is the one active now.
        """
        self._require()
        self._pending_source = tasks
        self._pending_target = self._resolve()
        self.cache.is_dirty = True
        assert self._debouncer is not None
        self._debouncer.schedule()

    @property
    def has_pending_save(self) -> bool:
        return self._debouncer is not None and self._debouncer.pending

    def _fire_pending(self) -> bool:
        source, target = self._pending_source, self._pending_target
        self._pending_source = None
        self._pending_target = None
        if source is None or target is None:
            return True
        tasks = source() if callable(source) else source
        return self._save_resolved(tasks, target)

    def flush(self) -> bool:
        """Run a pending debounced save now; True when nothing was pending."""
        self._require()
        assert self._debouncer is not None
        if not self._debouncer.cancel():
            return True
        return self._fire_pending()

    def cancel_pending(self) -> bool:
        self._require()
        assert self._debouncer is not None
        self._pending_source = None
        self._pending_target = None
        return self._debouncer.cancel()

    # ---- scope switching ----

    def _candidate_scope(self) -> StorageScope:
        config = self._require()
        candidates = find_project_candidates(self.cache.cwd, config)
        if candidates:
            return StorageScope.project(candidates[0].path)
        return StorageScope.global_scope()

    def _custom_scope(self, name: str | None) -> StorageScope | None:
        name = (name or "").strip()
        if not name:
            return None
        if "/" in name or "\\" in name or name in (".", ".."):
            logger.warning("Invalid project name %r", name)
            return None
        return StorageScope.custom(self.cache.cwd, name)

    def _choose_scope(self, chooser: ScopeChooser | None) -> StorageScope:
        """
        Interactive detection. Without a chooser the best candidate (or global)
        is taken silently; cancelling the picker means global.
        """
        if chooser is None:
            return self._candidate_scope()

        config = self._require()
        options = [ScopeOption(label="Global storage (accessible from everywhere)",
                               scope=StorageScope.global_scope())]
        for cand in find_project_candidates(self.cache.cwd, config):
            options.append(ScopeOption(label=f"{cand.label} ({cand.path})",
                                       scope=StorageScope.project(cand.path)))
        options.append(ScopeOption(label="Custom project name (create new project storage)", scope=None))

        choice = chooser.choose_scope(options)
        if choice is None:
            return StorageScope.global_scope()
        if choice.scope is not None:
            return choice.scope
        scope = self._custom_scope(chooser.ask_project_name("Enter project name: "))
        return scope if scope is not None else StorageScope.global_scope()

    def _prepare_scope_dirs(self, scope: StorageScope) -> None:
        config = self._require()
        if scope.root is None:
            return
        if scope.kind == ScopeKind.PROJECT and not config.create_marker:
            return
        target = scope.root / config.marker_dir
        if scope.kind == ScopeKind.CUSTOM and scope.name:
            target = target / scope.name
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.exception("Failed to create storage directory %s", target)

    def _switch_to(self, old: ResolvedPath, target: StorageScope) -> StorageScope:
        config = self._require()
        if config.auto_backup and old.path.exists() and not self.cache.live_file_corrupt:
            self.backups.create_backup(old.path)

        self.cache.selected_scope = target
        self.cache.custom_project_name = target.name if target.kind == ScopeKind.CUSTOM else None
        self.cache.project_root = target.root
        self.cache.active_scope = target
        self.cache.data = None
        self.cache.live_file_corrupt = False
        self._prepare_scope_dirs(target)
        logger.info("Switched to %s storage", target.describe())
        return target

    def toggle_mode(
        self,
        mode: ToggleMode | str | None = None,
        chooser: ScopeChooser | None = None,
    ) -> StorageScope:
        """
        Switch scope explicitly. Tasks are never migrated: reload afterwards.

        - global:  the global file
        - project: best detected project; otherwise ask for a custom name (or global)
        - custom:  ask for a name; an empty answer keeps the current scope
        - auto:    interactive detection (see _choose_scope)
        - None:    project/custom -> global, global -> auto
        """
        self._require()
        self.flush()
        old = self._resolve()
        wanted = ToggleMode(mode) if mode is not None else None

        if wanted == ToggleMode.GLOBAL:
            target = StorageScope.global_scope()
        elif wanted == ToggleMode.PROJECT:
            target = self._candidate_scope()
            if not target.is_project:
                name = chooser.ask_project_name(
                    "No project markers found. Enter a custom project name "
                    "or leave empty for global storage: "
                ) if chooser is not None else None
                target = self._custom_scope(name) or StorageScope.global_scope()
        elif wanted == ToggleMode.CUSTOM:
            name = chooser.ask_project_name("Enter custom project name: ") if chooser is not None else None
            custom = self._custom_scope(name)
            if custom is None:
                logger.warning("Invalid project name, keeping current storage mode")
                return old.scope
            target = custom
        elif wanted == ToggleMode.AUTO:
            target = self._choose_scope(chooser)
        elif old.scope.is_project:
            target = StorageScope.global_scope()
        else:
            target = self._choose_scope(chooser)

        return self._switch_to(old, target)

    def select_scope(self, chooser: ScopeChooser) -> StorageScope:
        """Explicit interactive selection; the result is cached for later lookups."""
        return self.toggle_mode(ToggleMode.AUTO, chooser)

    def on_directory_changed(self, cwd: str | Path) -> bool:
        """
        Follow the front-end's working directory.

        Returns True when the resolved scope changed; the caller must reload
        (nothing from the previous scope is carried over).
        """
        config = self._require()
        self.flush()
        previous = self.cache.active_scope or self._resolve().scope
        if not config.auto_detect:
            # Saves must keep landing in the scope that was loaded.
            if self.cache.selected_scope is None:
                self.cache.selected_scope = previous
            self.cache.cwd = Path(cwd)
            logger.debug("Auto-detect off; keeping %s storage", previous.describe())
            return False

        self.cache.cwd = Path(cwd)
        current = self._resolve().scope
        if current == previous:
            return False

        self.cache.active_scope = current
        self.cache.project_root = current.root
        self.cache.data = None
        self.cache.live_file_corrupt = False
        logger.info("Working directory changed, storage scope is now %s", current.describe())
        return True

    # ---- backups ----

    def list_backups(self) -> list[Path]:
        return self.backups.list_backups(self.current_path())

    def restore_backup(self, timestamp: str | None = None) -> bool:
        """Overwrite the live file of the current scope with a snapshot."""
        path = self.current_path()
        try:
            self.backups.restore_backup(path, timestamp)
        except BackupNotFoundError as exc:
            logger.error("%s", exc)
            return False
        except OSError:
            logger.exception("Failed to restore from backup")
            return False
        self.cache.data = None
        self.cache.live_file_corrupt = False
        return True

    # ---- diagnostics ----

    def get_status(self) -> StorageStatus:
        config = self._require()
        resolved = self._resolve()
        selected = self.cache.selected_scope
        return StorageStatus(
            mode=resolved.scope.kind.value,
            scope=resolved.scope,
            current_path=resolved.path,
            file_exists=resolved.path.exists(),
            global_path=config.resolved_global_path(),
            project_enabled=config.project_enabled,
            use_git_root=config.use_git_root,
            auto_detect=config.auto_detect,
            auto_backup=config.auto_backup,
            backup_count=config.backup_count,
            compression=config.compression,
            encryption=config.encryption,
            selected_scope=selected.kind.value if selected is not None else None,
            custom_project_name=self.cache.custom_project_name,
            project_root=resolved.scope.root,
            last_save=self.cache.last_save,
            is_dirty=self.cache.is_dirty,
            pending_save=self.has_pending_save,
        )
