# src/tasktree/storage/backups.py

from __future__ import annotations

import contextlib
import logging
import os
import re
import shutil
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from ..config import StorageConfig
from ..errors import BackupNotFoundError, CodecError
from .codec import Codec

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
_TIMESTAMP_RE = re.compile(r"^\d{14}$")


class BackupManager:
    """
    Numbered snapshots next to the storage file:

        <dir>/<stem>.backup.<YYYYMMDDHHMMSS>.json

    Snapshots are raw copies (same codec as the live file). Names sort
    lexicographically in time order; two snapshots in the same second share a
    name and the later one wins.
    """

    def __init__(
        self,
        config: StorageConfig,
        codec: Codec,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._codec = codec
        self._clock = clock or datetime.now

    @staticmethod
    def _pattern(path: Path) -> re.Pattern[str]:
        return re.compile(rf"^{re.escape(path.stem)}\.backup\.(\d{{14}})\.json$")

    def backup_path(self, path: Path, timestamp: str | None = None) -> Path:
        ts = timestamp or self._clock().strftime(TIMESTAMP_FORMAT)
        return path.parent / f"{path.stem}.backup.{ts}.json"

    def list_backups(self, path: Path) -> list[Path]:
        """Snapshots for `path`, oldest first."""
        directory = path.parent
        if not directory.is_dir():
            return []
        pattern = self._pattern(path)
        return sorted(p for p in directory.iterdir() if pattern.match(p.name))

    @staticmethod
    def timestamp_of(backup: Path) -> str:
        return backup.name.rsplit(".", 2)[-2]

    def create_backup(self, path: Path) -> Path | None:
        """
        Copy the live file to a new snapshot and prune old ones.

        Best-effort: failures are logged and reported as None, never raised.
        """
        if not self._config.auto_backup:
            return None
        if not path.exists():
            return None

        target = self.backup_path(path)
        try:
            shutil.copy2(path, target)
        except OSError:
            logger.exception("Failed to create backup %s", target)
            return None

        logger.debug("Backup created: %s", target)
        self.prune(path)
        return target

    def prune(self, path: Path) -> int:
        """Delete the oldest snapshots beyond the retention count; returns how many went."""
        keep = max(1, int(self._config.backup_count))
        backups = self.list_backups(path)
        removed = 0
        while len(backups) > keep:
            oldest = backups.pop(0)
            try:
                oldest.unlink()
                removed += 1
            except OSError:
                logger.exception("Failed to delete old backup %s", oldest)
        return removed

    def find_backup(self, path: Path, timestamp: str | None = None) -> Path:
        if timestamp is not None:
            if not _TIMESTAMP_RE.match(timestamp):
                raise BackupNotFoundError(f"Invalid backup timestamp: {timestamp}")
            candidate = self.backup_path(path, timestamp)
            if not candidate.exists():
                raise BackupNotFoundError(f"Backup not found: {candidate}")
            return candidate

        backups = self.list_backups(path)
        if not backups:
            raise BackupNotFoundError(f"No backups found for {path}")
        return backups[-1]

    def restore_backup(self, path: Path, timestamp: str | None = None) -> Path:
        """
        Replace the live file with a snapshot (the newest one when no timestamp).

        The copy goes through a temp sibling + os.replace, like a normal save.
        """
        source = self.find_backup(path, timestamp)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        try:
            shutil.copyfile(source, tmp)
            os.replace(tmp, path)
        except OSError:
            with contextlib.suppress(OSError):
                tmp.unlink()
            raise
        logger.info("Restored %s from backup %s", path, source.name)
        return source

    def load_latest_backup(self, path: Path) -> Any:
        """
        Decode the newest readable snapshot without touching the live file.

        Older snapshots are tried when the newest one is unreadable.
        """
        backups = self.list_backups(path)
        if not backups:
            raise BackupNotFoundError(f"No backups found for {path}")

        last_error: Exception | None = None
        for backup in reversed(backups):
            try:
                payload = self._codec.decode(backup.read_bytes())
            except (OSError, CodecError) as exc:
                logger.warning("Backup %s is unreadable: %s", backup.name, exc)
                last_error = exc
                continue
            logger.info("Loaded tasks from backup %s", backup.name)
            return payload

        raise CodecError(f"No readable backup for {path}: {last_error}")
