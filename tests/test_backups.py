# tests/test_backups.py

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from tasktree.config import StorageConfig
from tasktree.errors import BackupNotFoundError, CodecError
from tasktree.storage.backups import BackupManager
from tasktree.storage.codec import Codec

from .conftest import StepClock


@pytest.fixture()
def live(tmp_path: Path) -> Path:
    path = tmp_path / "store" / "tasks.json"
    path.parent.mkdir()
    return path


@pytest.fixture()
def manager(storage_config: StorageConfig, clock: StepClock) -> BackupManager:
    return BackupManager(storage_config, Codec(), clock=clock)


def test_no_backup_without_live_file(manager: BackupManager, live: Path) -> None:
    assert manager.create_backup(live) is None
    assert manager.list_backups(live) == []


def test_backup_name_carries_timestamp(manager: BackupManager, live: Path) -> None:
    live.write_bytes(b"[]")

    backup = manager.create_backup(live)

    assert backup is not None
    assert backup.name == "tasks.backup.20240101120001.json"
    assert manager.timestamp_of(backup) == "20240101120001"
    assert backup.read_bytes() == b"[]"


def test_retention_prunes_oldest(manager: BackupManager, live: Path) -> None:
    for i in range(4):
        live.write_text(f"[{i}]", "utf-8")
        manager.create_backup(live)

    backups = manager.list_backups(live)

    assert len(backups) == 2
    assert [b.read_text("utf-8") for b in backups] == ["[2]", "[3]"]


def test_auto_backup_off_creates_nothing(storage_config: StorageConfig, clock: StepClock, live: Path) -> None:
    manager = BackupManager(replace(storage_config, auto_backup=False), Codec(), clock=clock)
    live.write_bytes(b"[]")

    assert manager.create_backup(live) is None


def test_restore_specific_and_latest(manager: BackupManager, live: Path) -> None:
    live.write_text("[1]", "utf-8")
    first = manager.create_backup(live)
    live.write_text("[2]", "utf-8")
    manager.create_backup(live)
    live.write_text("[3]", "utf-8")

    assert first is not None
    manager.restore_backup(live, manager.timestamp_of(first))
    assert live.read_text("utf-8") == "[1]"

    manager.restore_backup(live)
    assert live.read_text("utf-8") == "[2]"


def test_find_backup_errors(manager: BackupManager, live: Path) -> None:
    with pytest.raises(BackupNotFoundError):
        manager.find_backup(live)
    with pytest.raises(BackupNotFoundError):
        manager.find_backup(live, "yesterday")
    with pytest.raises(BackupNotFoundError):
        manager.find_backup(live, "20000101000000")


def test_load_latest_backup_falls_back_to_older_snapshot(manager: BackupManager, live: Path) -> None:
    live.write_text('[{"content":"good"}]', "utf-8")
    manager.create_backup(live)
    live.write_bytes(b"\x00garbage")
    manager.create_backup(live)

    assert manager.load_latest_backup(live) == [{"content": "good"}]


def test_load_latest_backup_when_all_unreadable(manager: BackupManager, live: Path) -> None:
    live.write_bytes(b"garbage")
    manager.create_backup(live)

    with pytest.raises(CodecError):
        manager.load_latest_backup(live)
