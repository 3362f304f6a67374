# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from tasktree.config import Settings, StorageConfig
from tasktree.core.state import AppState
from tasktree.storage.storage import Storage


class StepClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture()
def clock() -> StepClock:
    return StepClock()


@pytest.fixture()
def workdir(tmp_path: Path) -> Path:
    """A plain directory with no project markers."""
    path = tmp_path.resolve() / "work"
    path.mkdir()
    return path


@pytest.fixture()
def storage_config(tmp_path: Path) -> StorageConfig:
    """
    Storage config isolated under tmp_path.

    Project mode is off by default; tests that need it use dataclasses.replace().
    """
    return StorageConfig(
        data_dir=tmp_path.resolve() / "data",
        backup_count=2,
        save_debounce_seconds=0.05,
    )


@pytest.fixture()
def storage(storage_config: StorageConfig, workdir: Path, clock: StepClock) -> Storage:
    return Storage(storage_config, cwd=workdir, clock=clock)


@pytest.fixture()
def settings(tmp_path: Path, storage_config: StorageConfig) -> Settings:
    return Settings(
        app_name="tasktree-test",
        log_level="DEBUG",
        log_dir=tmp_path / "logs",
        storage=storage_config,
        reminder_interval_seconds=1.0,
        autosave_interval_seconds=1.0,
    )


@pytest.fixture()
def updates() -> list[int]:
    """Task counts seen by on_task_update, one entry per call."""
    return []


@pytest.fixture()
def state(settings: Settings, storage: Storage, updates: list[int]) -> AppState:
    return AppState(
        settings=settings,
        storage=storage,
        on_task_update=lambda tasks: updates.append(len(tasks)),
    )
