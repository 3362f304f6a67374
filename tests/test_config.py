# tests/test_config.py

from __future__ import annotations

from pathlib import Path

import pytest

from tasktree.config import Settings, StorageConfig, merge_storage_config


def test_merge_rejects_unknown_keys() -> None:
    with pytest.raises(ValueError, match="Unknown storage config keys: colour"):
        merge_storage_config(StorageConfig(), {"colour": "blue"})


def test_merge_coerces_and_clamps(tmp_path: Path) -> None:
    merged = merge_storage_config(
        StorageConfig(),
        {
            "global_path": str(tmp_path / "t.json"),
            "markers": ["go.mod"],
            "backup_count": 0,
            "project_enabled": True,
        },
    )

    assert merged.global_path == tmp_path / "t.json"
    assert merged.markers == ("go.mod",)
    assert merged.backup_count == 1
    assert merged.project_enabled
    assert merge_storage_config(merged, None) is merged


def test_project_paths(tmp_path: Path) -> None:
    config = StorageConfig(data_dir=tmp_path)

    assert config.resolved_global_path() == tmp_path / "tasks.json"
    assert config.project_path(tmp_path / "p") == tmp_path / "p" / ".tasktree" / "tasks.json"
    assert config.custom_project_path(tmp_path, "x") == tmp_path / ".tasktree" / "x" / "tasks.json"


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TASKTREE_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("TASKTREE_BACKUP_COUNT", "3")
    monkeypatch.setenv("TASKTREE_COMPRESSION", "false")
    monkeypatch.setenv("TASKTREE_PROJECT_ENABLED", "yes")
    monkeypatch.setenv("TASKTREE_MARKERS", ".git, go.mod")
    monkeypatch.setenv("TASKTREE_SAVE_DEBOUNCE", "not a number")
    monkeypatch.delenv("TASKTREE_GLOBAL_PATH", raising=False)
    monkeypatch.delenv("TASKTREE_LOG_DIR", raising=False)

    settings = Settings.from_env()
    storage = settings.storage

    assert storage.data_dir == tmp_path
    assert settings.log_dir == tmp_path
    assert storage.backup_count == 3
    assert storage.compression is False
    assert storage.project_enabled is True
    assert storage.markers == (".git", "go.mod")
    assert storage.save_debounce_seconds == 1.0


@pytest.mark.parametrize("pattern", ["tasks.json", "%s/%s.json", "%d/tasks.json", "%%s/tasks.json"])
def test_merge_rejects_path_pattern_without_root_slot(pattern: str) -> None:
    with pytest.raises(ValueError, match="path_pattern"):
        merge_storage_config(StorageConfig(), {"path_pattern": pattern})


def test_bad_path_pattern_from_env_falls_back_to_default(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("TASKTREE_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("TASKTREE_PATH_PATTERN", "/tmp/tasks.json")

    storage = Settings.from_env().storage

    assert storage.path_pattern == "%s/.tasktree/tasks.json"
    assert storage.project_path(tmp_path) == tmp_path / ".tasktree" / "tasks.json"

    monkeypatch.setenv("TASKTREE_PATH_PATTERN", "%s/todo/tasks.json")
    assert Settings.from_env().storage.project_path(tmp_path) == tmp_path / "todo" / "tasks.json"
