# tests/test_paths.py

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from tasktree.config import StorageConfig
from tasktree.storage.paths import (
    CandidateKind,
    ScopeKind,
    StorageScope,
    detect_scope,
    find_project_candidates,
    resolve_path,
)


def _project(root: Path, *markers: str) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for marker in markers:
        if marker.startswith("."):
            (root / marker).mkdir()
        else:
            (root / marker).write_text("{}", "utf-8")
    return root


def test_global_when_no_selection_and_project_mode_off(storage_config: StorageConfig, workdir: Path) -> None:
    _project(workdir, ".git")

    resolved = resolve_path(workdir, None, storage_config)

    assert resolved.scope.kind == ScopeKind.GLOBAL
    assert resolved.path == storage_config.resolved_global_path()


def test_git_root_found_from_nested_directory(storage_config: StorageConfig, workdir: Path) -> None:
    config = replace(storage_config, project_enabled=True)
    root = _project(workdir / "proj", ".git")
    nested = root / "src" / "pkg"
    nested.mkdir(parents=True)

    resolved = resolve_path(nested, None, config)

    assert resolved.scope == StorageScope.project(root)
    assert resolved.path == root / ".tasktree" / "tasks.json"


def test_marker_dir_is_honoured_even_when_project_mode_off(
    storage_config: StorageConfig, workdir: Path
) -> None:
    root = _project(workdir / "marked", ".tasktree")
    nested = root / "docs" / "api"
    nested.mkdir(parents=True)

    assert detect_scope(root, storage_config) == StorageScope.project(root)
    assert detect_scope(nested, storage_config) == StorageScope.project(root)


def test_manifest_markers_need_project_mode(storage_config: StorageConfig, workdir: Path) -> None:
    root = _project(workdir / "node", "package.json")
    nested = root / "src" / "lib"
    nested.mkdir(parents=True)

    assert detect_scope(root, storage_config).kind == ScopeKind.GLOBAL
    assert detect_scope(root, replace(storage_config, project_enabled=True)) == StorageScope.project(root)
    assert detect_scope(nested, replace(storage_config, project_enabled=True)) == StorageScope.project(root)


def test_use_git_root_off_ignores_vcs(storage_config: StorageConfig, workdir: Path) -> None:
    config = replace(storage_config, project_enabled=True, use_git_root=False)
    root = _project(workdir / "proj", ".git")

    assert detect_scope(root, config).kind == ScopeKind.GLOBAL


def test_cached_selection_wins_and_force_overrides(storage_config: StorageConfig, workdir: Path) -> None:
    custom = StorageScope.custom(workdir, "alpha")

    resolved = resolve_path(workdir, custom, storage_config)
    assert resolved.path == workdir / ".tasktree" / "alpha" / "tasks.json"

    forced = resolve_path(workdir, custom, storage_config, force="global")
    assert forced.scope.kind == ScopeKind.GLOBAL

    assert resolve_path(workdir, None, storage_config, force="custom").scope.kind == ScopeKind.GLOBAL


def test_force_project_detects_even_with_project_mode_off(
    storage_config: StorageConfig, workdir: Path
) -> None:
    root = _project(workdir / "proj", ".git")

    assert resolve_path(root, None, storage_config, force="project").scope == StorageScope.project(root)


def test_candidates_are_ordered_and_deduplicated(storage_config: StorageConfig, workdir: Path) -> None:
    root = _project(workdir / "proj", ".git", "package.json")
    sub = _project(root / "sub", ".tasktree")

    candidates = find_project_candidates(sub, storage_config)

    assert [(c.kind, c.path) for c in candidates] == [
        (CandidateKind.GIT, root),
        (CandidateKind.MARKER_DIR, sub),
    ]
    assert [c.kind for c in find_project_candidates(root, storage_config)] == [CandidateKind.GIT]


def test_global_path_override(storage_config: StorageConfig, tmp_path: Path) -> None:
    config = replace(storage_config, global_path=tmp_path / "elsewhere.json")
    assert config.resolved_global_path() == tmp_path / "elsewhere.json"
