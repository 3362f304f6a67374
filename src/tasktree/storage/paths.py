# src/tasktree/storage/paths.py

"""
Storage scope resolution.

Everything here is pure given (cwd, cached scope, config): it may stat the
filesystem but never prompts, never creates directories and never mutates state.
Interactive selection lives in Storage.select_scope().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from ..config import StorageConfig

logger = logging.getLogger(__name__)

VCS_MARKER = ".git"


class ScopeKind(StrEnum):
    GLOBAL = "global"
    PROJECT = "project"
    CUSTOM = "custom"


@dataclass(frozen=True, slots=True)
class StorageScope:
    kind: ScopeKind
    root: Path | None = None
    name: str | None = None

    @classmethod
    def global_scope(cls) -> StorageScope:
        return cls(kind=ScopeKind.GLOBAL)

    @classmethod
    def project(cls, root: str | Path) -> StorageScope:
        return cls(kind=ScopeKind.PROJECT, root=Path(root))

    @classmethod
    def custom(cls, root: str | Path, name: str) -> StorageScope:
        return cls(kind=ScopeKind.CUSTOM, root=Path(root), name=name)

    @property
    def is_project(self) -> bool:
        return self.kind != ScopeKind.GLOBAL

    def describe(self) -> str:
        if self.kind == ScopeKind.CUSTOM:
            return f"custom project '{self.name}'"
        if self.kind == ScopeKind.PROJECT:
            return f"project {self.root}"
        return "global"


class CandidateKind(StrEnum):
    GIT = "git"
    MARKER_DIR = "marker_dir"
    MARKER = "marker"


@dataclass(frozen=True, slots=True)
class ProjectCandidate:
    path: Path
    kind: CandidateKind
    label: str
    priority: int
    marker: str | None = None


@dataclass(frozen=True, slots=True)
class ResolvedPath:
    path: Path
    scope: StorageScope


def _exists(path: Path) -> bool:
    try:
        return path.exists()
    except OSError:
        return False


def _walk_up(start: Path) -> list[Path]:
    start = Path(start).expanduser().resolve()
    return [start, *start.parents]


def find_vcs_root(cwd: str | Path) -> Path | None:
    """Closest ancestor (inclusive) that contains a .git entry."""
    for directory in _walk_up(Path(cwd)):
        if _exists(directory / VCS_MARKER):
            return directory
    return None


def find_marker_root(cwd: str | Path, config: StorageConfig, *, manifests: bool) -> ProjectCandidate | None:
    """
    Walk up from cwd to the first directory holding the storage marker directory,
    or (when `manifests`) one of the configured marker files.
    """
    other = [m for m in config.markers if m not in (VCS_MARKER, config.marker_dir)]
    for directory in _walk_up(Path(cwd)):
        if _exists(directory / config.marker_dir):
            return ProjectCandidate(
                path=directory,
                kind=CandidateKind.MARKER_DIR,
                label=f"Marked project: {directory.name}",
                priority=2,
                marker=config.marker_dir,
            )
        if not manifests:
            continue
        for marker in other:
            if _exists(directory / marker):
                return ProjectCandidate(
                    path=directory,
                    kind=CandidateKind.MARKER,
                    label=f"Project ({marker}): {directory.name}",
                    priority=3,
                    marker=marker,
                )
    return None


def find_project_candidates(cwd: str | Path, config: StorageConfig) -> list[ProjectCandidate]:
    """All project roots detectable from cwd, best first, one entry per directory."""
    found: list[ProjectCandidate] = []

    if config.use_git_root:
        git_root = find_vcs_root(cwd)
        if git_root is not None:
            found.append(
                ProjectCandidate(
                    path=git_root,
                    kind=CandidateKind.GIT,
                    label=f"Git project: {git_root.name}",
                    priority=1,
                    marker=VCS_MARKER,
                )
            )

    marked = find_marker_root(cwd, config, manifests=False)
    if marked is not None:
        found.append(marked)

    manifest = find_marker_root(cwd, config, manifests=True)
    if manifest is not None and manifest.kind == CandidateKind.MARKER:
        found.append(manifest)

    found.sort(key=lambda c: c.priority)
    out: list[ProjectCandidate] = []
    seen: set[Path] = set()
    for cand in found:
        if cand.path in seen:
            continue
        seen.add(cand.path)
        out.append(cand)
    return out


def path_for_scope(scope: StorageScope, config: StorageConfig) -> Path:
    if scope.kind == ScopeKind.CUSTOM and scope.root is not None and scope.name:
        return config.custom_project_path(scope.root, scope.name)
    if scope.kind == ScopeKind.PROJECT and scope.root is not None:
        return config.project_path(scope.root)
    return config.resolved_global_path()


def detect_scope(cwd: str | Path, config: StorageConfig, *, project_enabled: bool | None = None) -> StorageScope:
    """
    Automatic detection (no cached selection):
    1. VCS root, when project mode and use_git_root are on
    2. the storage marker directory walking up (always honoured: it is an explicit opt-in)
    3. configured marker files walking up, when project mode is on
    4. global
    """
    enabled = config.project_enabled if project_enabled is None else project_enabled

    if enabled and config.use_git_root:
        git_root = find_vcs_root(cwd)
        if git_root is not None:
            return StorageScope.project(git_root)

    marker = find_marker_root(cwd, config, manifests=enabled)
    if marker is not None:
        return StorageScope.project(marker.path)

    return StorageScope.global_scope()


def resolve_path(
    cwd: str | Path,
    cached_scope: StorageScope | None,
    config: StorageConfig,
    force: ScopeKind | str | None = None,
) -> ResolvedPath:
    """
    Return the one storage file for the current situation.

    `force` overrides the cached selection for a single call:
    - global: always the global file
    - custom: the cached custom project (global if none was ever chosen)
    - project: the cached project root, else detection with project mode forced on
    """
    forced = ScopeKind(force) if force is not None else None

    if forced == ScopeKind.GLOBAL:
        scope = StorageScope.global_scope()
    elif forced == ScopeKind.CUSTOM:
        if cached_scope is not None and cached_scope.kind == ScopeKind.CUSTOM:
            scope = cached_scope
        else:
            logger.debug("No custom project selected; custom lookup falls back to global")
            scope = StorageScope.global_scope()
    elif forced == ScopeKind.PROJECT:
        if cached_scope is not None and cached_scope.is_project:
            scope = cached_scope
        else:
            scope = detect_scope(cwd, config, project_enabled=True)
    elif cached_scope is not None:
        scope = cached_scope
    else:
        scope = detect_scope(cwd, config)

    return ResolvedPath(path=path_for_scope(scope, config), scope=scope)
