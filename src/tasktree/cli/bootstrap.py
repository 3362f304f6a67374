# src/tasktree/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures the per-user data directory exists,
- wires Storage into AppState and loads the initial task list.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..config import Settings, get_settings
from ..core.ports import ScopeChooser
from ..core.state import AppState
from ..storage.storage import Storage

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.storage.data_dir.mkdir(parents=True, exist_ok=True)
    settings.storage.resolved_global_path().parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(
    *,
    settings: Settings | None = None,
    cwd: str | Path | None = None,
    chooser: ScopeChooser | None = None,
) -> AppState:
    """
    Create AppState from the provided settings and load the tasks of the resolved scope.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    storage = Storage(settings.storage, cwd=cwd)
    state = AppState(settings=settings, storage=storage, scope_chooser=chooser)

    if not state.reload():
        logger.warning("Starting with an empty task list; %s could not be read", storage.current_path())
    else:
        logger.info("Storage: %s (%s)", storage.current_scope().describe(), storage.current_path())
    return state


def shutdown_state(state: AppState) -> bool:
    """Write any pending or unsaved changes; returns False when the final save failed."""
    storage = state.storage
    ok = storage.close()
    if ok and storage.cache.is_dirty:
        ok = storage.save(state.tasks)
    if not ok:
        logger.error("Final save failed; changes may be lost")
    return ok
