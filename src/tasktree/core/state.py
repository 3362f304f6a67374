# src/tasktree/core/state.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..tasks.task_models import Task
from .ports import ScopeChooser, TaskUpdateCallback

if TYPE_CHECKING:
    from ..config import Settings
    from ..storage.storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """
    Application state shared across front-ends.

    `tasks` is the live forest for the currently resolved storage scope; it is
    replaced (never merged) when the scope changes.
    """

    settings: Settings
    storage: Storage

    tasks: list[Task] = field(default_factory=list)
    on_task_update: TaskUpdateCallback | None = None
    # Front-end side of interactive scope selection (None = non-interactive).
    scope_chooser: ScopeChooser | None = None

    def notify_update(self) -> None:
        if self.on_task_update is None:
            return
        try:
            self.on_task_update(self.tasks)
        except Exception:
            logger.exception("on_task_update callback failed")

    def reload(self) -> bool:
        """Replace the live list with the contents of the current scope."""
        tasks, ok = self.storage.load()
        self.tasks = tasks
        self.notify_update()
        return ok
