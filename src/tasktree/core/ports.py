# src/tasktree/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete front-ends.
The editor/console decides how to prompt and how to show notifications;
the core only asks and reacts.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from ..storage.paths import StorageScope

if TYPE_CHECKING:
    from ..tasks.task_models import Reminder, Task


@dataclass(frozen=True, slots=True)
class ScopeOption:
    """One entry of the interactive scope picker; scope=None means "new custom project"."""

    label: str
    scope: StorageScope | None


class ScopeChooser(Protocol):
    """Front-end side of interactive scope selection."""

    def choose_scope(self, options: list[ScopeOption]) -> ScopeOption | None: ...

    def ask_project_name(self, prompt: str) -> str | None: ...


class ReminderNotifier(Protocol):
    """How the reminder loop surfaces a due reminder (popup, console line, ...)."""

    def notify_reminder(self, task: Task, reminder: Reminder) -> None: ...


TaskUpdateCallback = Callable[[list["Task"]], None]
# Called after every structural mutation so the presentation layer can re-render.
