# tests/fakes.py

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from tasktree.core.ports import ScopeOption
from tasktree.tasks.task_models import Reminder, Task


@dataclass(slots=True)
class FakeChooser:
    """
    Scripted ScopeChooser.

    - pick: selects the option to return (None = user cancelled the picker)
    - project_name: answer to every ask_project_name() prompt
    """

    pick: Callable[[list[ScopeOption]], ScopeOption | None] | None = None
    project_name: str | None = None
    offered: list[list[ScopeOption]] = field(default_factory=list)
    prompts: list[str] = field(default_factory=list)

    def choose_scope(self, options: list[ScopeOption]) -> ScopeOption | None:
        self.offered.append(list(options))
        if self.pick is None:
            return None
        return self.pick(options)

    def ask_project_name(self, prompt: str) -> str | None:
        self.prompts.append(prompt)
        return self.project_name


def pick_custom(options: list[ScopeOption]) -> ScopeOption | None:
    return next(o for o in options if o.scope is None)


def pick_index(i: int) -> Callable[[list[ScopeOption]], ScopeOption | None]:
    return lambda options: options[i]


@dataclass(slots=True)
class FakeNotifier:
    """ReminderNotifier that records deliveries; can be told to fail."""

    fail: bool = False
    delivered: list[tuple[str, str]] = field(default_factory=list)

    def notify_reminder(self, task: Task, reminder: Reminder) -> None:
        if self.fail:
            raise RuntimeError("notification backend down")
        self.delivered.append((task.id, reminder.id))
