# src/tasktree/tasks/task_api.py

"""
User-driven actions over the live task list.

Every successful mutation fires state.on_task_update and requests a debounced
save of the whole list. Lookups by id search the full tree; unknown ids are
reported as None / False, never raised.
"""

from __future__ import annotations

import logging
from typing import Any

from ..core.state import AppState
from .task_models import Recurrence, RelationType, Reminder, ReminderUrgency, Task, TaskStatus
from .task_tree import find_task, move_task as _move_in_tree, remove_task

logger = logging.getLogger(__name__)


def _commit(state: AppState) -> None:
    state.notify_update()
    state.storage.save_debounced(lambda: state.tasks)


def _get(state: AppState, task_id: str) -> Task | None:
    task = find_task(state.tasks, task_id)
    if task is None:
        logger.debug("Task %s not found", task_id)
    return task


def add_task(state: AppState, content: str, **opts: Any) -> Task:
    content = (content or "").strip()
    if not content:
        raise ValueError("Task content must not be empty")
    task = Task.new(content, **opts)
    state.tasks.append(task)
    _commit(state)
    logger.info("Task added id=%s", task.id)
    return task


def add_subtask(state: AppState, parent_id: str, content: str, **opts: Any) -> Task | None:
    content = (content or "").strip()
    if not content:
        raise ValueError("Task content must not be empty")
    parent = _get(state, parent_id)
    if parent is None:
        return None
    subtask = parent.add_subtask(content, **opts)
    _commit(state)
    return subtask


def delete_task(state: AppState, task_id: str) -> bool:
    removed = remove_task(state.tasks, task_id)
    if removed is None:
        return False
    _commit(state)
    logger.info("Task removed id=%s (%d subtask(s))", task_id, len(removed.subtasks))
    return True


def toggle_task(state: AppState, task_id: str) -> Task | None:
    task = _get(state, task_id)
    if task is None:
        return None
    task.toggle()
    _commit(state)
    return task


def set_status(state: AppState, task_id: str, status: TaskStatus | str) -> Task | None:
    task = _get(state, task_id)
    if task is None:
        return None
    task.set_status(status)
    _commit(state)
    return task


def change_priority(state: AppState, task_id: str, delta: int) -> Task | None:
    task = _get(state, task_id)
    if task is None:
        return None
    task.change_priority(delta)
    _commit(state)
    return task


def add_tag(state: AppState, task_id: str, tag: str) -> bool:
    task = _get(state, task_id)
    if task is None or not task.add_tag(tag):
        return False
    _commit(state)
    return True


def remove_tag(state: AppState, task_id: str, tag: str) -> bool:
    task = _get(state, task_id)
    if task is None or not task.remove_tag(tag):
        return False
    _commit(state)
    return True


def set_note(state: AppState, task_id: str, text: str | None) -> bool:
    task = _get(state, task_id)
    if task is None:
        return False
    task.set_note(text)
    _commit(state)
    return True


def set_due_date(state: AppState, task_id: str, ts: float | None) -> bool:
    task = _get(state, task_id)
    if task is None:
        return False
    task.set_due_date(ts)
    _commit(state)
    return True


def set_recurrence(state: AppState, task_id: str, recurrence: Recurrence | int | str | None) -> bool:
    """Make a task repeat (daily/weekly/monthly or every N days); None stops it."""
    task = _get(state, task_id)
    if task is None:
        return False
    task.set_recurrence(recurrence)
    _commit(state)
    return True


def set_metadata(state: AppState, task_id: str, key: str, value: Any) -> bool:
    task = _get(state, task_id)
    if task is None:
        return False
    task.set_metadata(key, value)
    _commit(state)
    return True


def add_relation(
    state: AppState, task_id: str, target_id: str, rel_type: RelationType | str
) -> bool:
    """Relate two existing tasks; unknown targets are rejected up front."""
    task = _get(state, task_id)
    if task is None or find_task(state.tasks, target_id) is None:
        return False
    if not task.add_relation(target_id, rel_type):
        return False
    _commit(state)
    return True


def add_reminder(
    state: AppState,
    task_id: str,
    at: float,
    urgency: ReminderUrgency | str = ReminderUrgency.NORMAL,
) -> Reminder | None:
    task = _get(state, task_id)
    if task is None:
        return None
    reminder = task.add_reminder(at, urgency)
    _commit(state)
    return reminder


def move_task(state: AppState, task_id: str, direction: int) -> bool:
    if not _move_in_tree(state.tasks, task_id, direction):
        return False
    _commit(state)
    return True
