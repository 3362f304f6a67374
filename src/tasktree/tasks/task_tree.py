# src/tasktree/tasks/task_tree.py

"""
Whole-tree helpers.

Task methods only look at direct children; everything that has to walk the
full forest (deep removal, id lookup, relation resolution, statistics) lives here.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass

from .task_models import Relation, Reminder, Task, generate_id

logger = logging.getLogger(__name__)


def iter_tasks(tasks: list[Task]) -> Iterator[Task]:
    """Depth-first, parents before children, in display order."""
    stack = list(reversed(tasks))
    while stack:
        task = stack.pop()
        yield task
        stack.extend(reversed(task.subtasks))


def count_nodes(tasks: list[Task]) -> int:
    return sum(1 for _ in iter_tasks(tasks))


def build_index(tasks: list[Task]) -> dict[str, Task]:
    """id -> Task side index (first occurrence wins)."""
    index: dict[str, Task] = {}
    for task in iter_tasks(tasks):
        index.setdefault(task.id, task)
    return index


def find_task(tasks: list[Task], task_id: str) -> Task | None:
    for task in iter_tasks(tasks):
        if task.id == task_id:
            return task
    return None


def find_parent(tasks: list[Task], task_id: str) -> Task | None:
    """Parent of `task_id`, or None for top-level / unknown ids."""
    for task in iter_tasks(tasks):
        if any(st.id == task_id for st in task.subtasks):
            return task
    return None


def remove_task(tasks: list[Task], task_id: str) -> Task | None:
    """
    Remove `task_id` (and therefore its whole subtree) from anywhere in the forest.

    Returns the detached node, or None when the id is not present.
    """
    for i, task in enumerate(tasks):
        if task.id == task_id:
            return tasks.pop(i)

    parent = find_parent(tasks, task_id)
    if parent is None:
        return None
    for st in parent.subtasks:
        if st.id == task_id:
            parent.remove_subtask(task_id)
            return st
    return None


def move_task(tasks: list[Task], task_id: str, direction: int) -> bool:
    """Swap a task with a sibling `direction` positions away (top level or nested)."""
    parent = find_parent(tasks, task_id)
    siblings = parent.subtasks if parent is not None else tasks
    for i, task in enumerate(siblings):
        if task.id != task_id:
            continue
        new_pos = i + int(direction)
        if new_pos < 0 or new_pos >= len(siblings):
            return False
        siblings[i], siblings[new_pos] = siblings[new_pos], siblings[i]
        if parent is not None:
            parent._touch()
        return True
    return False


def ensure_unique_ids(tasks: list[Task]) -> int:
    """
    Give a fresh id to every node whose id was already seen.

    Returns how many nodes were re-identified. Relations keep pointing at the first
    holder of the duplicated id.
    """
    seen: set[str] = set()
    fixed = 0
    for task in iter_tasks(tasks):
        if task.id in seen:
            old = task.id
            task.id = generate_id()
            fixed += 1
            logger.warning("Duplicate task id %s re-assigned to %s", old, task.id)
        seen.add(task.id)
    return fixed


@dataclass(frozen=True, slots=True)
class ResolvedRelation:
    relation: Relation
    target: Task


def resolve_relations(
    task: Task, tasks: list[Task], index: dict[str, Task] | None = None
) -> list[ResolvedRelation]:
    """Relations of `task` whose targets still exist; dangling ids are skipped."""
    if index is None:
        index = build_index(tasks)
    out: list[ResolvedRelation] = []
    for relation in task.relations:
        target = index.get(relation.target_id)
        if target is None:
            logger.debug("Relation %s -> %s is dangling", task.id, relation.target_id)
            continue
        out.append(ResolvedRelation(relation=relation, target=target))
    return out


@dataclass(frozen=True, slots=True)
class TaskStatistics:
    total: int
    done: int
    pending: int
    overdue: int


def task_statistics(tasks: list[Task], now: float | None = None) -> TaskStatistics:
    now_ts = time.time() if now is None else now
    total = done = overdue = 0
    for task in iter_tasks(tasks):
        total += 1
        if task.done:
            done += 1
        elif task.is_overdue(now_ts):
            overdue += 1
    return TaskStatistics(total=total, done=done, pending=total - done, overdue=overdue)


def due_reminders(tasks: list[Task], now: float | None = None) -> list[tuple[Task, Reminder]]:
    """Unfired reminders whose time has come, oldest first."""
    now_ts = time.time() if now is None else now
    out = [
        (task, reminder)
        for task in iter_tasks(tasks)
        if not task.done
        for reminder in task.reminders
        if reminder.is_due(now_ts)
    ]
    out.sort(key=lambda pair: pair[1].time)
    return out
