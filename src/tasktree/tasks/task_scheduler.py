# src/tasktree/tasks/task_scheduler.py

from __future__ import annotations

"""
Background loops.

- reminder loop: finds due, unfired reminders, hands them to an injected
  notifier port and marks them fired;
- autosave loop: writes the live list when the storage cache is dirty.

How a reminder is shown (popup, console line) belongs to the front-end, not here.
To stop a loop, cancel the coroutine/task.
"""

import asyncio
import logging
import time

from ..core.ports import ReminderNotifier
from ..core.state import AppState
from .task_tree import due_reminders

logger = logging.getLogger(__name__)


def dispatch_due_reminders(
    state: AppState, notifier: ReminderNotifier, *, now: float | None = None
) -> int:
    """
    One reminder pass. Returns how many reminders were delivered.

    A reminder whose notification fails stays unfired and is retried on the next pass.
    """
    now_ts = time.time() if now is None else now
    delivered = 0

    for task, reminder in due_reminders(state.tasks, now_ts):
        try:
            notifier.notify_reminder(task, reminder)
        except Exception:
            logger.exception("notify_reminder failed task_id=%s reminder_id=%s", task.id, reminder.id)
            continue
        reminder.fired = True
        delivered += 1
        logger.info("Reminder %s fired for task %s", reminder.id, task.id)

    if delivered:
        state.notify_update()
        state.storage.save_debounced(lambda: state.tasks)
    return delivered


def autosave_once(state: AppState) -> bool:
    """Flush a pending save, or write the list if the cache is marked dirty."""
    storage = state.storage
    if storage.has_pending_save:
        return storage.flush()
    if storage.cache.is_dirty:
        return storage.save(state.tasks)
    return True


async def run_reminder_scheduler(
        state: AppState,
        notifier: ReminderNotifier,
        *,
        interval_seconds: float = 30.0,
) -> None:
    sleep_s = max(0.5, float(interval_seconds))

    while True:
        try:
            dispatch_due_reminders(state, notifier)
        except Exception:
            logger.exception("reminder pass failed")
        await asyncio.sleep(sleep_s)


async def run_autosave(state: AppState, *, interval_seconds: float = 60.0) -> None:
    sleep_s = max(0.5, float(interval_seconds))

    while True:
        await asyncio.sleep(sleep_s)
        try:
            if not autosave_once(state):
                logger.warning("Autosave failed; will retry in %.0fs", sleep_s)
        except Exception:
            logger.exception("autosave pass failed")
