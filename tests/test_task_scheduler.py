# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio
import time

import pytest

from tasktree.core.state import AppState
from tasktree.tasks import task_api
from tasktree.tasks.task_models import Task
from tasktree.tasks.task_scheduler import autosave_once, dispatch_due_reminders, run_reminder_scheduler

from .fakes import FakeNotifier


def test_due_reminder_is_delivered_once(state: AppState) -> None:
    task = task_api.add_task(state, "call mom")
    reminder = task_api.add_reminder(state, task.id, 100.0, "high")
    assert reminder is not None
    notifier = FakeNotifier()

    assert dispatch_due_reminders(state, notifier, now=200.0) == 1
    assert dispatch_due_reminders(state, notifier, now=300.0) == 0

    assert notifier.delivered == [(task.id, reminder.id)]
    stored = state.storage.load()[0][0]
    assert stored.reminders[0].fired


def test_future_reminder_waits(state: AppState) -> None:
    task = task_api.add_task(state, "later")
    task_api.add_reminder(state, task.id, 500.0)
    notifier = FakeNotifier()

    assert dispatch_due_reminders(state, notifier, now=200.0) == 0
    assert notifier.delivered == []


def test_failed_notification_is_retried(state: AppState) -> None:
    task = task_api.add_task(state, "x")
    task_api.add_reminder(state, task.id, 100.0)

    assert dispatch_due_reminders(state, FakeNotifier(fail=True), now=200.0) == 0
    assert not task.reminders[0].fired

    notifier = FakeNotifier()
    assert dispatch_due_reminders(state, notifier, now=200.0) == 1


def test_autosave_writes_dirty_cache(state: AppState) -> None:
    task_api.add_task(state, "x")
    state.storage.cache.is_dirty = True
    state.tasks.append(Task.new("added behind the api"))

    assert autosave_once(state) is True
    assert not state.storage.cache.is_dirty
    assert [t.content for t in state.storage.load()[0]] == ["x", "added behind the api"]


@pytest.mark.asyncio
async def test_reminder_loop_delivers_due_reminder(state: AppState) -> None:
    task = task_api.add_task(state, "ping")
    task.add_reminder(time.time() - 1)
    notifier = FakeNotifier()

    runner = asyncio.create_task(run_reminder_scheduler(state, notifier, interval_seconds=0.01))

    await asyncio.sleep(0.05)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert len(notifier.delivered) == 1, "Reminder loop should deliver exactly once"
    assert state.storage.flush() is True
    assert state.storage.load()[0][0].reminders[0].fired
