# tests/test_task_models.py

from __future__ import annotations

import pytest

from tasktree.tasks.task_models import (
    DecodeStats,
    Recurrence,
    RelationType,
    Task,
    TaskPriority,
    TaskStatus,
    deserialize_tasks,
    priority_rank,
)


def _tree(depth: int) -> Task:
    root = Task.new("level 0", now=1000.0)
    node = root
    for level in range(1, depth):
        node = node.add_subtask(f"level {level}")
    return root


def test_new_task_defaults() -> None:
    a = Task.new("write report", now=1000.0)
    b = Task.new("write report", now=1000.0)

    assert a.id != b.id
    assert a.status == TaskStatus.PENDING
    assert a.priority == TaskPriority.MEDIUM
    assert a.created_at == a.updated_at == 1000.0
    assert a.subtasks == [] and a.tags == [] and a.relations == []


def test_priority_ordering() -> None:
    assert priority_rank("low") < priority_rank("medium") < priority_rank("high") < priority_rank("urgent")


def test_change_priority_clamps_instead_of_wrapping() -> None:
    task = Task.new("x", priority="urgent")
    task.change_priority(+1)
    assert task.priority == TaskPriority.URGENT

    task = Task.new("x", priority="low")
    task.change_priority(-3)
    assert task.priority == TaskPriority.LOW

    task.change_priority(+2)
    assert task.priority == TaskPriority.HIGH


def test_toggle_marks_done_and_back() -> None:
    task = Task.new("x", now=1000.0)
    task.toggle(now=2000.0)
    assert task.done
    assert task.last_completed == 2000.0
    assert task.updated_at == 2000.0

    task.toggle(now=3000.0)
    assert task.status == TaskStatus.PENDING


def test_completing_daily_task_schedules_next_occurrence() -> None:
    task = Task.new("water plants", recurrence="daily", now=1000.0)
    task.toggle(now=5000.0)

    assert task.status == TaskStatus.PENDING
    assert task.last_completed == 5000.0
    assert task.due_date == pytest.approx(5000.0 + 86400)


def test_numeric_recurrence_counts_days_from_completion() -> None:
    task = Task.new("backup", recurrence=3, due_date=10.0, now=1000.0)
    task.set_status(TaskStatus.DONE, now=2000.0)

    assert task.status == TaskStatus.PENDING
    assert task.due_date == 2000.0 + 3 * 86400


def test_set_status_to_in_progress_and_blocked() -> None:
    task = Task.new("x")
    task.set_status("in_progress")
    assert task.status == TaskStatus.IN_PROGRESS
    task.set_status(TaskStatus.BLOCKED)
    assert task.status == TaskStatus.BLOCKED
    assert task.last_completed is None


def test_add_tag_has_set_semantics_and_no_bump_on_duplicate() -> None:
    task = Task.new("x", tags=["home"])
    task.updated_at = 1.0e12

    assert task.add_tag("home") is False
    assert task.updated_at == 1.0e12
    assert task.add_tag("work") is True
    assert task.tags == ["home", "work"]
    assert task.remove_tag("nope") is False
    assert task.remove_tag("home") is True


def test_remove_subtask_only_searches_direct_children() -> None:
    parent = Task.new("parent")
    child = parent.add_subtask("child")
    grandchild = child.add_subtask("grandchild")

    assert child.indent == parent.indent + 1
    assert grandchild.indent == parent.indent + 2
    assert parent.remove_subtask(grandchild.id) is False
    assert parent.remove_subtask(child.id) is True
    assert parent.subtasks == []


def test_relations_reject_self_and_duplicates() -> None:
    a = Task.new("a")
    b = Task.new("b")

    assert a.add_relation(a.id, RelationType.BLOCKS) is False
    assert a.add_relation(b.id, "blocks") is True
    assert a.add_relation(b.id, "blocks") is False
    assert a.add_relation(b.id, "related_to") is True
    assert a.remove_relation(b.id, "blocks") == 1
    assert a.remove_relation(b.id) == 1
    assert a.relations == []


def test_reminders_are_kept_in_time_order() -> None:
    task = Task.new("x")
    late = task.add_reminder(2000.0, "high")
    early = task.add_reminder(1000.0)

    assert [r.id for r in task.reminders] == [early.id, late.id]
    assert task.remove_reminder(late.id) is True
    assert task.remove_reminder(late.id) is False


def test_metadata_set_and_remove() -> None:
    task = Task.new("x")
    task.set_metadata("ticket", 42)
    assert task.metadata == {"ticket": "42"}
    assert task.remove_metadata("ticket") is True
    assert task.remove_metadata("ticket") is False
    with pytest.raises(ValueError):
        task.set_metadata("  ", "v")


def test_update_rejects_unknown_fields() -> None:
    task = Task.new("x")
    task.update(content="y", priority="high", tags=["a", "a", "b"])
    assert task.content == "y"
    assert task.priority == TaskPriority.HIGH
    assert task.tags == ["a", "b"]

    with pytest.raises(ValueError):
        task.update(id="other")


def test_is_overdue() -> None:
    task = Task.new("x", due_date=100.0)
    assert task.is_overdue(now=200.0)
    assert not task.is_overdue(now=50.0)
    task.toggle()
    assert not task.is_overdue(now=200.0)


def test_serialize_round_trip_keeps_tree() -> None:
    root = _tree(5)
    root.add_tag("deep")
    root.set_note('quotes " and {braces} and      spaces')
    root.recurrence = Recurrence.WEEKLY
    other = Task.new("other")
    root.add_relation(other.id, "depends_on")
    root.add_reminder(1234.5, "critical")

    restored = Task.deserialize(root.serialize())

    assert restored.serialize() == root.serialize()
    node = restored
    for level in range(1, 5):
        node = node.subtasks[0]
        assert node.content == f"level {level}"
        assert node.indent == level


def test_deserialize_tolerates_missing_and_legacy_fields() -> None:
    task = Task.deserialize({"content": "old", "done": True, "priority": 3})
    assert task.id
    assert task.status == TaskStatus.DONE
    assert task.priority == TaskPriority.HIGH
    assert task.tags == [] and task.metadata == {}
    assert task.updated_at >= task.created_at

    todo = Task.deserialize({"content": "kanban", "status": "todo", "priority": "bogus"})
    assert todo.status == TaskStatus.PENDING
    assert todo.priority == TaskPriority.MEDIUM


def test_bad_subtask_is_skipped_and_counted() -> None:
    stats = DecodeStats()
    task = Task.deserialize(
        {
            "content": "parent",
            "subtasks": [{"content": "ok"}, {"no_content": True}, "garbage"],
            "relations": [{"target_id": "abc", "type": "nonsense"}],
        },
        stats,
    )

    assert [st.content for st in task.subtasks] == ["ok"]
    assert stats.skipped == 2
    assert task.relations == []


def test_deserialize_tasks_skips_broken_roots() -> None:
    tasks, skipped = deserialize_tasks([{"content": "a"}, 17, {"content": "b"}])
    assert [t.content for t in tasks] == ["a", "b"]
    assert skipped == 1


def test_non_finite_numbers_fall_back_to_defaults() -> None:
    task = Task.deserialize(
        {
            "content": "huge",
            "priority": float("inf"),
            "recurrence": float("inf"),
            "due_date": float("nan"),
            "last_completed": "-inf",
        }
    )

    assert task.priority == TaskPriority.MEDIUM
    assert task.recurrence is None
    assert task.due_date is None
    assert task.last_completed is None

    tasks, skipped = deserialize_tasks([{"content": "a", "priority": 10**400}, {"content": "b"}])
    assert [t.content for t in tasks] == ["a", "b"]
    assert tasks[0].priority == TaskPriority.URGENT
    assert skipped == 0


def test_runaway_subtask_depth_keeps_the_root() -> None:
    record: dict = {"content": "leaf"}
    for level in range(5000):
        record = {"content": f"n{level}", "subtasks": [record]}

    tasks, skipped = deserialize_tasks([record, {"content": "sibling"}])

    assert [t.content for t in tasks] == ["n4999", "sibling"]
    assert skipped >= 1
