# src/tasktree/tasks/task_models.py

from __future__ import annotations

import logging
import math
import time
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..errors import TaskDecodeError

logger = logging.getLogger(__name__)

DAY_SECONDS = 86400


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"

    @classmethod
    def from_raw(cls, raw: Any) -> TaskStatus:
        """Coerce a stored value; unknown values fall back to PENDING."""
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str) or not raw.strip():
            return cls.PENDING
        value = raw.strip().lower()
        if value == "todo":  # kanban column name
            return cls.PENDING
        try:
            return cls(value)
        except ValueError:
            logger.warning("Unknown task status %r, using pending", raw)
            return cls.PENDING


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def from_rank(cls, rank: int) -> TaskPriority:
        """Clamp to the enumeration bounds (never wraps)."""
        rank = max(1, min(len(_RANK_PRIORITY), int(rank)))
        return _RANK_PRIORITY[rank]

    @classmethod
    def from_raw(cls, raw: Any) -> TaskPriority:
        """
        Coerce a stored value; unknown values fall back to MEDIUM.

        Ordinal priorities (1=low, 2=medium, 3=high) are accepted from older files.
        """
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, bool):
            return cls.MEDIUM
        if isinstance(raw, int) or (isinstance(raw, float) and math.isfinite(raw)):
            return cls.from_rank(int(raw))
        if isinstance(raw, str) and raw.strip():
            value = raw.strip().lower()
            if value.isdigit():
                return cls.from_rank(int(value))
            try:
                return cls(value)
            except ValueError:
                pass
        if raw is not None:
            logger.warning("Unknown task priority %r, using medium", raw)
        return cls.MEDIUM


_PRIORITY_RANK: dict[TaskPriority, int] = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
    TaskPriority.URGENT: 4,
}
_RANK_PRIORITY: dict[int, TaskPriority] = {v: k for k, v in _PRIORITY_RANK.items()}


def priority_rank(priority: TaskPriority | str) -> int:
    return TaskPriority.from_raw(priority).rank


class Recurrence(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# Months are approximated as 30 days.
_RECURRENCE_DAYS: dict[Recurrence, int] = {
    Recurrence.DAILY: 1,
    Recurrence.WEEKLY: 7,
    Recurrence.MONTHLY: 30,
}

RecurrenceValue = Recurrence | int


def normalize_recurrence(raw: Any) -> RecurrenceValue | None:
    """Return a Recurrence, a positive day count, or None for anything else."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Recurrence):
        return raw
    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and not math.isfinite(raw):
            return None
        days = int(raw)
        return days if days > 0 else None
    if isinstance(raw, str):
        value = raw.strip().lower()
        if value.isdigit():
            return int(value) or None
        try:
            return Recurrence(value)
        except ValueError:
            logger.warning("Unknown recurrence %r, ignoring", raw)
    return None


def recurrence_interval_seconds(recurrence: RecurrenceValue) -> int:
    if isinstance(recurrence, Recurrence):
        return _RECURRENCE_DAYS[recurrence] * DAY_SECONDS
    return int(recurrence) * DAY_SECONDS


class RelationType(StrEnum):
    BLOCKS = "blocks"
    DEPENDS_ON = "depends_on"
    RELATED_TO = "related_to"
    DUPLICATES = "duplicates"


class ReminderUrgency(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_raw(cls, raw: Any) -> ReminderUrgency:
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.NORMAL


def generate_id() -> str:
    return uuid.uuid4().hex


def _now(now: float | None) -> float:
    return time.time() if now is None else float(now)


def _opt_float(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    if not isinstance(raw, (int, float, str)):
        return None
    try:
        value = float(raw)
    except (ValueError, OverflowError):
        return None
    return value if math.isfinite(value) else None


@dataclass(frozen=True, slots=True)
class Relation:
    """Weak reference to another task by id."""

    target_id: str
    type: RelationType

    def to_record(self) -> dict[str, str]:
        return {"target_id": self.target_id, "type": self.type.value}

    @classmethod
    def from_record(cls, data: Any) -> Relation:
        if not isinstance(data, Mapping):
            raise TaskDecodeError("relation must be an object")
        target = data.get("target_id")
        if target is None or target == "":
            raise TaskDecodeError("relation without target_id")
        try:
            rel_type = RelationType(str(data.get("type", "")).strip().lower())
        except ValueError as exc:
            raise TaskDecodeError(f"unknown relation type {data.get('type')!r}") from exc
        return cls(target_id=str(target), type=rel_type)


@dataclass(slots=True)
class Reminder:
    time: float
    urgency: ReminderUrgency = ReminderUrgency.NORMAL
    id: str = field(default_factory=generate_id)
    fired: bool = False

    def is_due(self, now: float | None = None) -> bool:
        return not self.fired and self.time <= _now(now)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "time": self.time,
            "urgency": self.urgency.value,
            "fired": self.fired,
        }

    @classmethod
    def from_record(cls, data: Any) -> Reminder:
        if not isinstance(data, Mapping):
            raise TaskDecodeError("reminder must be an object")
        ts = _opt_float(data.get("time"))
        if ts is None:
            raise TaskDecodeError("reminder without time")
        return cls(
            time=ts,
            urgency=ReminderUrgency.from_raw(data.get("urgency")),
            id=str(data.get("id") or generate_id()),
            fired=bool(data.get("fired", False)),
        )


@dataclass(slots=True)
class DecodeStats:
    """Collects per-node failures while a tree is deserialized."""

    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def record(self, exc: Exception) -> None:
        self.skipped += 1
        self.errors.append(str(exc))


@dataclass(slots=True)
class Task:
    """
    One node of the task tree.

    Subtasks are owned by their parent; relations point at other tasks by id only.
    `content` must be non-empty; that is a precondition for callers, not checked here.
    Every mutating method stamps `updated_at`.
    """

    id: str
    content: str
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: float | None = None
    notes: str | None = None
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)
    subtasks: list[Task] = field(default_factory=list)
    indent: int = 0
    created_at: float = 0.0
    updated_at: float = 0.0
    last_completed: float | None = None
    recurrence: RecurrenceValue | None = None
    relations: list[Relation] = field(default_factory=list)
    reminders: list[Reminder] = field(default_factory=list)

    @classmethod
    def new(
        cls,
        content: str,
        *,
        priority: TaskPriority | str | int | None = None,
        status: TaskStatus | str | None = None,
        due_date: float | None = None,
        notes: str | None = None,
        tags: Iterable[str] | None = None,
        metadata: Mapping[str, Any] | None = None,
        recurrence: Any = None,
        indent: int = 0,
        now: float | None = None,
    ) -> Task:
        ts = _now(now)
        task = cls(
            id=generate_id(),
            content=content,
            status=TaskStatus.from_raw(status) if status is not None else TaskStatus.PENDING,
            priority=TaskPriority.from_raw(priority) if priority is not None else TaskPriority.MEDIUM,
            due_date=due_date,
            notes=notes,
            metadata={str(k): str(v) for k, v in (metadata or {}).items()},
            indent=int(indent),
            created_at=ts,
            updated_at=ts,
            recurrence=normalize_recurrence(recurrence),
        )
        for tag in tags or ():
            task._add_tag_silent(tag)
        return task

    @property
    def done(self) -> bool:
        return self.status == TaskStatus.DONE

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    def _touch(self, now: float | None = None) -> None:
        self.updated_at = max(_now(now), self.created_at)

    # ---- status ----

    def _complete(self, now: float) -> None:
        self.status = TaskStatus.DONE
        self.last_completed = now
        if self.recurrence is not None:
            self.schedule_next_occurrence(now=now)

    def toggle(self, *, now: float | None = None) -> None:
        """done <-> pending; a recurring task never stays done."""
        ts = _now(now)
        if self.status == TaskStatus.DONE:
            self.status = TaskStatus.PENDING
        else:
            self._complete(ts)
        self._touch(ts)

    def set_status(self, status: TaskStatus | str, *, now: float | None = None) -> None:
        ts = _now(now)
        new_status = TaskStatus(status) if not isinstance(status, TaskStatus) else status
        if new_status == TaskStatus.DONE and self.status != TaskStatus.DONE:
            self._complete(ts)
        else:
            self.status = new_status
        self._touch(ts)

    def schedule_next_occurrence(self, *, now: float | None = None) -> None:
        """Next due date counts from completion time, not from the old due date."""
        if self.recurrence is None:
            return
        ts = _now(now)
        self.due_date = ts + recurrence_interval_seconds(self.recurrence)
        self.status = TaskStatus.PENDING
        self._touch(ts)

    def is_overdue(self, now: float | None = None) -> bool:
        return self.due_date is not None and not self.done and self.due_date < _now(now)

    # ---- subtasks ----

    def add_subtask(self, content: str, **opts: Any) -> Task:
        opts["indent"] = self.indent + 1
        subtask = Task.new(content, **opts)
        self.subtasks.append(subtask)
        self._touch()
        return subtask

    def remove_subtask(self, task_id: str) -> bool:
        """Remove the first direct child with `task_id` (grandchildren are not searched)."""
        for i, subtask in enumerate(self.subtasks):
            if subtask.id == task_id:
                del self.subtasks[i]
                self._touch()
                return True
        return False

    # ---- tags / notes / dates / priority ----

    def _add_tag_silent(self, tag: str) -> bool:
        tag = str(tag).strip()
        if not tag or tag in self.tags:
            return False
        self.tags.append(tag)
        return True

    def add_tag(self, tag: str) -> bool:
        if not self._add_tag_silent(tag):
            return False
        self._touch()
        return True

    def remove_tag(self, tag: str) -> bool:
        try:
            self.tags.remove(tag)
        except ValueError:
            return False
        self._touch()
        return True

    def set_due_date(self, ts: float | None) -> None:
        self.due_date = None if ts is None else float(ts)
        self._touch()

    def set_note(self, text: str | None) -> None:
        self.notes = text if text else None
        self._touch()

    def change_priority(self, delta: int) -> None:
        self.priority = TaskPriority.from_rank(self.priority.rank + int(delta))
        self._touch()

    def set_recurrence(self, recurrence: Any) -> None:
        self.recurrence = normalize_recurrence(recurrence)
        self._touch()

    # ---- metadata ----

    def set_metadata(self, key: str, value: Any) -> None:
        key = str(key).strip()
        if not key:
            raise ValueError("metadata key is required")
        self.metadata[key] = str(value)
        self._touch()

    def remove_metadata(self, key: str) -> bool:
        if key not in self.metadata:
            return False
        del self.metadata[key]
        self._touch()
        return True

    # ---- relations ----

    def add_relation(self, target_id: str, rel_type: RelationType | str) -> bool:
        relation = Relation(target_id=str(target_id), type=RelationType(rel_type))
        if relation.target_id == self.id or relation in self.relations:
            return False
        self.relations.append(relation)
        self._touch()
        return True

    def remove_relation(self, target_id: str, rel_type: RelationType | str | None = None) -> int:
        wanted = RelationType(rel_type) if rel_type is not None else None
        kept = [
            r
            for r in self.relations
            if not (r.target_id == target_id and (wanted is None or r.type == wanted))
        ]
        removed = len(self.relations) - len(kept)
        if removed:
            self.relations = kept
            self._touch()
        return removed

    # ---- reminders ----

    def add_reminder(
        self, at: float, urgency: ReminderUrgency | str = ReminderUrgency.NORMAL
    ) -> Reminder:
        reminder = Reminder(time=float(at), urgency=ReminderUrgency.from_raw(urgency))
        self.reminders.append(reminder)
        self.reminders.sort(key=lambda r: r.time)
        self._touch()
        return reminder

    def remove_reminder(self, reminder_id: str) -> bool:
        for i, reminder in enumerate(self.reminders):
            if reminder.id == reminder_id:
                del self.reminders[i]
                self._touch()
                return True
        return False

    # ---- bulk update ----

    _UPDATABLE = frozenset(
        {"content", "status", "priority", "due_date", "notes", "tags", "metadata", "recurrence"}
    )

    def update(self, **fields: Any) -> None:
        """Apply several field changes at once; id and created_at are never overwritten."""
        unknown = set(fields) - self._UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        if "content" in fields:
            self.content = str(fields["content"])
        if "priority" in fields:
            self.priority = TaskPriority.from_raw(fields["priority"])
        if "due_date" in fields:
            self.due_date = _opt_float(fields["due_date"])
        if "notes" in fields:
            self.notes = fields["notes"] or None
        if "tags" in fields:
            self.tags = []
            for tag in fields["tags"] or ():
                self._add_tag_silent(tag)
        if "metadata" in fields:
            self.metadata = {str(k): str(v) for k, v in (fields["metadata"] or {}).items()}
        if "recurrence" in fields:
            self.recurrence = normalize_recurrence(fields["recurrence"])
        if "status" in fields:
            self.set_status(TaskStatus.from_raw(fields["status"]))
        self._touch()

    # ---- serialization ----

    def serialize(self) -> dict[str, Any]:
        """Plain-data record of this task and all its subtasks."""
        record: dict[str, Any] = {
            "id": self.id,
            "content": self.content,
            "status": self.status.value,
            "priority": self.priority.value,
            "tags": list(self.tags),
            "metadata": dict(self.metadata),
            "subtasks": [st.serialize() for st in self.subtasks],
            "indent": self.indent,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "relations": [r.to_record() for r in self.relations],
            "reminders": [r.to_record() for r in self.reminders],
        }
        if self.due_date is not None:
            record["due_date"] = self.due_date
        if self.notes is not None:
            record["notes"] = self.notes
        if self.last_completed is not None:
            record["last_completed"] = self.last_completed
        if self.recurrence is not None:
            record["recurrence"] = (
                self.recurrence.value
                if isinstance(self.recurrence, Recurrence)
                else int(self.recurrence)
            )
        return record

    @classmethod
    def deserialize(
        cls,
        data: Any,
        stats: DecodeStats | None = None,
        *,
        indent: int = 0,
    ) -> Task:
        """
        Rebuild a task tree from a record.

        Missing optional fields fall back to empty values. A subtask that cannot be
        decoded is skipped (and counted in `stats`); only a broken root raises.
        """
        if stats is None:
            stats = DecodeStats()
        if not isinstance(data, Mapping):
            raise TaskDecodeError(f"task record must be an object, got {type(data).__name__}")

        content = data.get("content")
        if not isinstance(content, str):
            raise TaskDecodeError("task record without content")

        raw_id = data.get("id")
        task_id = str(raw_id) if raw_id not in (None, "") else generate_id()

        if "status" in data:
            status = TaskStatus.from_raw(data.get("status"))
        else:
            status = TaskStatus.DONE if data.get("done") else TaskStatus.PENDING

        now = time.time()
        created_at = _opt_float(data.get("created_at"))
        if created_at is None:
            created_at = now
        updated_at = _opt_float(data.get("updated_at"))
        if updated_at is None or updated_at < created_at:
            updated_at = created_at

        raw_indent = data.get("indent")
        task_indent = raw_indent if isinstance(raw_indent, int) and not isinstance(raw_indent, bool) else indent

        notes = data.get("notes")
        raw_meta = data.get("metadata")

        task = cls(
            id=task_id,
            content=content,
            status=status,
            priority=TaskPriority.from_raw(data.get("priority")),
            due_date=_opt_float(data.get("due_date")),
            notes=notes if isinstance(notes, str) else None,
            metadata=(
                {str(k): str(v) for k, v in raw_meta.items()}
                if isinstance(raw_meta, Mapping)
                else {}
            ),
            indent=task_indent,
            created_at=created_at,
            updated_at=updated_at,
            last_completed=_opt_float(data.get("last_completed")),
            recurrence=normalize_recurrence(data.get("recurrence")),
        )

        raw_tags = data.get("tags")
        if isinstance(raw_tags, list):
            for tag in raw_tags:
                if isinstance(tag, str):
                    task._add_tag_silent(tag)

        for raw_rel in _as_list(data.get("relations")):
            try:
                relation = Relation.from_record(raw_rel)
            except TaskDecodeError as exc:
                logger.debug("Dropping relation on task %s: %s", task_id, exc)
                continue
            if relation not in task.relations:
                task.relations.append(relation)

        for raw_rem in _as_list(data.get("reminders")):
            try:
                task.reminders.append(Reminder.from_record(raw_rem))
            except TaskDecodeError as exc:
                logger.debug("Dropping reminder on task %s: %s", task_id, exc)

        for raw_sub in _as_list(data.get("subtasks")):
            try:
                task.subtasks.append(cls.deserialize(raw_sub, stats, indent=task_indent + 1))
            except (TaskDecodeError, TypeError, ValueError, OverflowError, RecursionError) as exc:
                stats.record(exc)
                logger.warning("Skipping subtask of %s: %s", task_id, exc)

        return task


def _as_list(raw: Any) -> list[Any]:
    return raw if isinstance(raw, list) else []


def deserialize_tasks(records: Iterable[Any]) -> tuple[list[Task], int]:
    """Decode a list of task records; returns (tasks, number of skipped nodes)."""
    stats = DecodeStats()
    tasks: list[Task] = []
    for record in records:
        try:
            tasks.append(Task.deserialize(record, stats))
        except (TaskDecodeError, TypeError, ValueError, OverflowError, RecursionError) as exc:
            stats.record(exc)
            logger.warning("Skipping task record: %s", exc)
    if stats.skipped:
        logger.warning("Skipped %d undecodable task node(s)", stats.skipped)
    return tasks, stats.skipped
