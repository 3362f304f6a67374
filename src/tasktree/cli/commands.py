# src/tasktree/cli/commands.py

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import cast

from ..core.state import AppState
from ..storage.storage import ToggleMode
from ..tasks import task_api
from ..tasks.task_models import Recurrence, RelationType, ReminderUrgency, Task, TaskStatus
from ..tasks.task_tree import find_task, iter_tasks, resolve_relations, task_statistics

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M")


def _resolve_ref(state: AppState, ref: str) -> Task | None:
    """
    A task reference is either the dotted position shown by /list ("2", "2.1")
    or an id prefix of at least 4 characters.
    """
    parts = ref.split(".")
    if all(p.isdigit() and int(p) > 0 for p in parts):
        siblings = state.tasks
        task: Task | None = None
        for p in parts:
            i = int(p) - 1
            if i >= len(siblings):
                task = None
                break
            task = siblings[i]
            siblings = task.subtasks
        if task is not None:
            return task

    if len(ref) < 4:
        return None
    exact = find_task(state.tasks, ref)
    if exact is not None:
        return exact
    matches = [t for t in iter_tasks(state.tasks) if t.id.startswith(ref)]
    return matches[0] if len(matches) == 1 else None


def _status_mark(task: Task) -> str:
    return {
        TaskStatus.PENDING: "[ ]",
        TaskStatus.IN_PROGRESS: "[~]",
        TaskStatus.BLOCKED: "[!]",
        TaskStatus.DONE: "[x]",
    }[task.status]


def _render(tasks: list[Task], prefix: str = "", depth: int = 0) -> list[str]:
    lines: list[str] = []
    for i, task in enumerate(tasks, start=1):
        ref = f"{prefix}{i}"
        extra: list[str] = [task.priority.value]
        if task.due_date is not None:
            extra.append(f"due {_fmt_ts(task.due_date)}")
        if task.tags:
            extra.append(" ".join(f"#{t}" for t in task.tags))
        if task.is_recurring:
            extra.append(f"every {task.recurrence}")
        lines.append(f"{'  ' * depth}{ref}. {_status_mark(task)} {task.content} ({', '.join(extra)})")
        lines.extend(_render(task.subtasks, prefix=f"{ref}.", depth=depth + 1))
    return lines


def _parse_when(raw: str) -> float | None:
    """
    +30m / +2h / +3d relative to now, or YYYY-MM-DD[THH:MM] local time.
    """
    raw = raw.strip()
    if raw.startswith("+") and len(raw) > 2 and raw[1:-1].isdigit():
        unit = {"m": 60, "h": 3600, "d": 86400}.get(raw[-1].lower())
        if unit is None:
            return None
        return time.time() + int(raw[1:-1]) * unit
    for fmt in ("%Y-%m-%dT%H:%M", "%Y-%m-%d"):
        try:
            return datetime.strptime(raw, fmt).timestamp()
        except ValueError:
            continue
    return None


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    st = state.storage.get_status()
    stats = task_statistics(state.tasks)
    return (
        "Status:\n"
        f"  Storage mode: {st.scope.describe()}\n"
        f"  File: {st.current_path} ({'exists' if st.file_exists else 'not yet written'})\n"
        f"  Global file: {st.global_path}\n"
        f"  Project mode: {'ON' if st.project_enabled else 'OFF'} (git root: {'ON' if st.use_git_root else 'OFF'})\n"
        f"  Backups: {'ON' if st.auto_backup else 'OFF'} (keep {st.backup_count})\n"
        f"  Compression: {'ON' if st.compression else 'OFF'}, encryption: {'ON' if st.encryption else 'OFF'}\n"
        f"  Last save: {_fmt_ts(st.last_save)}{' (unsaved changes)' if st.is_dirty else ''}\n"
        f"  Tasks: {stats.total} total, {stats.done} done, {stats.pending} open, {stats.overdue} overdue"
    )


def cmd_list(state: AppState, args: list[str]) -> str:
    if not state.tasks:
        return "No tasks. Add one with /add <text>."
    return "\n".join(_render(state.tasks))


def cmd_add(state: AppState, args: list[str]) -> str:
    content = " ".join(args).strip()
    if not content:
        return "Usage: /add <text>"
    task = task_api.add_task(state, content)
    return f"Added task {len(state.tasks)}: {task.content}"


def cmd_sub(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /sub <task> <text>"
    parent = _resolve_ref(state, args[0])
    if parent is None:
        return f"No task {args[0]}."
    sub = task_api.add_subtask(state, parent.id, " ".join(args[1:]))
    if sub is None:
        return f"No task {args[0]}."
    return f"Added subtask {args[0]}.{len(parent.subtasks)}: {sub.content}"


def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <task>"
    task = _resolve_ref(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    was_done = task.done
    task_api.toggle_task(state, task.id)
    if task.is_recurring and not was_done:
        return f"Recurring task completed; next due {_fmt_ts(task.due_date)}."
    return f"Task {args[0]} is now {task.status.value}."


def cmd_state(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /state <task> pending|in_progress|blocked|done"
    task = _resolve_ref(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    try:
        status = TaskStatus(args[1].lower())
    except ValueError:
        return f"Unknown status: {args[1]}."
    task_api.set_status(state, task.id, status)
    return f"Task {args[0]} is now {task.status.value}."


def cmd_rm(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <task>"
    task = _resolve_ref(state, args[0])
    if task is None or not task_api.delete_task(state, task.id):
        return f"No task {args[0]}."
    return f"Removed: {task.content}"


def cmd_prio(state: AppState, args: list[str]) -> str:
    if len(args) < 2 or args[1] not in ("+", "-"):
        return "Usage: /prio <task> +|-"
    task = _resolve_ref(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    task_api.change_priority(state, task.id, 1 if args[1] == "+" else -1)
    return f"Priority is now {task.priority.value}."


def cmd_tag(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /tag <task> <tag> (prefix the tag with - to remove it)"
    task = _resolve_ref(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    tag = args[1]
    if tag.startswith("-"):
        changed = task_api.remove_tag(state, task.id, tag[1:])
    else:
        changed = task_api.add_tag(state, task.id, tag.lstrip("#"))
    if not changed:
        return "Tags unchanged."
    return f"Tags: {', '.join(task.tags) or '-'}"


def cmd_note(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /note <task> [text] (no text clears the note)"
    task = _resolve_ref(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    text = " ".join(args[1:]).strip()
    task_api.set_note(state, task.id, text or None)
    return "Note saved." if text else "Note cleared."


def cmd_due(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /due <task> <+3d | YYYY-MM-DD[THH:MM] | none>"
    task = _resolve_ref(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    if args[1].lower() == "none":
        task_api.set_due_date(state, task.id, None)
        return "Due date cleared."
    ts = _parse_when(args[1])
    if ts is None:
        return f"Cannot parse date: {args[1]}"
    task_api.set_due_date(state, task.id, ts)
    return f"Due {_fmt_ts(ts)}."


def cmd_every(state: AppState, args: list[str]) -> str:
    usage = "Usage: /every <task> <daily|weekly|monthly|N days|none>"
    if len(args) < 2:
        return usage
    task = _resolve_ref(state, args[0])
    if task is None:
        return f"No task {args[0]}."

    value = args[1].lower()
    if value == "none":
        task_api.set_recurrence(state, task.id, None)
        return "Recurrence cleared."
    if value.isdigit() and int(value) > 0:
        task_api.set_recurrence(state, task.id, int(value))
        return f"Repeats every {int(value)} day(s)."
    if value in {r.value for r in Recurrence}:
        task_api.set_recurrence(state, task.id, Recurrence(value))
        return f"Repeats {value}."
    return usage


def cmd_remind(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /remind <task> <+30m | YYYY-MM-DDTHH:MM> [low|normal|high|critical]"
    task = _resolve_ref(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    ts = _parse_when(args[1])
    if ts is None:
        return f"Cannot parse time: {args[1]}"
    urgency = ReminderUrgency.from_raw(args[2]) if len(args) > 2 else ReminderUrgency.NORMAL
    task_api.add_reminder(state, task.id, ts, urgency)
    return f"Reminder set for {_fmt_ts(ts)} ({urgency.value})."


def cmd_link(state: AppState, args: list[str]) -> str:
    """
    /link <task> <type> <target>  -> add a relation
    /link <task>                   -> show relations
    """
    if not args:
        return f"Usage: /link <task> [{'|'.join(t.value for t in RelationType)} <target>]"
    task = _resolve_ref(state, args[0])
    if task is None:
        return f"No task {args[0]}."

    if len(args) == 1:
        resolved = resolve_relations(task, state.tasks)
        if not resolved:
            return "No relations."
        return "\n".join(f"  {r.relation.type.value} -> {r.target.content}" for r in resolved)

    if len(args) < 3:
        return "Usage: /link <task> <type> <target>"
    try:
        rel_type = RelationType(args[1].lower())
    except ValueError:
        return f"Unknown relation type: {args[1]}."
    target = _resolve_ref(state, args[2])
    if target is None:
        return f"No task {args[2]}."
    if not task_api.add_relation(state, task.id, target.id, rel_type):
        return "Relation not added (self-relation or duplicate)."
    return f"{task.content} {rel_type.value} {target.content}."


def cmd_meta(state: AppState, args: list[str]) -> str:
    if len(args) < 3:
        return "Usage: /meta <task> <key> <value>"
    task = _resolve_ref(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    task_api.set_metadata(state, task.id, args[1], " ".join(args[2:]))
    return f"{args[1]} = {task.metadata[args[1]]}"


def cmd_move(state: AppState, args: list[str]) -> str:
    if len(args) < 2 or args[1] not in ("up", "down"):
        return "Usage: /move <task> up|down"
    task = _resolve_ref(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    if not task_api.move_task(state, task.id, -1 if args[1] == "up" else 1):
        return "Cannot move further."
    return "Moved."


def cmd_storage(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /storage                 -> toggle (project -> global, global -> detection)
    /storage global|project|custom|auto
    """
    mode: ToggleMode | None = None
    if args:
        try:
            mode = ToggleMode(args[0].lower())
        except ValueError:
            return f"Usage: /storage [{'|'.join(m.value for m in ToggleMode)}]"

    scope = state.storage.toggle_mode(mode, state.scope_chooser)
    ok = state.reload()
    reply = f"Storage mode: {scope.describe()} ({len(state.tasks)} task(s) loaded)."
    if not ok:
        reply += " Warning: the storage file could not be read."
    return reply


def cmd_save(state: AppState, args: list[str]) -> str:
    state.storage.cancel_pending()
    if state.storage.save(state.tasks):
        return f"Saved to {state.storage.current_path()}."
    return "Save failed (see log)."


def cmd_reload(state: AppState, args: list[str]) -> str:
    state.storage.flush()
    ok = state.reload()
    return f"Loaded {len(state.tasks)} task(s)." + ("" if ok else " Warning: the storage file could not be read.")


def cmd_backups(state: AppState, args: list[str]) -> str:
    backups = state.storage.list_backups()
    if not backups:
        return "No backups."
    names = [state.storage.backups.timestamp_of(p) for p in reversed(backups)]
    return "Backups (newest first):\n" + "\n".join(f"  {n}" for n in names)


def cmd_restore(state: AppState, args: list[str]) -> str:
    state.storage.cancel_pending()
    timestamp = args[0] if args else None
    if not state.storage.restore_backup(timestamp):
        return "Restore failed (see log)."
    state.reload()
    return f"Restored {len(state.tasks)} task(s) from backup."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show storage status and task statistics.")
registry.register("list", cmd_list, help_text="Show the task tree.", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add <text>.", aliases=["a"])
registry.register("sub", cmd_sub, help_text="Add a subtask: /sub <task> <text>.")
registry.register("done", cmd_done, help_text="Toggle done: /done <task>.", aliases=["x"])
registry.register("state", cmd_state, help_text="Set status: /state <task> <status>.")
registry.register("rm", cmd_rm, help_text="Delete a task and its subtasks: /rm <task>.")
registry.register("prio", cmd_prio, help_text="Raise/lower priority: /prio <task> +|-.")
registry.register("tag", cmd_tag, help_text="Add/remove a tag: /tag <task> [-]<tag>.")
registry.register("note", cmd_note, help_text="Set or clear a note: /note <task> [text].")
registry.register("due", cmd_due, help_text="Set a due date: /due <task> <when|none>.")
registry.register("every", cmd_every, help_text="Repeat a task: /every <task> daily|weekly|monthly|N|none.")
registry.register("remind", cmd_remind, help_text="Add a reminder: /remind <task> <when> [urgency].")
registry.register("link", cmd_link, help_text="Relations: /link <task> [<type> <target>].")
registry.register("meta", cmd_meta, help_text="Set metadata: /meta <task> <key> <value>.")
registry.register("move", cmd_move, help_text="Reorder among siblings: /move <task> up|down.")
registry.register(
    "storage", cmd_storage, help_text="Switch storage: /storage [global|project|custom|auto]."
)
registry.register("save", cmd_save, help_text="Save now.")
registry.register("reload", cmd_reload, help_text="Reload tasks from the current storage file.")
registry.register("backups", cmd_backups, help_text="List backup snapshots.")
registry.register("restore", cmd_restore, help_text="Restore a backup: /restore [timestamp].")
