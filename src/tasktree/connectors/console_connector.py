# src/tasktree/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.ports import ScopeOption
from ..core.state import AppState
from ..tasks.task_models import Reminder, Task

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


class ConsoleScopeChooser:
    """ScopeChooser that prompts on stdin; EOF / Ctrl+C / empty input cancel."""

    def choose_scope(self, options: list[ScopeOption]) -> ScopeOption | None:
        print("Select storage location:")
        for i, opt in enumerate(options, start=1):
            print(f"  {i}. {opt.label}")
        try:
            raw = input("Choice (empty to cancel): ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return None
        if not raw.isdigit() or not 1 <= int(raw) <= len(options):
            return None
        return options[int(raw) - 1]

    def ask_project_name(self, prompt: str) -> str | None:
        try:
            return input(prompt).strip() or None
        except (EOFError, KeyboardInterrupt):
            print()
            return None


class ConsoleNotifier:
    """ReminderNotifier that prints due reminders as console lines."""

    def notify_reminder(self, task: Task, reminder: Reminder) -> None:
        _print_ts(f"[REMINDER/{reminder.urgency.value}] {task.content}")


def _read_line(loop: asyncio.AbstractEventLoop) -> asyncio.Future[str]:
    """input() on a daemon thread, so a blocked read never keeps the process alive."""
    fut: asyncio.Future[str] = loop.create_future()

    def _deliver(result: str | None, exc: BaseException | None) -> None:
        if fut.done():
            return
        if exc is not None:
            fut.set_exception(exc)
        else:
            fut.set_result(result or "")

    def _worker() -> None:
        try:
            line = input(">>> ")
        except (EOFError, KeyboardInterrupt) as exc:
            loop.call_soon_threadsafe(_deliver, None, exc)
            return
        loop.call_soon_threadsafe(_deliver, line, None)

    threading.Thread(target=_worker, name="console-input", daemon=True).start()
    return fut


async def run_console_loop(state: AppState) -> None:
    """
    REPL over the command registry.

    input() runs on a daemon thread so the event loop keeps serving the debounced
    save timer and the background loops; commands themselves run on the loop.
    """
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /help for commands, /exit to quit. Plain text adds a task.\n")
    loop = asyncio.get_running_loop()

    def emit(text: str) -> None:
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = (await _read_line(loop)).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not user_input.startswith("/"):
            user_input = f"/add {user_input}"

        try:
            cmd_response = command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            cmd_response = "Internal error while handling a command."

        if cmd_response is not None:
            print(f"[{_ts_local()}] {cmd_response}")
            sys.stdout.flush()

    logger.info("Console connector finished.")
