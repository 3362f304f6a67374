# src/tasktree/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs on one asyncio loop:
- console REPL,
- reminder loop and periodic autosave in the background.
Pending changes are flushed on exit.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import create_initial_state, shutdown_state
from ..config import Settings, get_settings
from ..connectors.console_connector import ConsoleNotifier, ConsoleScopeChooser, run_console_loop
from ..logging_setup import setup_logging
from ..tasks.task_scheduler import run_autosave, run_reminder_scheduler

logger = logging.getLogger(__name__)


async def _run(settings: Settings) -> None:
    state = create_initial_state(settings=settings, chooser=ConsoleScopeChooser())

    background = [
        asyncio.create_task(
            run_reminder_scheduler(
                state, ConsoleNotifier(), interval_seconds=settings.reminder_interval_seconds
            ),
            name="reminders",
        ),
        asyncio.create_task(
            run_autosave(state, interval_seconds=settings.autosave_interval_seconds),
            name="autosave",
        ),
    ]
    console = asyncio.create_task(run_console_loop(state), name="console")

    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError, RuntimeError):
        # Not available on every platform (e.g. Windows event loops).
        loop.add_signal_handler(signal.SIGTERM, console.cancel)

    try:
        await console
    except asyncio.CancelledError:
        logger.info("Shutdown requested.")
    finally:
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        shutdown_state(state)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.log_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
