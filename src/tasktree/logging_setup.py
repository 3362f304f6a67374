# src/tasktree/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILENAME = "tasktree.log"
LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"

# Polling loops log every tick at DEBUG/INFO; the file keeps that, the console doesn't.
_BACKGROUND_LOGGERS = ("tasktree.tasks.task_scheduler",)


def console_filter(record: logging.LogRecord) -> bool:
    """tasktree logs pass; background loops need WARNING+, everything else ERROR+."""
    if record.name.startswith(_BACKGROUND_LOGGERS):
        return record.levelno >= logging.WARNING
    if record.name.startswith("tasktree."):
        return True
    return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """Install the stderr and file handlers on the root logger; returns the log file path."""
    log_file = Path(log_dir) / LOG_FILENAME
    log_file.parent.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.addFilter(console_filter)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(file_level)

    logging.basicConfig(
        level=logging.DEBUG,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[console, file_handler],
        force=True,
    )
    # warnings.warn(...) arrives as 'py.warnings' and is held to ERROR+ on the console.
    logging.captureWarnings(True)
    return log_file
