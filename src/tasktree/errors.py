# src/tasktree/errors.py

from __future__ import annotations


class TaskTreeError(Exception):
    """Base class for recoverable tasktree errors."""


class StorageNotInitializedError(RuntimeError):
    """Storage was used before setup(). Programmer error, never recovered."""

    def __init__(self) -> None:
        super().__init__("Storage not initialized. Call setup() first")


class CodecError(TaskTreeError):
    """A codec stage could not decode the stored payload."""


class TaskDecodeError(TaskTreeError):
    """A record could not be turned into a Task."""


class BackupNotFoundError(TaskTreeError):
    """No backup snapshot matched the request."""
