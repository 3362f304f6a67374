# src/tasktree/storage/debounce.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Collapse bursts of requests into one call after a quiet period.

    Runs on the current asyncio loop (the editor's main loop). At most one call is
    pending at any time: every schedule() cancels the previous timer (last request
    wins). Without a running loop the call happens immediately.
    """

    def __init__(self, callback: Callable[[], object], delay_seconds: float) -> None:
        self._callback = callback
        self._delay = max(0.0, float(delay_seconds))
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def delay_seconds(self) -> float:
        return self._delay

    def schedule(self) -> None:
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; running debounced call now")
            self._run()
            return
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> bool:
        handle, self._handle = self._handle, None
        if handle is None:
            return False
        handle.cancel()
        return True

    def _fire(self) -> None:
        self._handle = None
        self._run()

    def _run(self) -> None:
        try:
            self._callback()
        except Exception:
            logger.exception("Debounced call failed")
