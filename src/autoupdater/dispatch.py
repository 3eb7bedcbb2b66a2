"""Single-threaded control loop.

The orchestrator performs its state transitions on one logical thread.
Completion reports from the process watcher and firings from the task
scheduler are not handled where they originate; they are posted here and run
one after another on a dedicated worker thread, in posting order.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable, Optional, Tuple

_Item = Optional[Tuple[Callable[..., Any], Tuple[Any, ...]]]


class ControlLoop:
    def __init__(self, name: str = "autoupdater-control") -> None:
        self.name = name
        self._q: "queue.Queue[_Item]" = queue.Queue()
        self._closed = threading.Event()
        self._t = threading.Thread(target=self._run, name=name, daemon=True)
        self._t.start()

    def post(self, fn: Callable[..., Any], *args: Any) -> bool:
        """Queue ``fn(*args)`` for execution; returns False once the loop is closed."""
        if self._closed.is_set():
            logging.debug("%s closed; dropping %r", self.name, fn)
            return False
        self._q.put((fn, args))
        return True

    def is_current(self) -> bool:
        return threading.current_thread() is self._t

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Run what is already queued, then stop the worker thread."""
        if self._closed.is_set():
            return
        self._closed.set()
        self._q.put(None)
        if not self.is_current():
            self._t.join(timeout)

    def _run(self) -> None:
        while True:
            item = self._q.get()
            if item is None:
                break
            fn, args = item
            try:
                fn(*args)
            except Exception:
                logging.exception("%s: posted call %r failed", self.name, fn)


__all__ = ["ControlLoop"]
