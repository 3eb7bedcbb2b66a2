"""Observer lists used to publish orchestrator events.

A :class:`Signal` keeps an ordered list of subscriber callbacks and calls
each of them on :meth:`Signal.emit`. A subscriber that raises is logged and
skipped so that one faulty listener cannot stall the state machine or starve
the others.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List


class Signal:
    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._subscribers: List[Callable[..., Any]] = []

    def connect(self, callback: Callable[..., Any]) -> Callable[..., Any]:
        """Subscribe ``callback``; returns it so this can be used as a decorator."""
        if not callable(callback):
            raise TypeError(f"{self.name}: subscriber must be callable")
        with self._lock:
            self._subscribers.append(callback)
        return callback

    def disconnect(self, callback: Callable[..., Any]) -> bool:
        with self._lock:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                return False
        return True

    def emit(self, *args: Any) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(*args)
            except Exception:
                logging.exception("Subscriber of %s raised", self.name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)


__all__ = ["Signal"]
