"""In-process timer service.

:class:`TaskScheduler` keeps pending tasks in a min-heap ordered by due time
and runs a single background thread that sleeps until the earliest one is
due. Three kinds of task are supported:

 - one-shot at an absolute wall-clock time (:meth:`TaskScheduler.schedule_at`)
 - one-shot after a relative delay (:meth:`TaskScheduler.schedule_after`)
 - repeating every ``interval`` seconds (``schedule_after(..., repeating=True)``)

Due times are tracked on the monotonic clock. A repeating task is re-armed at
``last_due + interval`` so slow callbacks do not make the period drift; if a
firing is delayed past one or more later slots, those slots are skipped and
the task stays on its grid.

Tasks due within ``tolerance`` of each other fire in one pass. For a
repeating task the window is capped at half its interval, and a task fires at
most once per pass.

When a ``dispatch`` callable is given, callbacks are handed to it (for
example :meth:`autoupdater.dispatch.ControlLoop.post`) instead of running on
the timer thread.
"""

from __future__ import annotations

import enum
import heapq
import itertools
import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .errors import SchedulingError
from .logging_utils import log_event

Dispatch = Callable[..., Any]
When = Union[datetime, float, int]

DEFAULT_TOLERANCE = 0.05


class FirePolicy(str, enum.Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"
    REPEATING = "repeating"


@dataclass
class ScheduledTask:
    task_id: int
    policy: FirePolicy
    due: float
    callback: Callable[[Any], Any]
    argument: Any = None
    interval: float = 0.0
    cancelled: bool = False


def _next_due(last_due: float, interval: float, now: float, tolerance: float) -> float:
    """Next slot on the ``last_due + k * interval`` grid that is not already past."""
    nxt = last_due + interval
    if nxt < now - tolerance:
        missed = math.floor((now - tolerance - nxt) / interval) + 1
        nxt += missed * interval
    return nxt


def _check_seconds(value: Any, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchedulingError(f"{what} must be a number of seconds, got {value!r}")
    if not math.isfinite(value):
        raise SchedulingError(f"{what} must be finite, got {value!r}")
    return float(value)


class TaskScheduler:
    def __init__(
        self,
        dispatch: Optional[Dispatch] = None,
        *,
        tolerance: float = DEFAULT_TOLERANCE,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        name: str = "autoupdater-scheduler",
    ) -> None:
        self.name = name
        self._dispatch = dispatch
        self._tolerance = max(0.0, tolerance)
        self._clock = clock
        self._wall_clock = wall_clock
        self._cv = threading.Condition()
        self._heap: List[Tuple[float, int, int]] = []
        self._tasks: Dict[int, ScheduledTask] = {}
        self._ids = itertools.count(1)
        self._seq = itertools.count()
        self._stopped = False
        self._t: Optional[threading.Thread] = None

    # Scheduling -----------------------------------------------------------

    def schedule_at(
        self, when: When, callback: Callable[[Any], Any], argument: Any = None
    ) -> int:
        """Fire ``callback(argument)`` once at ``when``.

        ``when`` is a :class:`datetime` (naive values are local time) or a
        POSIX timestamp. Times already in the past fire as soon as possible.
        """
        if isinstance(when, datetime):
            target = when.timestamp()
        else:
            target = _check_seconds(when, "absolute time")
        delay = max(0.0, target - self._wall_clock())
        return self._add(FirePolicy.ABSOLUTE, delay, callback, argument, 0.0)

    def schedule_after(
        self,
        delay_seconds: float,
        callback: Callable[[Any], Any],
        argument: Any = None,
        repeating: bool = False,
    ) -> int:
        """Fire ``callback(argument)`` after ``delay_seconds``.

        With ``repeating=True`` the task fires every ``delay_seconds`` until it
        is cancelled; the interval must then be positive.
        """
        delay = _check_seconds(delay_seconds, "delay")
        if delay < 0:
            raise SchedulingError(f"delay must not be negative, got {delay_seconds!r}")
        if repeating:
            if delay <= 0:
                raise SchedulingError("a repeating task needs a positive interval")
            return self._add(FirePolicy.REPEATING, delay, callback, argument, delay)
        return self._add(FirePolicy.RELATIVE, delay, callback, argument, 0.0)

    def cancel(self, task_id: int) -> None:
        """Cancel ``task_id``. Unknown or already fired handles are ignored."""
        with self._cv:
            task = self._tasks.pop(task_id, None)
            if task is None:
                logging.debug("Cancel of unknown task %s ignored", task_id)
                return
            task.cancelled = True
            self._cv.notify()
        log_event("update_task_cancelled", level=logging.DEBUG, task_id=task_id)

    def is_scheduled(self, task_id: int) -> bool:
        with self._cv:
            return task_id in self._tasks

    def __len__(self) -> int:
        with self._cv:
            return len(self._tasks)

    def shutdown(self, wait: bool = True, timeout: Optional[float] = 5.0) -> None:
        """Drop all pending tasks and stop the timer thread."""
        with self._cv:
            self._stopped = True
            for task in self._tasks.values():
                task.cancelled = True
            self._tasks.clear()
            self._heap.clear()
            self._cv.notify_all()
            t = self._t
        if wait and t is not None and t is not threading.current_thread():
            t.join(timeout)

    # Internals -------------------------------------------------------------

    def _add(
        self,
        policy: FirePolicy,
        delay: float,
        callback: Callable[[Any], Any],
        argument: Any,
        interval: float,
    ) -> int:
        if not callable(callback):
            raise TypeError("callback must be callable")
        with self._cv:
            if self._stopped:
                raise SchedulingError("scheduler has been shut down")
            task_id = next(self._ids)
            task = ScheduledTask(
                task_id=task_id,
                policy=policy,
                due=self._clock() + delay,
                callback=callback,
                argument=argument,
                interval=interval,
            )
            self._tasks[task_id] = task
            heapq.heappush(self._heap, (task.due, next(self._seq), task_id))
            self._ensure_thread()
            self._cv.notify()
        log_event(
            "update_task_scheduled",
            level=logging.DEBUG,
            task_id=task_id,
            policy=policy.value,
            delay=delay,
        )
        return task_id

    def _ensure_thread(self) -> None:
        if self._t is None:
            self._t = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._t.start()

    def _tolerance_for(self, task: ScheduledTask) -> float:
        # a repeating task may never run a whole slot early
        if task.policy is FirePolicy.REPEATING:
            return min(self._tolerance, task.interval / 2)
        return self._tolerance

    def _collect_due(self) -> List[ScheduledTask]:
        batch: List[ScheduledTask] = []
        collected = set()
        now = self._clock()
        while self._heap:
            due, _, task_id = self._heap[0]
            task = self._tasks.get(task_id)
            if task is None or task.due != due:
                # cancelled, or superseded by a re-armed entry
                heapq.heappop(self._heap)
                continue
            tolerance = self._tolerance_for(task)
            if task_id in collected or due - now > tolerance:
                break
            heapq.heappop(self._heap)
            if task.policy is FirePolicy.REPEATING:
                task.due = _next_due(due, task.interval, now, tolerance)
                heapq.heappush(self._heap, (task.due, next(self._seq), task_id))
            collected.add(task_id)
            batch.append(task)
        return batch

    def _wait_time(self) -> Optional[float]:
        if not self._heap:
            return None
        return max(0.0, self._heap[0][0] - self._clock())

    def _run(self) -> None:
        while True:
            with self._cv:
                batch = self._collect_due()
                while not batch and not self._stopped:
                    self._cv.wait(self._wait_time())
                    batch = self._collect_due()
                if self._stopped:
                    return
            for task in batch:
                self._fire(task)

    def _fire(self, task: ScheduledTask) -> None:
        with self._cv:
            if task.cancelled:
                return
            if task.policy is not FirePolicy.REPEATING:
                self._tasks.pop(task.task_id, None)
        log_event("update_task_fired", level=logging.DEBUG, task_id=task.task_id)
        if self._dispatch is not None:
            self._dispatch(task.callback, task.argument)
            return
        try:
            task.callback(task.argument)
        except Exception:
            logging.exception("Scheduled task %s raised", task.task_id)


__all__ = ["TaskScheduler", "ScheduledTask", "FirePolicy", "DEFAULT_TOLERANCE"]
