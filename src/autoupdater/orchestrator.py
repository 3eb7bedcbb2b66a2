"""Update-check state machine.

:class:`UpdateOrchestrator` ties the pieces together:

 - a :class:`~autoupdater.process.ProcessSupervisor` runs the maintenance
   tool, one invocation at a time
 - :func:`~autoupdater.updatesets.classify_result` turns the finished run
   into a :class:`~autoupdater.updatesets.types.CheckOutcome`
 - a :class:`~autoupdater.scheduler.TaskScheduler` drives delayed and
   repeating checks
 - three :class:`~autoupdater.signals.Signal` objects publish
   ``running_changed(bool)``, ``updates_changed(list)`` and
   ``check_done(has_updates, has_error)``

Threading model
 - Transitions run under one re-entrant lock, so a second
   :meth:`~UpdateOrchestrator.check_for_updates` while a check is in flight
   is rejected synchronously.
 - Process completion and scheduler firings are posted to a
   :class:`~autoupdater.dispatch.ControlLoop` and handled there, never on the
   watcher or timer thread.
 - State is an immutable :class:`OrchestratorState` swapped in one
   assignment, so readers never see a half-updated snapshot. Signals are
   emitted after the new state is in place.

Example::

    with UpdateOrchestrator("/opt/app/maintenancetool") as updater:
        updater.check_done.connect(lambda has_updates, has_error: ...)
        updater.check_for_updates()
        updater.wait_until_idle(120)
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from datetime import datetime
from typing import List, Optional, Sequence, Union

from .defaults import (
    DEFAULT_CHECK_ARGUMENTS,
    DEFAULT_RUN_ARGUMENTS,
    DEFAULT_STOP_DELAY_MS,
    default_tool_path,
)
from .dispatch import ControlLoop
from .errors import SchedulingError
from .logging_utils import log_event
from .process import FORCE_KILL_TIMEOUT, ProcessSupervisor
from .scheduler import DEFAULT_TOLERANCE, TaskScheduler
from .settings import UpdaterSettings
from .signals import Signal
from .updatesets import (
    OrchestratorState,
    ProcessResult,
    UpdateRecord,
    UpdaterStatus,
    _log_check_outcome,
    classify_result,
)


class UpdateOrchestrator:
    def __init__(
        self,
        tool_path: Optional[str] = None,
        *,
        check_arguments: Optional[Sequence[str]] = None,
        run_arguments: Optional[Sequence[str]] = None,
        stop_delay_ms: int = DEFAULT_STOP_DELAY_MS,
        force_kill_timeout: float = FORCE_KILL_TIMEOUT,
        scheduler_tolerance: float = DEFAULT_TOLERANCE,
    ) -> None:
        self._tool_path = str(tool_path) if tool_path else default_tool_path()
        self.check_arguments: List[str] = list(
            DEFAULT_CHECK_ARGUMENTS if check_arguments is None else check_arguments
        )
        self.stop_delay_ms = stop_delay_ms

        self.running_changed = Signal("running_changed")
        self.updates_changed = Signal("updates_changed")
        self.check_done = Signal("check_done")

        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._state = OrchestratorState()
        self._stop_requested = False
        self._started_at = 0.0
        self._closed = False
        self._run_on_exit = False
        self._exit_arguments: List[str] = list(
            DEFAULT_RUN_ARGUMENTS if run_arguments is None else run_arguments
        )

        self._loop = ControlLoop()
        self._supervisor = ProcessSupervisor(
            on_finished=self._process_finished,
            force_kill_timeout=force_kill_timeout,
        )
        self._scheduler = TaskScheduler(
            dispatch=self._loop.post, tolerance=scheduler_tolerance
        )

    @classmethod
    def from_settings(cls, settings: UpdaterSettings) -> "UpdateOrchestrator":
        return cls(
            settings.resolved_tool_path(),
            check_arguments=settings.check_arguments,
            run_arguments=settings.run_arguments,
            stop_delay_ms=settings.stop_delay_ms,
            force_kill_timeout=settings.force_kill_timeout,
            scheduler_tolerance=settings.scheduler_tolerance,
        )

    # Queryable state -------------------------------------------------------

    @property
    def maintenance_tool_path(self) -> str:
        return self._tool_path

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state.running

    @property
    def exited_normally(self) -> bool:
        return self._state.last_exited_normally

    @property
    def error_code(self) -> int:
        return self._state.last_error_code

    @property
    def error_log(self) -> bytes:
        return self._state.last_diagnostic_log

    @property
    def update_info(self) -> List[UpdateRecord]:
        return list(self._state.current_updates)

    @property
    def status(self) -> UpdaterStatus:
        with self._lock:
            if not self._state.running:
                return UpdaterStatus.IDLE
            return UpdaterStatus.STOPPING if self._stop_requested else UpdaterStatus.CHECKING

    @property
    def scheduler(self) -> TaskScheduler:
        return self._scheduler

    @property
    def will_run_on_exit(self) -> bool:
        return self._run_on_exit

    # Commands ----------------------------------------------------------------

    def check_for_updates(self) -> bool:
        """Start a check; return False if one is running or the tool cannot start.

        On success ``running_changed(True)`` and ``updates_changed([])`` are
        emitted before this returns. The result arrives later through
        ``check_done``.
        """
        with self._lock:
            if self._closed or self._state.running:
                log_event(
                    "update_check_rejected",
                    level=logging.DEBUG,
                    tool_path=self._tool_path,
                    error_type="closed" if self._closed else "busy",
                )
                return False
            if not self._supervisor.start(self._tool_path, self.check_arguments):
                log_event(
                    "update_check_rejected",
                    level=logging.WARNING,
                    tool_path=self._tool_path,
                    error_type="launch_failed",
                )
                return False
            self._stop_requested = False
            self._started_at = time.monotonic()
            self._publish(running=True, current_updates=())
            log_event("update_check_started", tool_path=self._tool_path)
            self.running_changed.emit(True)
            self.updates_changed.emit([])
        return True

    def stop_update_check(self, delay_ms: Optional[int] = None, async_: bool = False) -> None:
        """Ask the running tool to stop; the result still arrives through ``check_done``.

        The tool gets ``delay_ms`` (default ``stop_delay_ms``) to exit after
        a terminate request before it is killed. With ``async_=False`` this
        blocks until the tool is gone.
        """
        with self._lock:
            if not self._state.running:
                return
            self._stop_requested = True
        delay = self.stop_delay_ms if delay_ms is None else delay_ms
        self._supervisor.stop(delay, async_)

    def schedule_update(
        self, when: Union[float, int, datetime], repeating: bool = False
    ) -> int:
        """Schedule a check and return the task id.

        ``when`` is a delay in seconds or an absolute :class:`datetime`. A
        repeating schedule needs a delay, which is then used as the interval.
        """
        if isinstance(when, datetime):
            if repeating:
                raise SchedulingError("a check at an absolute time cannot repeat")
            return self._scheduler.schedule_at(when, self._scheduled_check)
        return self._scheduler.schedule_after(
            when, self._scheduled_check, repeating=repeating
        )

    def cancel_scheduled_update(self, task_id: int) -> None:
        self._scheduler.cancel(task_id)

    def run_updater_on_exit(self, arguments: Optional[Sequence[str]] = None) -> None:
        """Launch the tool with ``arguments`` (default ``--updater``) on :meth:`close`."""
        with self._lock:
            self._run_on_exit = True
            if arguments is not None:
                self._exit_arguments = list(arguments)

    def cancel_exit_run(self) -> None:
        with self._lock:
            self._run_on_exit = False

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no check is running; False on timeout.

        Must not be called from a signal subscriber, since those run while a
        transition is in progress.
        """
        with self._idle:
            return self._idle.wait_for(lambda: not self._state.running, timeout)

    def close(self) -> None:
        """Cancel schedules, stop a running check and release worker threads."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._scheduler.shutdown()
        self.stop_update_check(0, async_=False)
        if self._run_on_exit:
            log_event(
                "updater_run_on_exit",
                tool_path=self._tool_path,
            )
            self._supervisor.launch_detached(self._tool_path, self._exit_arguments)
        self._loop.close()

    def __enter__(self) -> "UpdateOrchestrator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # Internals -------------------------------------------------------------

    def _publish(self, **changes) -> None:
        self._state = replace(self._state, **changes)

    def _scheduled_check(self, _argument=None) -> None:
        if not self.check_for_updates():
            logging.debug("Scheduled update check skipped")

    def _process_finished(self, result: ProcessResult) -> None:
        # watcher thread; hand over to the control loop
        if not self._loop.post(self._finish_check, result):
            self._finish_check(result)

    def _finish_check(self, result: ProcessResult) -> None:
        outcome = classify_result(result)
        with self._lock:
            duration_ms = int((time.monotonic() - self._started_at) * 1000)
            self._publish(
                running=False,
                last_exited_normally=outcome.exited_normally,
                last_error_code=outcome.exit_code,
                last_diagnostic_log=outcome.diagnostic_log,
                current_updates=outcome.updates,
            )
            stopped = self._stop_requested
            self._stop_requested = False
            _log_check_outcome(
                outcome,
                self._tool_path,
                duration_ms=duration_ms,
                error_type="stopped" if stopped else None,
            )
            self._idle.notify_all()
            self.running_changed.emit(False)
            if outcome.has_updates:
                self.updates_changed.emit(list(outcome.updates))
            self.check_done.emit(outcome.has_updates, outcome.has_error)


__all__ = ["UpdateOrchestrator"]
