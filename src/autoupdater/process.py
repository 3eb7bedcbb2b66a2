"""Supervision of the external maintenance tool.

:class:`ProcessSupervisor` runs at most one tool invocation at a time. Each
accepted :meth:`~ProcessSupervisor.start` creates a fresh invocation record
with its own ``subprocess.Popen`` handle and a watcher thread that waits for
the process to exit. The completion report
(:class:`~autoupdater.updatesets.types.ProcessResult`) is passed to the
``on_finished`` callback from that watcher thread; owners that need the
report on a particular thread forward it themselves.

Output is drained by one reader thread per pipe, but completion follows the
process itself: once the tool has exited, the readers get a short grace period
to collect what is left and the result is reported even if a helper process
spawned by the tool still holds the pipes open. The tool runs in its own
process group (session on POSIX) so that a stop reaches such helpers too.

Termination is classified as follows:
 - a process that returns through its own exit path reports
   ``exited_normally=True`` and its exit code verbatim
 - a process killed by a signal, one that crashed (NTSTATUS codes on
   Windows), or one stopped through :meth:`~ProcessSupervisor.stop` reports
   ``exited_normally=False`` and ``ABNORMAL_EXIT_CODE``
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from .logging_utils import log_event
from .updatesets.types import ABNORMAL_EXIT_CODE, ProcessResult

PathLike = Union[str, "os.PathLike[str]"]

FORCE_KILL_TIMEOUT = 5.0
# how long readers may keep draining after the tool has exited
OUTPUT_DRAIN_TIMEOUT = 0.5
_READ_CHUNK = 65536
# NTSTATUS error severity; exit codes at or above this are crashes
_WINDOWS_CRASH_CODE = 0xC0000000


def is_executable(path: Optional[PathLike]) -> bool:
    """Return True when ``path`` names an existing, executable regular file."""
    if not path:
        return False
    try:
        p = Path(path)
        return p.is_file() and os.access(str(p), os.X_OK)
    except (OSError, ValueError):
        return False


def _is_crash_code(code: Optional[int]) -> bool:
    if code is None or code < 0:
        return True
    return os.name == "nt" and code >= _WINDOWS_CRASH_CODE


def _new_group_kwargs() -> dict:
    if sys.platform.startswith("win"):
        return {"creationflags": getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)}
    return {"start_new_session": True}


class _PipeReader:
    """Drains one pipe on a daemon thread; the thread closes the pipe at EOF."""

    def __init__(self, pipe, name: str) -> None:
        self._pipe = pipe
        self._lock = threading.Lock()
        self._chunks: List[bytes] = []
        self._t = threading.Thread(target=self._run, name=name, daemon=True)
        self._t.start()

    def _run(self) -> None:
        fd = self._pipe.fileno()
        try:
            while True:
                chunk = os.read(fd, _READ_CHUNK)
                if not chunk:
                    break
                with self._lock:
                    self._chunks.append(chunk)
        except OSError as e:
            logging.debug("Pipe read failed: %s", e)
        finally:
            self._pipe.close()

    def join(self, timeout: float) -> bool:
        self._t.join(max(0.0, timeout))
        return not self._t.is_alive()

    def data(self) -> bytes:
        with self._lock:
            return b"".join(self._chunks)


class _Invocation:
    """Process handle and bookkeeping for one tool run."""

    def __init__(self, proc: subprocess.Popen, path: str) -> None:
        self.proc = proc
        self.path = path
        self.started = time.monotonic()
        self.stop_requested = False
        self.done = threading.Event()
        self.stdout = _PipeReader(proc.stdout, f"autoupdater-stdout-{proc.pid}")
        self.stderr = _PipeReader(proc.stderr, f"autoupdater-stderr-{proc.pid}")

    def drain(self, timeout: float) -> bool:
        """Wait up to ``timeout`` for both pipes to reach EOF."""
        deadline = time.monotonic() + timeout
        out_done = self.stdout.join(timeout)
        err_done = self.stderr.join(deadline - time.monotonic())
        return out_done and err_done


class ProcessSupervisor:
    def __init__(
        self,
        on_finished: Optional[Callable[[ProcessResult], None]] = None,
        *,
        force_kill_timeout: float = FORCE_KILL_TIMEOUT,
    ) -> None:
        self.on_finished = on_finished
        self.force_kill_timeout = force_kill_timeout
        self._lock = threading.Lock()
        self._current: Optional[_Invocation] = None

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._current is not None

    def start(self, path: PathLike, arguments: Sequence[str] = ()) -> bool:
        """Launch ``path`` with ``arguments`` without waiting for it.

        Returns False, without spawning, if a process is already active, if
        ``path`` is not an executable file, or if the OS refuses to start it.
        """
        if not is_executable(path):
            logging.warning("Maintenance tool %s is missing or not executable", path)
            return False
        with self._lock:
            if self._current is not None:
                logging.debug("Maintenance tool already running; start refused")
                return False
            cmd = [str(path), *[str(arg) for arg in arguments]]
            try:
                proc = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    **_new_group_kwargs(),
                )
            except OSError as e:
                logging.warning("Failed to start %s: %s", path, e)
                return False
            inv = _Invocation(proc, str(path))
            self._current = inv
            watcher = threading.Thread(
                target=self._watch,
                args=(inv,),
                name=f"autoupdater-watch-{proc.pid}",
                daemon=True,
            )
            watcher.start()
        logging.debug("Started %s (pid %s)", subprocess.list2cmdline(cmd), proc.pid)
        return True

    def stop(self, grace_delay_ms: int = 3000, async_: bool = False) -> None:
        """Terminate the active process, killing it after ``grace_delay_ms``.

        With ``async_=False`` this blocks until the process is gone and its
        completion has been reported, bounded by the grace delay plus
        ``force_kill_timeout``. With ``async_=True`` termination proceeds on
        a helper thread and this returns immediately.
        """
        with self._lock:
            inv = self._current
        if inv is None:
            return
        grace = max(0, grace_delay_ms) / 1000.0
        if async_:
            threading.Thread(
                target=self._terminate,
                args=(inv, grace),
                name="autoupdater-stop",
                daemon=True,
            ).start()
            return
        deadline = time.monotonic() + grace + self.force_kill_timeout + OUTPUT_DRAIN_TIMEOUT
        self._terminate(inv, grace)
        if not inv.done.wait(max(0.0, deadline - time.monotonic())):
            logging.error("Maintenance tool %s did not finish after kill", inv.path)

    def launch_detached(self, path: PathLike, arguments: Sequence[str] = ()) -> bool:
        """Start ``path`` so that it outlives the current process."""
        if not is_executable(path):
            logging.warning("Maintenance tool %s is missing or not executable", path)
            return False
        kwargs: dict = {
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.DEVNULL,
            "stderr": subprocess.DEVNULL,
            "close_fds": True,
        }
        if sys.platform.startswith("win"):
            kwargs["creationflags"] = getattr(subprocess, "DETACHED_PROCESS", 0) | getattr(
                subprocess, "CREATE_NEW_PROCESS_GROUP", 0
            )
        else:
            kwargs["start_new_session"] = True
        try:
            subprocess.Popen([str(path), *[str(arg) for arg in arguments]], **kwargs)
        except OSError as e:
            logging.warning("Failed to launch %s: %s", path, e)
            return False
        return True

    def _signal(self, inv: _Invocation, force: bool) -> None:
        """Send terminate (or kill) to the tool's whole process group."""
        if os.name != "nt":
            try:
                os.killpg(inv.proc.pid, signal.SIGKILL if force else signal.SIGTERM)
                return
            except ProcessLookupError:
                return
            except OSError as e:
                logging.debug("Signalling group of %s failed: %s", inv.path, e)
        if force:
            inv.proc.kill()
        else:
            inv.proc.terminate()

    def _terminate(self, inv: _Invocation, grace: float) -> None:
        if inv.proc.poll() is not None:
            return
        inv.stop_requested = True
        log_event(
            "update_check_stop_requested",
            level=logging.DEBUG,
            tool_path=inv.path,
        )
        try:
            self._signal(inv, force=False)
        except OSError:
            return
        try:
            inv.proc.wait(grace)
            return
        except subprocess.TimeoutExpired:
            logging.warning(
                "Maintenance tool %s ignored terminate for %.1fs; killing it",
                inv.path,
                grace,
            )
        try:
            self._signal(inv, force=True)
        except OSError:
            return
        try:
            inv.proc.wait(self.force_kill_timeout)
        except subprocess.TimeoutExpired:
            logging.error("Maintenance tool %s survived kill", inv.path)

    def _watch(self, inv: _Invocation) -> None:
        code = inv.proc.wait()
        if not inv.drain(OUTPUT_DRAIN_TIMEOUT):
            logging.debug(
                "Output of %s still held open by a child process; reporting exit", inv.path
            )
        stdout, stderr = inv.stdout.data(), inv.stderr.data()
        if inv.stop_requested or _is_crash_code(code):
            if code is not None and code < 0:
                logging.debug("%s terminated by signal %s", inv.path, -code)
            result = ProcessResult(
                exited_normally=False,
                exit_code=ABNORMAL_EXIT_CODE,
                stdout=stdout,
                stderr=stderr,
            )
        else:
            result = ProcessResult(
                exited_normally=True,
                exit_code=code,
                stdout=stdout,
                stderr=stderr,
            )
        with self._lock:
            if self._current is inv:
                self._current = None
        try:
            if self.on_finished is not None:
                self.on_finished(result)
        except Exception:
            logging.exception("Completion handler for %s failed", inv.path)
        finally:
            inv.done.set()


__all__ = ["ProcessSupervisor", "is_executable", "FORCE_KILL_TIMEOUT", "OUTPUT_DRAIN_TIMEOUT"]
