"""Shared helpers for tests that drive fake maintenance tools."""

import os
import threading
import time
from pathlib import Path

import pytest

TOOL_TEMPLATE = """#!{python}
import os
import signal
import subprocess
import sys
import time

if {ignore_term!r}:
    signal.signal(signal.SIGTERM, signal.SIG_IGN)
if {helper_sleep!r}:
    # inherits stdout and stderr, so the pipes stay open while it runs
    helper = subprocess.Popen(
        [sys.executable, "-c", "import time; time.sleep({helper_sleep!r})"]
    )
    if {helper_pid_file!r}:
        with open({helper_pid_file!r}, "w", encoding="utf-8") as fh:
            fh.write(str(helper.pid))
if {argv_file!r}:
    with open({argv_file!r}, "a", encoding="utf-8") as fh:
        fh.write(" ".join(sys.argv[1:]) + "\\n")
sys.stdout.write({stdout!r})
sys.stdout.flush()
sys.stderr.write({stderr!r})
sys.stderr.flush()
time.sleep({sleep!r})
if {crash!r}:
    os.kill(os.getpid(), signal.SIGKILL)
sys.exit({code!r})
"""

UPDATES_XML = """[0] Warning: Could not retrieve the component list
<updates>
    <update name="A" version="1.2.0" size="100"/>
    <update name="B" version="2.0.0" size="200"/>
</updates>
"""

posix_only = pytest.mark.skipif(
    os.name == "nt", reason="fake maintenance tools are POSIX shebang scripts"
)


class EventRecorder:
    """Collects orchestrator signals in emission order."""

    def __init__(self, orchestrator):
        self.events = []
        self._cv = threading.Condition()
        orchestrator.running_changed.connect(lambda running: self._add(("running", running)))
        orchestrator.updates_changed.connect(lambda updates: self._add(("updates", list(updates))))
        orchestrator.check_done.connect(lambda has_updates, has_error: self._add(("done", has_updates, has_error)))

    def _add(self, event):
        with self._cv:
            self.events.append(event)
            self._cv.notify_all()

    def of(self, kind):
        with self._cv:
            return [e for e in self.events if e[0] == kind]

    def wait_for(self, kind, count=1, timeout=10.0) -> bool:
        deadline = time.monotonic() + timeout
        with self._cv:
            while len([e for e in self.events if e[0] == kind]) < count:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cv.wait(remaining)
        return True


def wait_for_file(path: Path, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if path.exists() and path.read_text(encoding="utf-8"):
            return True
        time.sleep(0.05)
    return False


def pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def wait_for_pid_exit(pid: int, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not pid_alive(pid):
            return True
        time.sleep(0.05)
    return False
