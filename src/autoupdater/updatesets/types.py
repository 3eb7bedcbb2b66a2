"""Typed containers for update-check results.

``UpdateRecord`` describes one available update as reported by the
maintenance tool. ``ProcessResult`` is what the process supervisor hands back
when the tool exits, and ``CheckOutcome`` is the interpreted result of one
completed check. ``OrchestratorState`` is the snapshot published by the
orchestrator; it is frozen and replaced wholesale on every transition.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Tuple

from .version import VersionNumber

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
# Reported for crashed, signalled or force-stopped tools. Tools only ever
# exit with non-negative codes, so this value cannot collide with theirs.
ABNORMAL_EXIT_CODE = -1


@dataclass(frozen=True)
class UpdateRecord:
    """A single available update."""

    name: str
    version: VersionNumber
    size: int


@dataclass(frozen=True)
class ProcessResult:
    """Raw completion report of one maintenance tool invocation."""

    exited_normally: bool
    exit_code: int
    stdout: bytes = b""
    stderr: bytes = b""


class OutcomeKind(str, enum.Enum):
    UPDATES_FOUND = "updates_found"
    NO_UPDATES = "no_updates"
    ERROR = "error"


@dataclass(frozen=True)
class CheckOutcome:
    """Interpreted result of one completed check."""

    kind: OutcomeKind
    exited_normally: bool
    exit_code: int
    updates: Tuple[UpdateRecord, ...] = ()
    diagnostic_log: bytes = b""

    @property
    def has_updates(self) -> bool:
        return self.kind is OutcomeKind.UPDATES_FOUND

    @property
    def has_error(self) -> bool:
        # "no updates" is reported as an error as well; see the exit code remap
        return self.kind is not OutcomeKind.UPDATES_FOUND


class UpdaterStatus(str, enum.Enum):
    IDLE = "idle"
    CHECKING = "checking"
    STOPPING = "stopping"


@dataclass(frozen=True)
class OrchestratorState:
    running: bool = False
    last_exited_normally: bool = True
    last_error_code: int = EXIT_SUCCESS
    last_diagnostic_log: bytes = b""
    current_updates: Tuple[UpdateRecord, ...] = field(default_factory=tuple)


__all__ = [
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
    "ABNORMAL_EXIT_CODE",
    "UpdateRecord",
    "ProcessResult",
    "OutcomeKind",
    "CheckOutcome",
    "UpdaterStatus",
    "OrchestratorState",
]
