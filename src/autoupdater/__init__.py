"""Supervise an external maintenance tool that checks for updates.

The public surface is re-exported here: the :class:`UpdateOrchestrator`
state machine, the :class:`TaskScheduler` timer service, the process
supervisor, result types and parsing helpers, settings and logging setup.
"""

from __future__ import annotations

from .defaults import default_tool_path, to_system_exe
from .dispatch import ControlLoop
from .errors import (
    AutoUpdaterError,
    MalformedPayloadError,
    NoUpdatesMarkerError,
    SchedulingError,
    UpdateParseError,
)
from .logging_utils import configure_logging, log_event
from .orchestrator import UpdateOrchestrator
from .process import ProcessSupervisor, is_executable
from .scheduler import FirePolicy, ScheduledTask, TaskScheduler
from .settings import UpdaterSettings
from .signals import Signal
from .updatesets import (
    ABNORMAL_EXIT_CODE,
    EXIT_FAILURE,
    EXIT_SUCCESS,
    CheckOutcome,
    OrchestratorState,
    OutcomeKind,
    ParseErrorKind,
    ParseResult,
    ProcessResult,
    UpdateRecord,
    UpdaterStatus,
    VersionNumber,
    classify_result,
    is_version_newer,
    parse_result,
    parse_updates,
)

__version__ = "0.1.0"

__all__ = [
    "ABNORMAL_EXIT_CODE",
    "EXIT_FAILURE",
    "EXIT_SUCCESS",
    "AutoUpdaterError",
    "CheckOutcome",
    "ControlLoop",
    "FirePolicy",
    "MalformedPayloadError",
    "NoUpdatesMarkerError",
    "OrchestratorState",
    "OutcomeKind",
    "ParseErrorKind",
    "ParseResult",
    "ProcessResult",
    "ProcessSupervisor",
    "ScheduledTask",
    "SchedulingError",
    "Signal",
    "TaskScheduler",
    "UpdateOrchestrator",
    "UpdateParseError",
    "UpdateRecord",
    "UpdaterSettings",
    "UpdaterStatus",
    "VersionNumber",
    "classify_result",
    "configure_logging",
    "default_tool_path",
    "is_executable",
    "is_version_newer",
    "log_event",
    "parse_result",
    "parse_updates",
    "to_system_exe",
]
