"""Aggregated update-result utilities split into small modules.

Each module holds a cohesive part of the result handling (types, version
numbers, output parsing, outcome reporting) and the public names are
re-exported here for easy import.
"""

from __future__ import annotations

from .types import (
    ABNORMAL_EXIT_CODE,
    EXIT_FAILURE,
    EXIT_SUCCESS,
    CheckOutcome,
    OrchestratorState,
    OutcomeKind,
    ProcessResult,
    UpdateRecord,
    UpdaterStatus,
)
from .version import VersionNumber, is_version_newer
from .outcome import classify_result
from .parse import MAX_UPDATE_SIZE, ParseErrorKind, ParseResult, parse_result, parse_updates
from .report import _label_outcome, _log_check_outcome

__all__ = [
    "ABNORMAL_EXIT_CODE",
    "EXIT_FAILURE",
    "EXIT_SUCCESS",
    "CheckOutcome",
    "OrchestratorState",
    "OutcomeKind",
    "ProcessResult",
    "UpdateRecord",
    "UpdaterStatus",
    "VersionNumber",
    "is_version_newer",
    "MAX_UPDATE_SIZE",
    "ParseErrorKind",
    "ParseResult",
    "parse_result",
    "parse_updates",
    "classify_result",
    "_label_outcome",
    "_log_check_outcome",
]
