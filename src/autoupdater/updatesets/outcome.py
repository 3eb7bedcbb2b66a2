"""Interpretation of a finished maintenance tool run.

The tool reports "success" and "nothing to update" through the same exit
code, so the raw exit code cannot be trusted on its own. :func:`classify_result`
combines termination status, exit code and parsed output into one
:class:`~autoupdater.updatesets.types.CheckOutcome`:

 - abnormal termination: error, whatever output was captured
 - one or more update records: updates found, exit code ``EXIT_SUCCESS``
 - malformed update list: error, tool exit code kept
 - no update list (or an empty one) with exit code 0: no updates, exit code
   remapped to ``EXIT_FAILURE``
 - anything else: error, tool exit code kept
"""

from __future__ import annotations

import logging

from .parse import ParseErrorKind, parse_result
from .types import (
    EXIT_FAILURE,
    EXIT_SUCCESS,
    CheckOutcome,
    OutcomeKind,
    ProcessResult,
)


def _error_log(result: ProcessResult) -> bytes:
    """Everything the tool wrote, stderr first."""
    if not result.stdout:
        return result.stderr
    if not result.stderr:
        return result.stdout
    sep = b"" if result.stderr.endswith(b"\n") else b"\n"
    return result.stderr + sep + result.stdout


def classify_result(result: ProcessResult) -> CheckOutcome:
    if not result.exited_normally:
        return CheckOutcome(
            kind=OutcomeKind.ERROR,
            exited_normally=False,
            exit_code=result.exit_code,
            diagnostic_log=_error_log(result),
        )

    parsed = parse_result(result.stdout)
    if parsed.records:
        return CheckOutcome(
            kind=OutcomeKind.UPDATES_FOUND,
            exited_normally=True,
            exit_code=EXIT_SUCCESS,
            updates=parsed.records,
            diagnostic_log=result.stderr,
        )
    if parsed.error is ParseErrorKind.MALFORMED:
        logging.warning("Unusable maintenance tool output: %s", parsed.message)
    elif result.exit_code == EXIT_SUCCESS:
        return CheckOutcome(
            kind=OutcomeKind.NO_UPDATES,
            exited_normally=True,
            exit_code=EXIT_FAILURE,
            diagnostic_log=result.stderr,
        )
    return CheckOutcome(
        kind=OutcomeKind.ERROR,
        exited_normally=True,
        exit_code=result.exit_code,
        diagnostic_log=_error_log(result),
    )


__all__ = ["classify_result"]
