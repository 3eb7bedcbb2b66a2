from __future__ import annotations

import logging
from typing import Optional

from ..logging_utils import log_event
from .types import CheckOutcome, OutcomeKind


def _label_outcome(outcome: CheckOutcome) -> str:
    mapping = {
        OutcomeKind.UPDATES_FOUND: "updates available",
        OutcomeKind.NO_UPDATES: "no updates",
        OutcomeKind.ERROR: "check failed",
    }
    return mapping.get(outcome.kind, outcome.kind.value)


def _log_check_outcome(
    outcome: CheckOutcome,
    tool_path: str,
    *,
    duration_ms: Optional[int] = None,
    error_type: Optional[str] = None,
) -> None:
    """Emit a structured log for a completed check and a short summary line."""
    level = logging.WARNING if outcome.kind is OutcomeKind.ERROR else logging.INFO
    log_event(
        "update_check_finished",
        level=level,
        tool_path=tool_path,
        outcome=outcome.kind.value,
        exit_code=outcome.exit_code,
        duration_ms=duration_ms,
        error_type=error_type,
    )
    if outcome.has_updates:
        summary = ", ".join(f"{rec.name} {rec.version}" for rec in outcome.updates)
        logging.info("Update available (%s)", summary)
    elif outcome.kind is OutcomeKind.ERROR:
        if not outcome.exited_normally:
            logging.warning("Maintenance tool %s terminated abnormally", tool_path)
        else:
            logging.warning(
                "Maintenance tool %s failed with exit code %s",
                tool_path,
                outcome.exit_code,
            )
        if outcome.diagnostic_log:
            logging.debug(
                "Error log: %s", outcome.diagnostic_log.decode("utf-8", errors="replace")
            )
    else:
        logging.info("%s: %s", tool_path, _label_outcome(outcome))


__all__ = ["_log_check_outcome", "_label_outcome"]
