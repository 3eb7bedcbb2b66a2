"""Exception types raised at the package boundary.

Expected external-tool failures (crashes, bad output) are never raised to
callers; they are folded into a check outcome. The classes here cover parse
failures (raised by :func:`autoupdater.updatesets.parse_updates`) and
programming-contract violations such as malformed scheduling parameters.
"""

from __future__ import annotations


class AutoUpdaterError(Exception):
    """Base class for all errors raised by this package."""


class UpdateParseError(AutoUpdaterError):
    """The maintenance tool output could not be turned into update records."""


class NoUpdatesMarkerError(UpdateParseError):
    def __init__(self, message: str = "The <updates> node could not be found") -> None:
        super().__init__(message)


class MalformedPayloadError(UpdateParseError):
    def __init__(
        self, message: str = "The found XML-part is not of a valid updates-XML-format"
    ) -> None:
        super().__init__(message)


class SchedulingError(AutoUpdaterError, ValueError):
    """Raised for invalid delays, intervals or absolute times."""


__all__ = [
    "AutoUpdaterError",
    "UpdateParseError",
    "NoUpdatesMarkerError",
    "MalformedPayloadError",
    "SchedulingError",
]
