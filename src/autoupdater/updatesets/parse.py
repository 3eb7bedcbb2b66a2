"""Parsing of maintenance tool output.

The tool prints free-form log text and, when it has something to report, an
XML block of the form::

    <updates>
        <update name="IcoDroid" version="1.1.2" size="55979275"/>
    </updates>

:func:`parse_updates` extracts that block and returns the records in document
order, raising :class:`NoUpdatesMarkerError` when there is no block at all and
:class:`MalformedPayloadError` when the block is there but does not have the
expected shape. :func:`parse_result` runs the same logic and returns a
:class:`ParseResult` instead of raising, which is what the orchestrator uses.
"""

from __future__ import annotations

import enum
import logging
import re
import xml.etree.ElementTree as ElementTree
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..errors import MalformedPayloadError, NoUpdatesMarkerError, UpdateParseError
from .types import UpdateRecord
from .version import VersionNumber

MAX_UPDATE_SIZE = 2**64 - 1

_OPEN_TAG = re.compile(r"<updates(\s[^<>]*?)?(/?)>")
_CLOSE_TAG = "</updates>"
_DECIMAL = re.compile(r"^[0-9]+$")


class ParseErrorKind(str, enum.Enum):
    NO_MARKER = "no_marker"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class ParseResult:
    records: Tuple[UpdateRecord, ...] = ()
    error: Optional[ParseErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_updates(output: bytes) -> List[UpdateRecord]:
    """Return the update records contained in ``output``."""

    text = output.decode("utf-8", errors="replace")
    opening = _OPEN_TAG.search(text)
    if opening is None:
        raise NoUpdatesMarkerError()
    if opening.group(2):
        return []

    end = text.find(_CLOSE_TAG, opening.end())
    if end < 0:
        raise MalformedPayloadError("The <updates> node is never closed")
    fragment = text[opening.start() : end + len(_CLOSE_TAG)]

    try:
        root = ElementTree.fromstring(fragment)
    except ElementTree.ParseError as exc:
        logging.debug("Invalid updates XML: %s", exc)
        raise MalformedPayloadError(f"Invalid updates XML: {exc}") from exc

    return [_parse_entry(node) for node in root]


def _parse_entry(node: ElementTree.Element) -> UpdateRecord:
    if node.tag != "update":
        raise MalformedPayloadError(f"Unexpected <{node.tag}> element in <updates>")
    if len(node):
        raise MalformedPayloadError("An <update> element must not have children")

    name = (node.get("name") or "").strip()
    if not name:
        raise MalformedPayloadError("An <update> element has no name")

    try:
        version = VersionNumber.parse(node.get("version") or "")
    except ValueError as exc:
        raise MalformedPayloadError(f"Invalid version for {name}: {exc}") from exc

    raw_size = (node.get("size") or "").strip()
    if not _DECIMAL.match(raw_size):
        raise MalformedPayloadError(f"Invalid size {raw_size!r} for {name}")
    size = int(raw_size)
    if size > MAX_UPDATE_SIZE:
        raise MalformedPayloadError(f"Size {raw_size} for {name} is out of range")

    return UpdateRecord(name=name, version=version, size=size)


def parse_result(output: bytes) -> ParseResult:
    """Parse ``output`` and report failures as a value instead of an exception."""

    try:
        records = parse_updates(output)
    except NoUpdatesMarkerError as exc:
        return ParseResult(error=ParseErrorKind.NO_MARKER, message=str(exc))
    except UpdateParseError as exc:
        return ParseResult(error=ParseErrorKind.MALFORMED, message=str(exc))
    return ParseResult(records=tuple(records))


__all__ = [
    "MAX_UPDATE_SIZE",
    "ParseErrorKind",
    "ParseResult",
    "parse_updates",
    "parse_result",
]
