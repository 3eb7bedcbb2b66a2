"""Dotted version numbers.

``VersionNumber`` holds the non-negative integer segments of a version such
as ``1.2.0``. Ordering is segment-wise; when one version is a prefix of the
other the longer one sorts last, so ``1.0 < 1.0.0``. Equality is structural.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Tuple

_SEGMENT = re.compile(r"^[0-9]+$")


@dataclass(frozen=True, order=True)
class VersionNumber:
    segments: Tuple[int, ...]

    @classmethod
    def parse(cls, text: str) -> "VersionNumber":
        """Parse ``text`` strictly; raise ``ValueError`` on anything but digits and dots."""

        text = (text or "").strip()
        if not text:
            raise ValueError("empty version string")
        parts = text.split(".")
        for chunk in parts:
            if not _SEGMENT.match(chunk):
                raise ValueError(f"invalid version segment {chunk!r} in {text!r}")
        return cls(tuple(int(chunk) for chunk in parts))

    @property
    def major(self) -> int:
        return self.segments[0] if self.segments else 0

    @property
    def minor(self) -> int:
        return self.segments[1] if len(self.segments) > 1 else 0

    @property
    def micro(self) -> int:
        return self.segments[2] if len(self.segments) > 2 else 0

    def __str__(self) -> str:
        return ".".join(str(seg) for seg in self.segments)


def is_version_newer(current: str, candidate: str) -> bool:
    """Return True if ``candidate`` is newer than ``current``.

    An unparsable candidate is never newer; an unparsable or empty current
    version is older than any valid candidate.
    """

    try:
        cand = VersionNumber.parse(candidate)
    except ValueError:
        return False
    try:
        cur = VersionNumber.parse(current)
    except ValueError:
        return True
    return cur < cand


__all__ = ["VersionNumber", "is_version_newer"]
