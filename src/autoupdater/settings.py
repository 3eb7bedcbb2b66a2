"""Updater settings (tool location, arguments, timeouts).

This module defines :class:`UpdaterSettings`, a small dataclass carrying the
knobs a host application may want to persist or override:

 - ``tool_path``: maintenance tool location; empty means the platform
   default from :func:`autoupdater.defaults.default_tool_path`
 - ``check_arguments`` / ``run_arguments``: argument lists for a check and
   for the run-on-exit launch
 - ``stop_delay_ms``, ``force_kill_timeout``: termination bounds
 - ``scheduler_tolerance``: coalescing window for timer firings

Design notes:
 - Persistence format is a simple JSON object at a path chosen by callers.
 - Loading never raises for I/O or decoding errors; it logs a warning and
   returns defaults so a broken file cannot block update checks.
 - ``apply_env`` lets deployments override a few fields through
   ``AUTOUPDATER_*`` environment variables.
"""

from __future__ import annotations

import json
import logging
import os
import shlex
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import List, Mapping, Optional

from .defaults import (
    DEFAULT_CHECK_ARGUMENTS,
    DEFAULT_RUN_ARGUMENTS,
    DEFAULT_STOP_DELAY_MS,
    default_tool_path,
)
from .process import FORCE_KILL_TIMEOUT
from .scheduler import DEFAULT_TOLERANCE

ENV_TOOL_PATH = "AUTOUPDATER_TOOL_PATH"
ENV_CHECK_ARGS = "AUTOUPDATER_CHECK_ARGS"
ENV_STOP_DELAY_MS = "AUTOUPDATER_STOP_DELAY_MS"


@dataclass
class UpdaterSettings:
    tool_path: str = ""
    check_arguments: List[str] = field(default_factory=lambda: list(DEFAULT_CHECK_ARGUMENTS))
    run_arguments: List[str] = field(default_factory=lambda: list(DEFAULT_RUN_ARGUMENTS))
    stop_delay_ms: int = DEFAULT_STOP_DELAY_MS
    force_kill_timeout: float = FORCE_KILL_TIMEOUT
    scheduler_tolerance: float = DEFAULT_TOLERANCE

    def resolved_tool_path(self) -> str:
        return self.tool_path or default_tool_path()

    def save(self, path: Path) -> None:
        """Write settings to ``path`` as JSON, creating parent directories."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")
        except OSError as e:
            logging.warning("Could not save updater settings: %s", e)

    @classmethod
    def load(cls, path: Path) -> "UpdaterSettings":
        """Load settings from ``path``; fall back to defaults on error.

        Unknown keys are ignored and fields with the wrong type keep their
        default value.
        """
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logging.warning("Could not load updater settings: %s", e)
            return cls()
        if not isinstance(data, dict):
            logging.warning("Could not load updater settings: invalid format")
            return cls()
        settings = cls()
        for f in fields(cls):
            if f.name not in data:
                continue
            value = _coerce(data[f.name], getattr(settings, f.name))
            if value is None:
                logging.warning("Ignoring invalid value for %s in %s", f.name, path)
                continue
            setattr(settings, f.name, value)
        return settings

    def apply_env(self, environ: Optional[Mapping[str, str]] = None) -> "UpdaterSettings":
        """Apply ``AUTOUPDATER_*`` overrides in place and return ``self``."""
        env = os.environ if environ is None else environ
        tool = env.get(ENV_TOOL_PATH)
        if tool:
            self.tool_path = tool
        args = env.get(ENV_CHECK_ARGS)
        if args:
            self.check_arguments = shlex.split(args)
        delay = env.get(ENV_STOP_DELAY_MS)
        if delay:
            try:
                self.stop_delay_ms = max(0, int(delay))
            except ValueError:
                logging.warning("Ignoring %s=%r: not an integer", ENV_STOP_DELAY_MS, delay)
        return self


def _coerce(value: object, default: object) -> object:
    if isinstance(default, list):
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return list(value)
        return None
    if isinstance(default, bool) or isinstance(value, bool):
        return None
    if isinstance(default, int):
        return max(0, value) if isinstance(value, int) else None
    if isinstance(default, float):
        return max(0.0, float(value)) if isinstance(value, (int, float)) else None
    if isinstance(default, str):
        return value if isinstance(value, str) else None
    return None


__all__ = ["UpdaterSettings", "ENV_TOOL_PATH", "ENV_CHECK_ARGS", "ENV_STOP_DELAY_MS"]
