"""Defaults and platform conventions for the maintenance tool."""

from __future__ import annotations

import os
import sys
from typing import List, Optional

DEFAULT_TOOL_BASE = "./maintenancetool"
DEFAULT_TOOL_BASE_MACOS = "../../maintenancetool"
DEFAULT_CHECK_ARGUMENTS: List[str] = ["--checkupdates"]
DEFAULT_RUN_ARGUMENTS: List[str] = ["--updater"]
DEFAULT_STOP_DELAY_MS = 3000


def _platform_family(platform: Optional[str] = None) -> str:
    platform = (platform or sys.platform).lower()
    if platform.startswith("win"):
        return "windows"
    if platform == "darwin":
        return "macos"
    return "unix"


def to_system_exe(base_path: str, platform: Optional[str] = None) -> str:
    """Map a platform-neutral tool path to the real executable location.

    ``maintenancetool`` becomes ``maintenancetool.exe`` on Windows and
    ``maintenancetool.app/Contents/MacOS/maintenancetool`` on macOS; other
    platforms use the path unchanged.
    """
    family = _platform_family(platform)
    if family == "windows":
        return base_path if base_path.lower().endswith(".exe") else base_path + ".exe"
    if family == "macos":
        if base_path.endswith(".app"):
            base_path = base_path[: -len(".app")]
        name = os.path.basename(base_path.rstrip("/"))
        return f"{base_path}.app/Contents/MacOS/{name}"
    return base_path


def default_tool_path(platform: Optional[str] = None) -> str:
    """Default maintenance tool location relative to the application directory."""
    base = DEFAULT_TOOL_BASE_MACOS if _platform_family(platform) == "macos" else DEFAULT_TOOL_BASE
    return to_system_exe(base, platform)


__all__ = [
    "DEFAULT_TOOL_BASE",
    "DEFAULT_TOOL_BASE_MACOS",
    "DEFAULT_CHECK_ARGUMENTS",
    "DEFAULT_RUN_ARGUMENTS",
    "DEFAULT_STOP_DELAY_MS",
    "to_system_exe",
    "default_tool_path",
]
