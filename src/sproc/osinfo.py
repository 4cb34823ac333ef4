from __future__ import annotations

from enum import Enum
import sys
from typing import Optional


class OSFamily(Enum):
    WINDOWS = "windows"
    LINUX = "linux"
    OSX = "osx"
    BSD = "bsd"
    MINGW = "mingw"
    CYGWIN = "cygwin"
    UNKNOWN = "unknown"


_MIXED_ENVS = (OSFamily.MINGW, OSFamily.CYGWIN)


def exec_env(platform_name: Optional[str] = None) -> OSFamily:
    """Classify the execution environment from ``sys.platform``."""
    name = (platform_name if platform_name is not None else sys.platform).lower()
    if name.startswith("win"):
        return OSFamily.WINDOWS
    if name.startswith("msys") or "mingw" in name:
        return OSFamily.MINGW
    if name.startswith("cygwin"):
        return OSFamily.CYGWIN
    if name.startswith("darwin"):
        return OSFamily.OSX
    if name.startswith("linux"):
        return OSFamily.LINUX
    if "bsd" in name or name.startswith("dragonfly"):
        return OSFamily.BSD
    return OSFamily.UNKNOWN


def host_os(platform_name: Optional[str] = None) -> OSFamily:
    # MinGW and Cygwin still run on a Windows host.
    env = exec_env(platform_name)
    if env in _MIXED_ENVS:
        return OSFamily.WINDOWS
    return env


def on_windows() -> bool:
    return exec_env() is OSFamily.WINDOWS


def on_mixed_env() -> bool:
    return exec_env() in _MIXED_ENVS


def on_linux() -> bool:
    return exec_env() is OSFamily.LINUX


def on_osx() -> bool:
    return exec_env() is OSFamily.OSX


def on_bsd() -> bool:
    return exec_env() is OSFamily.BSD


def on_mingw() -> bool:
    return exec_env() is OSFamily.MINGW


def on_cygwin() -> bool:
    return exec_env() is OSFamily.CYGWIN


def ping_count_flag(platform_name: Optional[str] = None) -> str:
    """Flag that limits the number of echo requests sent by ``ping``."""
    if host_os(platform_name) is OSFamily.WINDOWS:
        return "-n"
    return "-c"
