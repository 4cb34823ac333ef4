from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import os
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

from sproc.command_runner import ProcessHandle
from sproc.logging_utils import LogSink, NullLogger


class ShellMode(Enum):
    """How a command is handed to the OS."""

    NATIVE = "native"  # argv passed straight to the spawn primitive
    SHELL = "shell"  # joined into one script run by `<shell> -c`


class ExecutionState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    ABORTED = "aborted"
    COMPLETED = "completed"
    FAILED_TO_START = "failed_to_start"

    @property
    def is_finished(self) -> bool:
        return self in _FINISHED_STATES


_FINISHED_STATES = frozenset(
    {
        ExecutionState.ABORTED,
        ExecutionState.COMPLETED,
        ExecutionState.FAILED_TO_START,
    }
)


@dataclass(frozen=True)
class TerminalStatus:
    """OS-reported outcome of a process that has terminated."""

    exit_code: Optional[int]
    signaled: bool = False
    stopped: bool = False
    term_signal: Optional[int] = None

    @classmethod
    def from_returncode(cls, returncode: int) -> "TerminalStatus":
        # Popen reports death by signal N as returncode -N.
        if returncode < 0:
            return cls(exit_code=None, signaled=True, term_signal=-returncode)
        return cls(exit_code=returncode)

    @property
    def exited(self) -> bool:
        return not self.signaled and not self.stopped

    def __str__(self) -> str:
        if self.signaled:
            return f"terminated by signal {self.term_signal}"
        if self.stopped:
            return "stopped"
        return f"exit {self.exit_code}"


SUPPORTED_SPAWN_OPTIONS = ("cwd", "umask", "unset_env_others")


@dataclass(frozen=True)
class SpawnOptions:
    cwd: Optional[Union[str, Path]] = None
    umask: Optional[int] = None
    unset_env_others: bool = False

    @classmethod
    def from_mapping(
        cls,
        data: Optional[Mapping[str, Any]],
        logger: Optional[LogSink] = None,
    ) -> "SpawnOptions":
        """Build options from a loose mapping, dropping unsupported keys."""
        logger = logger or NullLogger()
        if not data:
            return cls()
        supported = {}
        for key, value in data.items():
            if key not in SUPPORTED_SPAWN_OPTIONS:
                logger.debug("Ignoring unsupported spawn option: %s", key)
                continue
            supported[key] = value
        if supported.get("cwd") is not None:
            supported["cwd"] = os.fspath(supported["cwd"])
        umask = supported.get("umask")
        if isinstance(umask, str):
            # Written as "022" / "0o022" in config files.
            supported["umask"] = int(umask, 8)
        elif umask is not None:
            supported["umask"] = int(umask)
        if "unset_env_others" in supported:
            supported["unset_env_others"] = bool(supported["unset_env_others"])
        return cls(**supported)

    def merged_with(self, override: "SpawnOptions") -> "SpawnOptions":
        return SpawnOptions(
            cwd=override.cwd if override.cwd is not None else self.cwd,
            umask=override.umask if override.umask is not None else self.umask,
            unset_env_others=self.unset_env_others or override.unset_env_others,
        )


@dataclass
class TaskResult:
    """Everything known about one invocation.

    ``status`` stays ``None`` until the process has actually terminated and
    ``wall_time`` stays ``0.0`` until the invocation finished.
    """

    cmd_str: str = ""
    exception: Optional[BaseException] = None
    wall_time: float = 0.0
    status: Optional[TerminalStatus] = None
    process: Optional[ProcessHandle] = None
    stdout_lines: List[str] = field(default_factory=list)
    stderr_lines: List[str] = field(default_factory=list)

    @property
    def stdout(self) -> str:
        return "".join(self.stdout_lines)

    @property
    def stderr(self) -> str:
        return "".join(self.stderr_lines)
