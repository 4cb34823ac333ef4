from __future__ import annotations

from dataclasses import dataclass
import subprocess
from typing import IO, Mapping, Optional, Protocol, Sequence


class ProcessHandle(Protocol):
    pid: int
    stdout: Optional[IO[str]]
    stderr: Optional[IO[str]]

    def poll(self) -> int | None:
        ...

    def wait(self, timeout: float | None = None) -> int:
        ...

    def terminate(self) -> None:
        ...

    def kill(self) -> None:
        ...

    def send_signal(self, sig: int) -> None:
        ...


class CommandRunner(Protocol):
    def spawn(
        self,
        args: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
        umask: Optional[int] = None,
    ) -> ProcessHandle:
        ...


@dataclass
class SubprocessCommandRunner:
    encoding: str = "utf-8"

    def spawn(
        self,
        args: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
        umask: Optional[int] = None,
    ) -> subprocess.Popen[str]:
        extra = {}
        if umask is not None:
            # Popen only applies umask on POSIX; -1 is its "leave alone" value.
            extra["umask"] = umask
        return subprocess.Popen(
            list(args),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=dict(env) if env is not None else None,
            cwd=cwd,
            text=True,
            encoding=self.encoding,
            errors="replace",
            bufsize=1,
            **extra,
        )
