from __future__ import annotations

import os
import shlex
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sproc.command_runner import CommandRunner, SubprocessCommandRunner
from sproc.drainer import LineCallback, StreamDrainer
from sproc.logging_utils import LogSink, NullLogger
from sproc.models import ShellMode, SpawnOptions, TaskResult, TerminalStatus


EnvOverlay = Mapping[str, Optional[str]]


def flatten_args(args: Iterable[Any]) -> List[str]:
    """Flatten nested lists/tuples and stringify every argument."""
    flat: List[str] = []
    for arg in args:
        if isinstance(arg, (list, tuple)):
            flat.extend(flatten_args(arg))
        else:
            flat.append(str(arg))
    return flat


class TaskRunner:
    """Runs exactly one subprocess invocation and records it in ``result``."""

    def __init__(
        self,
        shell_mode: ShellMode = ShellMode.NATIVE,
        *,
        stdout_callback: Optional[LineCallback] = None,
        stderr_callback: Optional[LineCallback] = None,
        runner: Optional[CommandRunner] = None,
        logger: Optional[LogSink] = None,
        shell: str = "bash",
    ) -> None:
        self.shell_mode = shell_mode
        self.result = TaskResult()
        self._stdout_callback = stdout_callback
        self._stderr_callback = stderr_callback
        self._runner = runner or SubprocessCommandRunner()
        self._logger = logger or NullLogger()
        self._shell = shell
        self._used = False

    def execute(
        self,
        env: Optional[EnvOverlay],
        command: Any,
        *args: Any,
        options: Optional[SpawnOptions] = None,
    ) -> TaskResult:
        """Spawn, drain and wait; blocks until the process is gone.

        Failures are stored in ``result.exception`` instead of being raised.
        """
        if self._used:
            raise RuntimeError("TaskRunner instances run a single invocation")
        self._used = True

        start_time = time.monotonic()
        try:
            self._shell_out(env, command, args, options or SpawnOptions())
        except Exception as exc:
            self._logger.warning("Could not run %s: %s", self.result.cmd_str, exc)
            self.result.exception = exc
        self.result.wall_time = time.monotonic() - start_time
        return self.result

    def build_args(self, command: Any, args: Iterable[Any]) -> List[str]:
        cmd_args = flatten_args(args)
        if self.shell_mode is ShellMode.NATIVE:
            argv = [str(command), *cmd_args]
            self.result.cmd_str = " ".join(argv)
            return argv
        if self.shell_mode is ShellMode.SHELL:
            # Arguments stay unquoted inside the script so that variable
            # substitution and pipes are handled by the shell.
            script = " ".join([str(command), *cmd_args])
            self.result.cmd_str = f"{self._shell} -c {shlex.quote(script)}"
            return [self._shell, "-c", script]
        raise ValueError(f"Unknown shell mode: {self.shell_mode!r}")

    def build_env(
        self, overlay: Optional[EnvOverlay], options: SpawnOptions
    ) -> Dict[str, str]:
        env: Dict[str, str] = {} if options.unset_env_others else dict(os.environ)
        for key, value in (overlay or {}).items():
            if value is None:
                env.pop(key, None)
            else:
                env[key] = str(value)
        return env

    def _shell_out(
        self,
        overlay: Optional[EnvOverlay],
        command: Any,
        args: Iterable[Any],
        options: SpawnOptions,
    ) -> None:
        argv = self.build_args(command, args)
        env = self.build_env(overlay, options)

        self._logger.debug("Start: %s", self.result.cmd_str)
        if overlay:
            self._logger.debug("Supplying env: %s", dict(overlay))
        if options != SpawnOptions():
            self._logger.debug("Spawn options: %s", options)

        process = self._runner.spawn(
            argv,
            env=env,
            cwd=os.fspath(options.cwd) if options.cwd is not None else None,
            umask=options.umask,
        )
        self.result.process = process
        drainers = [
            StreamDrainer(
                process.stdout,
                self.result.stdout_lines,
                self._stdout_callback,
                name="stdout",
                logger=self._logger,
            ).start(),
            StreamDrainer(
                process.stderr,
                self.result.stderr_lines,
                self._stderr_callback,
                name="stderr",
                logger=self._logger,
            ).start(),
        ]
        returncode = process.wait()
        for drainer in drainers:
            drainer.join()
        for stream in (process.stdout, process.stderr):
            stream.close()
        # Recorded last so a terminal state always comes with final buffers.
        self.result.status = TerminalStatus.from_returncode(returncode)
