from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, Optional

from sproc.models import ExecutionState, ShellMode, SpawnOptions, TaskResult
from sproc.process import SubProcess


def merge_output(result: TaskResult) -> str:
    """Sections for each non-empty output stream plus the exception, if any."""
    sections = []
    for label, text in (("stdout", result.stdout), ("stderr", result.stderr)):
        if text:
            sections.append(f"--- {label} ---\n{text}")
    if result.exception is not None:
        sections.append(f"--- exception ---\n{result.exception}\n")
    return "\n".join(sections)


@dataclass
class ProcessReporter:
    """Runs subprocesses and writes a build-log style account of them."""

    logger: logging.Logger = field(
        default_factory=lambda: logging.getLogger("sproc.report")
    )

    def __post_init__(self) -> None:
        self._friendly_names: Dict[SubProcess, str] = {}

    def report_sync(
        self,
        name: str,
        command: Any,
        *args: Any,
        options: Optional[SpawnOptions] = None,
    ) -> SubProcess:
        process = self._start(name, ShellMode.NATIVE, True, command, args, options)
        self.report_completed(process)
        return process

    def report_async(
        self,
        name: str,
        command: Any,
        *args: Any,
        options: Optional[SpawnOptions] = None,
    ) -> SubProcess:
        return self._start(name, ShellMode.NATIVE, False, command, args, options)

    def report_async_within_shell(
        self,
        name: str,
        command: Any,
        *args: Any,
        options: Optional[SpawnOptions] = None,
    ) -> SubProcess:
        return self._start(name, ShellMode.SHELL, False, command, args, options)

    def track(self, process: SubProcess, name: str) -> SubProcess:
        self._friendly_names[process] = name
        return process

    def report_completed(self, process: SubProcess) -> bool:
        """Log the outcome of ``process``; True only for a zero exit."""
        name = self._friendly_name(process)
        info = process.task_result
        state = process.execution_state
        if state is ExecutionState.COMPLETED:
            if process.exit_zero():
                self.logger.info(
                    "'%s' completed successfully after %.3fs", name, info.wall_time
                )
                self.logger.debug("Cmd: %s", info.cmd_str)
                return True
            self.logger.error(
                "'%s' completed with exit code %s\nWhen running: %s\nafter %.3fs\n%s",
                name,
                info.status.exit_code,
                info.cmd_str,
                info.wall_time,
                merge_output(info),
            )
        elif state is ExecutionState.ABORTED:
            self.logger.error(
                "'%s' aborted!\nWhen running: %s\n%s%s",
                name,
                info.cmd_str,
                merge_output(info),
                info.status,
            )
        elif state is ExecutionState.FAILED_TO_START:
            self.logger.error(
                "'%s' not run!\nCould not start process using: %s\n%s",
                name,
                info.cmd_str,
                merge_output(info),
            )
        else:
            self.logger.error(
                "'%s' caused unexpected error! Trying to report on a process "
                "that has not finished (%s)",
                name,
                info.cmd_str,
            )
        return False

    def _start(
        self,
        name: str,
        shell_mode: ShellMode,
        synchronous: bool,
        command: Any,
        args: tuple,
        options: Optional[SpawnOptions],
    ) -> SubProcess:
        self.logger.info(
            "'%s' executing %s %s...",
            name,
            "synchronously" if synchronous else "asynchronously",
            "without shell" if shell_mode is ShellMode.NATIVE else "within a shell",
        )
        self.logger.debug(
            "Starting %s with args: %s and options: %s", command, list(args), options
        )
        process = SubProcess(shell_mode)
        self.track(process, name)
        if synchronous:
            return process.exec_sync(command, *args, options=options)
        return process.exec_async(command, *args, options=options)

    def _friendly_name(self, process: SubProcess) -> str:
        name = self._friendly_names.get(process)
        if name is not None:
            return name
        return process.task_result.cmd_str[:10] + "..."
