from __future__ import annotations

from threading import Lock, Thread
from typing import Any, Optional

from sproc.command_runner import CommandRunner
from sproc.drainer import LineCallback
from sproc.logging_utils import LogSink, NullLogger
from sproc.models import ExecutionState, ShellMode, SpawnOptions, TaskResult
from sproc.task_runner import EnvOverlay, TaskRunner


class AlreadyRunningError(RuntimeError):
    """Raised when a SubProcess is invoked while its previous run is in flight."""


class UnhandledProcessStatus(RuntimeError):
    """Raised for OS statuses the state machine does not model (stopped)."""


class SubProcess:
    """Runs a command in a subprocess, synchronously or asynchronously.

    The handle counts as running for as long as its execution thread is
    alive. That thread covers spawn, output capture and the drain joins, so
    ``RUNNING`` means the whole invocation is in flight, not just that an OS
    process exists.

    Example:
        >>> sp = SubProcess().exec_sync("echo", "hejsan")
        >>> sp.exit_zero(), sp.task_result.stdout
        (True, 'hejsan\\n')
    """

    def __init__(
        self,
        shell_mode: ShellMode = ShellMode.NATIVE,
        *,
        stdout_callback: Optional[LineCallback] = None,
        stderr_callback: Optional[LineCallback] = None,
        env: Optional[EnvOverlay] = None,
        logger: Optional[LogSink] = None,
        runner: Optional[CommandRunner] = None,
        shell: str = "bash",
    ) -> None:
        self.shell_mode = shell_mode
        self.env = dict(env or {})
        self._stdout_callback = stdout_callback
        self._stderr_callback = stderr_callback
        self._logger = logger or NullLogger()
        self._runner = runner
        self._shell = shell
        self._lock = Lock()
        self._task_runner = self._new_task_runner()
        self._execution_thread: Optional[Thread] = None

    def __repr__(self) -> str:
        return (
            f"<SubProcess {self.task_result.cmd_str!r} "
            f"{self.execution_state.value}>"
        )

    @property
    def task_result(self) -> TaskResult:
        return self._task_runner.result

    @property
    def execution_state(self) -> ExecutionState:
        """Current state, derived from the execution thread and OS status."""
        with self._lock:
            thread = self._execution_thread
            result = self._task_runner.result
        if thread is None:
            return ExecutionState.NOT_STARTED
        if thread.is_alive():
            return ExecutionState.RUNNING

        status = result.status
        # The thread ran but never saw the process terminate: spawn failed.
        if status is None:
            return ExecutionState.FAILED_TO_START
        if status.signaled:
            return ExecutionState.ABORTED
        if status.stopped:
            raise UnhandledProcessStatus("Unhandled process 'stopped' status!")
        if status.exited:
            return ExecutionState.COMPLETED
        raise UnhandledProcessStatus(f"Unhandled process status: {status!r}")

    def exec_sync(
        self, command: Any, *args: Any, options: Optional[SpawnOptions] = None
    ) -> "SubProcess":
        """Run ``command`` and block until it has completed or aborted."""
        return self._exec(True, command, args, options)

    def exec_async(
        self, command: Any, *args: Any, options: Optional[SpawnOptions] = None
    ) -> "SubProcess":
        """Start ``command`` and return at once; see ``wait_on_completion``."""
        return self._exec(False, command, args, options)

    def exit_zero(self) -> bool:
        if self.execution_state is not ExecutionState.COMPLETED:
            return False
        return self.task_result.status.exit_code == 0

    def wait_on_completion(self) -> TaskResult:
        thread = self._execution_thread
        if thread is not None:
            thread.join()
        return self.task_result

    def _exec(
        self,
        synchronous: bool,
        command: Any,
        args: tuple,
        options: Optional[SpawnOptions],
    ) -> "SubProcess":
        with self._lock:
            if self._execution_thread is not None and self._execution_thread.is_alive():
                raise AlreadyRunningError("Subprocess already running!")

            task_runner = self._new_task_runner()
            thread = Thread(
                target=task_runner.execute,
                args=(self.env, command, *args),
                kwargs={"options": options},
                name=f"sproc-exec-{command}",
                daemon=True,
            )
            self._task_runner = task_runner
            self._execution_thread = thread
            thread.start()

        if synchronous:
            thread.join()
        return self

    def _new_task_runner(self) -> TaskRunner:
        return TaskRunner(
            self.shell_mode,
            stdout_callback=self._stdout_callback,
            stderr_callback=self._stderr_callback,
            runner=self._runner,
            logger=self._logger,
            shell=self._shell,
        )
