from __future__ import annotations

import argparse
from collections import deque
import logging
import os
from pathlib import Path
import sys
from typing import Callable, Dict, Iterable, List, Optional, TextIO

from sproc.batch import BatchWaiter
from sproc.config import BatchConfig, ConfigError, ConfigLoader, JobConfig
from sproc.logging_utils import LoggerFactory
from sproc.models import ExecutionState, ShellMode, SpawnOptions
from sproc.process import SubProcess
from sproc.reporting import ProcessReporter


EXIT_FAILED_TO_START = 127
EXIT_CONFIG_ERROR = 2


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = _parse_args(argv)
    if args.subcommand == "run":
        return _run_command(args)
    return _run_batch(args)


def exit_code_for(process: SubProcess) -> int:
    """Map a finished SubProcess to a shell-style exit code."""
    state = process.execution_state
    status = process.task_result.status
    if state is ExecutionState.COMPLETED:
        return status.exit_code
    if state is ExecutionState.ABORTED:
        return 128 + (status.term_signal or 0)
    if state is ExecutionState.FAILED_TO_START:
        return EXIT_FAILED_TO_START
    return 1


def _run_command(args: argparse.Namespace) -> int:
    logger = LoggerFactory.create("sproc", log_file=os.getenv("SPROC_LOG_PATH"))
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        logger.error("No command given")
        return EXIT_CONFIG_ERROR

    reporter = ProcessReporter(logger=logging.getLogger("sproc.report"))
    process = SubProcess(
        ShellMode.SHELL if args.shell else ShellMode.NATIVE,
        stdout_callback=None if args.quiet else _echo(sys.stdout),
        stderr_callback=None if args.quiet else _echo(sys.stderr),
        env=_parse_env(args.env),
        logger=logging.getLogger("sproc.engine"),
    )
    reporter.track(process, args.name or " ".join(command))
    options = SpawnOptions(cwd=args.cwd, unset_env_others=args.unset_env_others)
    process.exec_sync(command[0], *command[1:], options=options)
    reporter.report_completed(process)
    return exit_code_for(process)


def _run_batch(args: argparse.Namespace) -> int:
    try:
        config_path = Path(args.config) if args.config else None
        config = ConfigLoader(config_path=config_path).load()
    except ConfigError as exc:
        LoggerFactory.create("sproc")
        logging.getLogger("sproc").error("Config error: %s", exc)
        return EXIT_CONFIG_ERROR

    log_path = os.getenv("SPROC_LOG_PATH") or config.logging.file_path
    logger = LoggerFactory.create("sproc", log_file=log_path, level=config.logging.level)
    max_parallel = args.max_parallel or config.defaults.max_parallel
    if max_parallel < 1:
        logger.error("max_parallel must be at least 1: %s", max_parallel)
        return EXIT_CONFIG_ERROR
    logger.info(
        "Batch of %s job(s), max_parallel=%s, poll_interval_ms=%s",
        len(config.jobs),
        max_parallel,
        config.defaults.poll_interval_ms,
    )

    if args.dry_run:
        for job in config.jobs:
            logger.info("Dry-run: %s -> %s %s", job.name, job.command, " ".join(job.args))
        return 0

    finished = _dispatch_jobs(config, max_parallel)
    failures = [process for process in finished if not process.exit_zero()]
    logger.info("Batch finished: %s job(s), %s failed", len(finished), len(failures))
    return 0 if not failures else 1


def _dispatch_jobs(config: BatchConfig, max_parallel: int) -> List[SubProcess]:
    engine_logger = logging.getLogger("sproc.engine")
    reporter = ProcessReporter(logger=logging.getLogger("sproc.report"))
    pending = deque(config.jobs)

    def start(job: JobConfig) -> SubProcess:
        process = SubProcess(job.shell, env=job.env, logger=engine_logger)
        reporter.track(process, job.name)
        return process.exec_async(job.command, *job.args, options=job.options)

    def on_finished(process: SubProcess) -> Optional[SubProcess]:
        reporter.report_completed(process)
        if pending:
            return start(pending.popleft())
        return None

    initial = [start(pending.popleft()) for _ in range(min(max_parallel, len(pending)))]
    waiter = BatchWaiter(
        poll_interval_ms=config.defaults.poll_interval_ms, logger=engine_logger
    )
    return waiter.wait_or_back_to_back(initial, on_finished)


def _echo(stream: TextIO) -> Callable[[str], None]:
    def write(line: str) -> None:
        stream.write(line)
        stream.flush()

    return write


def _parse_env(pairs: Optional[List[str]]) -> Dict[str, Optional[str]]:
    # KEY=VALUE sets a variable, a bare KEY unsets it for the child.
    env: Dict[str, Optional[str]] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        env[key] = value if sep else None
    return env


def _parse_args(argv: Optional[Iterable[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run subprocesses and report on them")
    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    run = subparsers.add_parser("run", help="Run a single command synchronously")
    run.add_argument("--shell", action="store_true", help="Run the command via bash -c")
    run.add_argument("--cwd", help="Working directory for the command")
    run.add_argument(
        "--env",
        action="append",
        metavar="KEY[=VALUE]",
        help="Set (KEY=VALUE) or unset (KEY) an environment variable",
    )
    run.add_argument(
        "--unset-env-others",
        action="store_true",
        help="Start from an empty environment plus the --env overlay",
    )
    run.add_argument("--name", help="Friendly name used in the report")
    run.add_argument("--quiet", action="store_true", help="Do not echo command output")
    run.add_argument("command", nargs=argparse.REMAINDER)

    batch = subparsers.add_parser("batch", help="Run the jobs of a batch file")
    batch.add_argument("--config", help="Path to the batch YAML file")
    batch.add_argument(
        "--max-parallel", type=int, help="Override defaults.max_parallel"
    )
    batch.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate the batch file and list jobs without running them",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


if __name__ == "__main__":
    raise SystemExit(main())
