from __future__ import annotations

import logging
import shutil

import pytest

from sproc.models import TaskResult
from sproc.process import SubProcess
from sproc.reporting import ProcessReporter, merge_output


@pytest.fixture
def reporter() -> ProcessReporter:
    return ProcessReporter(logger=logging.getLogger("test.report"))


def test_report_sync_logs_success(
    reporter: ProcessReporter, python: str, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level("INFO", logger="test.report"):
        sp = reporter.report_sync("Say hello", python, "-c", "print('hello')")

    assert sp.exit_zero() is True
    assert "'Say hello' executing synchronously without shell" in caplog.text
    assert "'Say hello' completed successfully after" in caplog.text


def test_report_async_then_completed(
    reporter: ProcessReporter, python: str, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level("INFO", logger="test.report"):
        sp = reporter.report_async("Nap", python, "-c", "import time; time.sleep(0.1)")
        sp.wait_on_completion()
        ok = reporter.report_completed(sp)

    assert ok is True
    assert "executing asynchronously" in caplog.text
    assert "'Nap' completed successfully" in caplog.text


@pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")
def test_report_async_within_shell(
    reporter: ProcessReporter, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level("INFO", logger="test.report"):
        sp = reporter.report_async_within_shell("Piped", "echo", "a", "|", "cat")
        sp.wait_on_completion()

    assert sp.task_result.stdout == "a\n"
    assert "within a shell" in caplog.text


def test_report_nonzero_exit_as_error(
    reporter: ProcessReporter, python: str, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level("ERROR", logger="test.report"):
        sp = reporter.report_sync(
            "Fail", python, "-c", "import sys; print('bad', file=sys.stderr); sys.exit(3)"
        )

    assert sp.exit_zero() is False
    assert "'Fail' completed with exit code 3" in caplog.text
    assert "--- stderr ---\nbad" in caplog.text


def test_report_failed_start(
    reporter: ProcessReporter, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level("ERROR", logger="test.report"):
        reporter.report_sync("Missing", "pinggg", "-c", "1")

    assert "'Missing' not run!" in caplog.text
    assert "Could not start process using: pinggg -c 1" in caplog.text
    assert "--- exception ---" in caplog.text


def test_report_unstarted_process_is_unexpected(
    reporter: ProcessReporter, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level("ERROR", logger="test.report"):
        ok = reporter.report_completed(SubProcess())

    assert ok is False
    assert "caused unexpected error" in caplog.text


def test_untracked_process_uses_truncated_command(
    reporter: ProcessReporter, python: str, caplog: pytest.LogCaptureFixture
) -> None:
    sp = SubProcess().exec_sync(python, "-c", "pass")

    with caplog.at_level("INFO", logger="test.report"):
        reporter.report_completed(sp)

    assert f"'{sp.task_result.cmd_str[:10]}...' completed successfully" in caplog.text


def test_merge_output_skips_empty_sections() -> None:
    result = TaskResult(stdout_lines=["out\n"], exception=OSError("denied"))

    merged = merge_output(result)

    assert merged == "--- stdout ---\nout\n\n--- exception ---\ndenied\n"
    assert merge_output(TaskResult()) == ""
