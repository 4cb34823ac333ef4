from __future__ import annotations

from dataclasses import dataclass, field
import time
from typing import Any, Callable, Iterable, List, Optional

from sproc.logging_utils import LogSink, NullLogger
from sproc.process import SubProcess


FinishedCallback = Callable[[SubProcess], None]
ReplacementCallback = Callable[[SubProcess], Any]


def get_finished(handles: Iterable[SubProcess]) -> List[SubProcess]:
    """Return the handles that are no longer running, in input order."""
    return [handle for handle in handles if handle.execution_state.is_finished]


@dataclass
class BatchWaiter:
    """Polls a set of SubProcess handles until all of them have finished.

    Polling is the only cheap portable way to see "not running any more"
    across handles; completion becomes visible at most one interval late.
    """

    poll_interval_ms: int = 100
    sleep: Callable[[float], None] = time.sleep
    logger: Optional[LogSink] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.poll_interval_ms < 0:
            raise ValueError("poll_interval_ms must not be negative")
        self._logger = self.logger or NullLogger()

    def wait_on_all(
        self,
        handles: Iterable[SubProcess],
        callback: Optional[FinishedCallback] = None,
    ) -> None:
        running = list(handles)
        while running:
            done = self._take_finished(running)
            if callback is not None:
                for handle in done:
                    callback(handle)
            self._pause(running)

    def wait_or_back_to_back(
        self,
        handles: Iterable[SubProcess],
        callback: ReplacementCallback,
    ) -> List[SubProcess]:
        """Wait on ``handles`` and let ``callback`` start replacements.

        ``callback`` gets each finished handle and may return ``None``, one
        SubProcess or an iterable of them; those are waited on as well.
        Returns every handle seen, originals first.
        """
        running = list(handles)
        all_handles = list(running)
        while running:
            for handle in self._take_finished(running):
                replacements = _as_handles(callback(handle))
                if replacements:
                    self._logger.debug(
                        "Adding %s replacement process(es)", len(replacements)
                    )
                running.extend(replacements)
                all_handles.extend(replacements)
            self._pause(running)
        return all_handles

    def _take_finished(self, running: List[SubProcess]) -> List[SubProcess]:
        done = get_finished(running)
        if done:
            finished_ids = {id(handle) for handle in done}
            running[:] = [h for h in running if id(h) not in finished_ids]
            self._logger.debug(
                "%s process(es) finished, %s still running", len(done), len(running)
            )
        return done

    def _pause(self, running: List[SubProcess]) -> None:
        if running:
            self.sleep(self.poll_interval_ms / 1000)


def _as_handles(value: Any) -> List[SubProcess]:
    if value is None:
        return []
    if isinstance(value, SubProcess):
        return [value]
    if isinstance(value, (str, bytes)):
        return []
    try:
        items = list(value)
    except TypeError:
        return []
    return [item for item in items if isinstance(item, SubProcess)]


def wait_on_all(
    handles: Iterable[SubProcess],
    poll_interval_ms: int = 100,
    callback: Optional[FinishedCallback] = None,
) -> None:
    BatchWaiter(poll_interval_ms=poll_interval_ms).wait_on_all(handles, callback)


def wait_or_back_to_back(
    handles: Iterable[SubProcess],
    callback: ReplacementCallback,
    poll_interval_ms: int = 100,
) -> List[SubProcess]:
    return BatchWaiter(poll_interval_ms=poll_interval_ms).wait_or_back_to_back(
        handles, callback
    )
