from __future__ import annotations

from threading import Thread
from typing import IO, Callable, List, Optional

from sproc.logging_utils import LogSink, NullLogger


LineCallback = Callable[[str], None]


class StreamDrainer:
    """Reads one output stream line by line until it is closed.

    Each raw line goes to ``callback`` first and is then appended to
    ``buffer``. Runs on its own daemon thread so a child process never blocks
    on a full pipe.
    """

    def __init__(
        self,
        stream: IO[str],
        buffer: Optional[List[str]] = None,
        callback: Optional[LineCallback] = None,
        *,
        name: str = "stream",
        logger: Optional[LogSink] = None,
    ) -> None:
        self._stream = stream
        self._buffer = buffer
        self._callback = callback
        self._name = name
        self._logger = logger or NullLogger()
        self._thread: Optional[Thread] = None

    def start(self) -> "StreamDrainer":
        self._thread = Thread(
            target=self.drain, name=f"sproc-drain-{self._name}", daemon=True
        )
        self._thread.start()
        return self

    def join(self) -> None:
        if self._thread is not None:
            self._thread.join()

    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def drain(self) -> None:
        try:
            for raw_line in iter(self._stream.readline, ""):
                self._dispatch(raw_line)
                if self._buffer is not None:
                    self._buffer.append(raw_line)
        except (ValueError, OSError) as exc:
            # Killed children close their pipes under us; partial output is fine.
            self._logger.warning(
                "Stream %s closed before all output was read!", self._name
            )
            self._logger.warning("%s", exc)

    def _dispatch(self, raw_line: str) -> None:
        if self._callback is None:
            return
        try:
            self._callback(raw_line)
        except Exception as exc:
            # Keep draining; a stalled reader would block the child on a full pipe.
            self._logger.error("%s line callback failed: %s", self._name, exc)
