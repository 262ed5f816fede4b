"""Ambient error capture for tool calls.

Errors raised asynchronously by side effects of a tool (a renderer rejecting
an option, a background callback failing) do not reach the tool's return
value. They are logged. A DiagnosticsSink installed as a logging handler
collects those records so the executor can attach them to the tool result.
"""

from collections import deque
import logging
import threading

# Most recent entries kept by a sink.
MAX_ENTRIES = 8


class DiagnosticsSink:
    """Bounded buffer of the most recent ambient error messages."""

    def __init__(self, maxlen: int = MAX_ENTRIES) -> None:
        self._entries: deque[str] = deque(maxlen=maxlen)
        self._lock = threading.Lock()
        self._handler: DiagnosticsHandler | None = None
        self._logger: logging.Logger | None = None

    def push(self, message: str) -> None:
        with self._lock:
            self._entries.append(message)

    def recent(self) -> list[str]:
        """Snapshot of buffered entries, oldest first."""
        with self._lock:
            return list(self._entries)

    def drain(self) -> list[str]:
        """Return buffered entries and empty the buffer."""
        with self._lock:
            entries = list(self._entries)
            self._entries.clear()
        return entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def install(self, logger: logging.Logger | None = None, level: int = logging.ERROR) -> None:
        """Capture records at ``level`` or above logged through ``logger`` (root by default)."""
        self.uninstall()
        self._handler = DiagnosticsHandler(self, level=level)
        self._logger = logger or logging.getLogger()
        self._logger.addHandler(self._handler)

    def uninstall(self) -> None:
        if self._handler is not None and self._logger is not None:
            self._logger.removeHandler(self._handler)
        self._handler = None
        self._logger = None


class DiagnosticsHandler(logging.Handler):
    """Logging handler feeding a DiagnosticsSink."""

    def __init__(self, sink: DiagnosticsSink, level: int = logging.ERROR) -> None:
        super().__init__(level=level)
        self.sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            if record.exc_info and record.exc_info[1] is not None:
                message = f"{message}: {record.exc_info[1]}"
            self.sink.push(f"{record.name}: {message}")
        except Exception:
            self.handleError(record)
