"""
Server-Sent Events stream parser.

Turns a chunked byte stream from the model backend into a lazy sequence of
ProtocolEvent records. Network chunk boundaries are unrelated to line or
character boundaries, so decoding and line splitting both carry state from
one chunk to the next.
"""

from collections.abc import Generator, Iterable
import codecs
from dataclasses import dataclass
import json
import logging
import threading
from typing import Any

import requests

from ._exceptions import RequestCancelled, StreamError

logger = logging.getLogger(__name__)

# Data payload that ends the stream.
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class ProtocolEvent:
    """One logical record from the stream."""

    kind: str | None
    payload: Any


class CancelToken:
    """Cancellation signal for one in-flight request.

    ``cancel()`` may be called from any thread. Closing the bound response
    aborts a blocked read; the parser then reports RequestCancelled rather
    than a stream error.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._closeable: Any = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def bind(self, closeable: Any) -> None:
        """Register the resource to close when cancelled."""
        with self._lock:
            self._closeable = closeable
            already = self._event.is_set()
        if already:
            self._close(closeable)

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            closeable = self._closeable
        if closeable is not None:
            self._close(closeable)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled("Request cancelled")

    @staticmethod
    def _close(closeable: Any) -> None:
        try:
            closeable.close()
        except (OSError, requests.RequestException) as e:
            logger.debug("Error closing cancelled response: %s", e)


def _field(line: str, name: str) -> str | None:
    """Return the value of an SSE field line, or None if it is another field."""
    prefix = name + ":"
    if not line.startswith(prefix):
        return None
    value = line[len(prefix) :]
    return value[1:] if value.startswith(" ") else value


class EventStreamParser:
    """Parser for the event-tagged line protocol used by the model backend."""

    @staticmethod
    def iter_events(
        chunks: Iterable[bytes], cancel: CancelToken | None = None
    ) -> Generator[ProtocolEvent, None, None]:
        """
        Parse byte chunks into protocol events.

        Args:
            chunks: Iterable of raw byte chunks, in arrival order
            cancel: Optional token checked between chunks

        Yields:
            ProtocolEvent objects, one per parseable data line

        Raises:
            RequestCancelled: the token was cancelled
            StreamError: reading the next chunk failed
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""
        kind: str | None = None
        source = iter(chunks)

        while True:
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                chunk = next(source)
            except StopIteration:
                break
            except Exception as e:
                if cancel is not None and cancel.cancelled:
                    raise RequestCancelled("Request cancelled") from e
                if isinstance(e, (requests.RequestException, OSError)):
                    raise StreamError(f"Stream read failed: {e}") from e
                raise

            buffer += decoder.decode(chunk)
            lines = buffer.split("\n")
            buffer = lines.pop()

            for line in lines:
                line = line.rstrip("\r")
                value = _field(line, "event")
                if value is not None:
                    kind = value.strip()
                    continue
                raw = _field(line, "data")
                if raw is None:
                    continue
                if raw == DONE_SENTINEL:
                    return
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Failed to parse SSE JSON: %s", raw[:200])
                else:
                    yield ProtocolEvent(kind=kind, payload=payload)
                kind = None

        if cancel is not None:
            cancel.raise_if_cancelled()

    @staticmethod
    def parse_stream(
        response: requests.Response, cancel: CancelToken | None = None
    ) -> Generator[ProtocolEvent, None, None]:
        """
        Parse an SSE stream from an HTTP response.

        Args:
            response: requests.Response object with streaming enabled
            cancel: Optional token; cancelling closes the response

        Yields:
            ProtocolEvent objects
        """
        if cancel is not None:
            cancel.bind(response)
        try:
            yield from EventStreamParser.iter_events(response.iter_content(chunk_size=None), cancel)
        finally:
            response.close()


parse_sse = EventStreamParser.iter_events
parse_stream = EventStreamParser.parse_stream
