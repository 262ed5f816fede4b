"""Thin HTTP client wrapping requests.Session with auth and error mapping."""

import logging
from typing import Any

import requests

from ._exceptions import STATUS_MAP, TransportError

logger = logging.getLogger(__name__)

# Length of the response body excerpt carried by transport errors.
BODY_EXCERPT = 200


def _raise_for_status(resp: requests.Response, *, label: str = "HTTP") -> None:
    """Read an error response fully and raise the mapped transport error."""
    try:
        text = resp.text or ""
    except requests.RequestException as e:
        logger.debug("Failed to read error body: %s", e)
        text = ""
    finally:
        resp.close()

    excerpt = text[:BODY_EXCERPT]
    exc_cls = STATUS_MAP.get(resp.status_code, TransportError)
    raise exc_cls(f"{label} {resp.status_code}: {excerpt}", status_code=resp.status_code, body=excerpt)


class HTTPClient:
    """Minimal HTTP client with optional auth and typed error mapping.

    Requests are never retried: a failed request is reported once and the
    caller decides what to do next.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        auth_scheme: str = "bearer",
        timeout: float | None = 300,
        label: str = "HTTP",
    ):
        self._session = requests.Session()
        self._session.headers["Content-Type"] = "application/json"
        if api_key:
            if auth_scheme == "x-api-key":
                self._session.headers["x-api-key"] = api_key
            else:
                self._session.headers["Authorization"] = f"Bearer {api_key}"
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self.label = label

    @property
    def base_url(self) -> str:
        return self._base_url

    def _send(self, method: str, url: str, *, is_stream: bool = False, **kwargs: Any) -> requests.Response:
        try:
            resp = self._session.request(method, url, timeout=self._timeout, stream=is_stream, **kwargs)
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise TransportError(f"{self.label} request failed: {e}", status_code=None) from e

        if not resp.ok:
            _raise_for_status(resp, label=self.label)
        return resp

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}" if path else self._base_url

    def request(self, method: str, path: str = "", **kwargs: Any) -> requests.Response:
        """Send request and raise typed exception on error."""
        return self._send(method, self._url(path), **kwargs)

    def stream(self, method: str, path: str = "", **kwargs: Any) -> requests.Response:
        """Send request with stream=True for SSE parsing."""
        return self._send(method, self._url(path), is_stream=True, **kwargs)

    def close(self) -> None:
        self._session.close()
