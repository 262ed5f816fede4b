"""Error taxonomy for the streaming client and agentic loop."""


class ToolchatError(Exception):
    """Base exception for all toolchat errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body


class TransportError(ToolchatError):
    """Non-success response status or network rejection."""


class AuthenticationError(TransportError):
    """401/403 — missing or rejected credentials."""


class NotFoundError(TransportError):
    """404 — unknown endpoint or model."""


class ValidationError(TransportError):
    """400/422 — the backend rejected the request body."""


class RateLimitError(TransportError):
    """429 — too many requests."""


class StreamError(ToolchatError):
    """The response stream broke off or reported an error mid-flight."""


class ConfigError(ToolchatError):
    """Invalid or incomplete configuration."""


class ConversationBusyError(ToolchatError):
    """A loop is already running for this conversation."""


class RequestCancelled(Exception):
    """The in-flight request was cancelled by the caller.

    Not a ToolchatError: cancellation is never reported as a failure.
    """


# Map HTTP status codes to exception classes.
STATUS_MAP: dict[int, type[TransportError]] = {
    400: ValidationError,
    401: AuthenticationError,
    403: AuthenticationError,
    404: NotFoundError,
    422: ValidationError,
    429: RateLimitError,
}
