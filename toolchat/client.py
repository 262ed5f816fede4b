"""Model backend client: request building and streaming calls."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
import json
import logging
from typing import Any

from ._http import HTTPClient
from ._types import TextBlock, ToolInvocation, ToolResult, Turn
from .config import ModelConfig
from .streaming import CancelToken, ProtocolEvent, parse_stream

logger = logging.getLogger(__name__)


def _anthropic_content(turn: Turn) -> str | list[dict[str, Any]]:
    if isinstance(turn.content, str):
        return turn.content
    return [
        item.to_dict()
        for item in turn.content
        if not (isinstance(item, TextBlock) and not item.content)
    ]


def to_anthropic_messages(turns: Iterable[Turn]) -> list[dict[str, Any]]:
    """Convert history to Messages API form.

    Consecutive user turns (a tool result turn followed by a new user
    message) are merged into one message.
    """
    messages: list[dict[str, Any]] = []
    for turn in turns:
        content = _anthropic_content(turn)
        if messages and turn.role == "user" and messages[-1]["role"] == "user":
            previous = messages[-1]["content"]
            if isinstance(previous, str):
                previous = [{"type": "text", "text": previous}]
            if isinstance(content, str):
                content = [{"type": "text", "text": content}]
            messages[-1]["content"] = previous + content
            continue
        messages.append({"role": turn.role, "content": content})
    return messages


def to_openai_messages(turns: Iterable[Turn], system: str | None = None) -> list[dict[str, Any]]:
    """Convert history to chat-completions form with tool calls and tool messages."""
    messages: list[dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": system})
    for turn in turns:
        if isinstance(turn.content, str):
            messages.append({"role": turn.role, "content": turn.content})
            continue
        if turn.role == "assistant":
            message: dict[str, Any] = {"role": "assistant", "content": turn.text or None}
            calls = [
                {
                    "id": item.id,
                    "type": "function",
                    "function": {"name": item.name, "arguments": json.dumps(item.arguments)},
                }
                for item in turn.content
                if isinstance(item, ToolInvocation)
            ]
            if calls:
                message["tool_calls"] = calls
            messages.append(message)
            continue
        for item in turn.content:
            if isinstance(item, ToolResult):
                messages.append({"role": "tool", "tool_call_id": item.tool_use_id, "content": item.content})
            elif isinstance(item, TextBlock) and item.content:
                messages.append({"role": "user", "content": item.content})
    return messages


def to_openai_tools(descriptors: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": d["name"],
                "description": d.get("description", ""),
                "parameters": d.get("input_schema") or {"type": "object", "properties": {}},
            },
        }
        for d in descriptors
    ]


class ModelClient:
    """Issues streaming requests carrying the full history to one backend."""

    def __init__(
        self,
        config: ModelConfig,
        http: HTTPClient | None = None,
        tools: Sequence[dict[str, Any]] = (),
    ) -> None:
        self.config = config
        self.tools = list(tools)
        self._http = http or HTTPClient(
            config.endpoint,
            api_key=config.api_key,
            auth_scheme=config.auth_scheme,
            timeout=None,
            label=config.display_name,
        )

    def build_request(self, turns: Iterable[Turn]) -> dict[str, Any]:
        """Build the request body for the configured wire format."""
        config = self.config
        if config.wire_format == "openai":
            body: dict[str, Any] = {
                "model": config.model,
                "max_tokens": config.max_tokens,
                "messages": to_openai_messages(turns, config.system),
                "stream": True,
            }
            if self.tools:
                body["tools"] = to_openai_tools(self.tools)
            return body

        body = {
            "model": config.model,
            "max_tokens": config.max_tokens,
            "system": config.system,
            "messages": to_anthropic_messages(turns),
            "stream": True,
        }
        if self.tools:
            body["tools"] = list(self.tools)
        return body

    def stream(self, turns: Sequence[Turn], cancel: CancelToken | None = None) -> Iterator[ProtocolEvent]:
        """
        Send the history and stream back protocol events.

        Raises:
            TransportError: non-success status or network failure
            RequestCancelled: cancelled before or during the read
        """
        body = self.build_request(turns)
        logger.debug("Requesting %s with %d turns", self.config.model, len(turns))
        if cancel is not None:
            cancel.raise_if_cancelled()
        resp = self._http.stream("POST", json=body)
        return parse_stream(resp, cancel)
