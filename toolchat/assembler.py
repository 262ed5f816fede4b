"""
Content block assembly for one assistant turn.

Consumes ProtocolEvents from a single model response and builds the ordered
list of content blocks (text and tool invocations). Two payload shapes are
understood:

- Messages-style events tagged with ``content_block_start``,
  ``content_block_delta`` and ``content_block_stop``.
- Chat-completions chunks (no event kind) carrying ``choices[0].delta``
  with ``content`` and indexed ``tool_calls`` fragments.
"""

from collections.abc import Callable, Iterable
import json
import logging
from typing import Any

from ._exceptions import StreamError
from ._types import ContentBlock, TextBlock, ToolInvocation
from .streaming import ProtocolEvent

logger = logging.getLogger(__name__)

TextCallback = Callable[[str], None]


def parse_tool_arguments(raw: str) -> dict[str, Any]:
    """Parse an accumulated tool-argument string, defaulting to an empty object.

    Fragments are concatenated before parsing; anything that is not a JSON
    object (empty string, truncated JSON, a bare list) becomes ``{}`` so the
    turn still completes and the tool sees missing arguments.
    """
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Invalid tool arguments, using empty object: %s", raw[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


class StreamSession:
    """Per-request assembly state. Discarded when the request ends."""

    def __init__(self) -> None:
        self.blocks: list[ContentBlock] = []
        self.current_text: TextBlock | None = None
        self.current_tool: ToolInvocation | None = None
        self.tool_arguments = ""
        self.stop_reason: str | None = None
        # Chat-completions tool calls by stream index: (block, raw arguments)
        self.indexed_tools: dict[int, tuple[ToolInvocation, list[str]]] = {}

    def open_text(self, initial: str = "") -> TextBlock:
        self.close_current()
        block = TextBlock(content=initial)
        self.blocks.append(block)
        self.current_text = block
        return block

    def open_tool(self, tool_id: str, name: str) -> ToolInvocation:
        self.close_current()
        block = ToolInvocation(id=tool_id, name=name)
        self.blocks.append(block)
        self.current_tool = block
        self.tool_arguments = ""
        return block

    def close_current(self) -> None:
        if self.current_tool is not None:
            self.current_tool.arguments = parse_tool_arguments(self.tool_arguments)
            self.current_tool = None
            self.tool_arguments = ""
        self.current_text = None

    def close_indexed_tools(self) -> None:
        for block, fragments in self.indexed_tools.values():
            block.arguments = parse_tool_arguments("".join(fragments))
        self.indexed_tools.clear()


class ContentBlockAssembler:
    """
    Builds the content blocks of one assistant turn from protocol events.

    ``on_text`` is called synchronously for every text delta with the
    accumulated text of the current block, so partial output can be shown
    before the block closes.
    """

    def __init__(self, on_text: TextCallback | None = None) -> None:
        self.session = StreamSession()
        self._on_text = on_text

    @property
    def stop_reason(self) -> str | None:
        return self.session.stop_reason

    def assemble(self, events: Iterable[ProtocolEvent]) -> list[ContentBlock]:
        """Consume an event sequence and return the finalized blocks."""
        for event in events:
            self.feed(event)
        return self.finish()

    def finish(self) -> list[ContentBlock]:
        """Finalize any open blocks and return all blocks in announced order."""
        self.session.close_current()
        self.session.close_indexed_tools()
        return list(self.session.blocks)

    def feed(self, event: ProtocolEvent) -> None:
        data = event.payload
        if not isinstance(data, dict):
            return

        kind = event.kind or data.get("type")

        if kind == "content_block_start":
            self._block_start(data.get("content_block") or {})
        elif kind == "content_block_delta":
            self._block_delta(data.get("delta") or {})
        elif kind == "content_block_stop":
            self.session.close_current()
        elif kind == "message_delta":
            delta = data.get("delta") or {}
            if isinstance(delta, dict) and delta.get("stop_reason"):
                self.session.stop_reason = delta["stop_reason"]
        elif kind == "error":
            error = data.get("error")
            message = error.get("message") if isinstance(error, dict) else error
            raise StreamError(str(message or "Unknown stream error"))
        elif "choices" in data:
            self._completion_chunk(data)

    def _emit_text(self, block: TextBlock) -> None:
        if self._on_text is not None:
            self._on_text(block.content)

    def _block_start(self, block: dict[str, Any]) -> None:
        block_type = block.get("type")
        if block_type == "text":
            self.session.open_text(block.get("text") or "")
        elif block_type == "tool_use":
            self.session.open_tool(str(block.get("id", "")), str(block.get("name", "")))
        else:
            # thinking and other block kinds are not part of the turn
            self.session.close_current()

    def _block_delta(self, delta: dict[str, Any]) -> None:
        delta_type = delta.get("type")
        if delta_type == "text_delta":
            block = self.session.current_text
            if block is None:
                block = self.session.open_text()
            block.content += delta.get("text", "")
            self._emit_text(block)
        elif delta_type == "input_json_delta":
            if self.session.current_tool is not None:
                self.session.tool_arguments += delta.get("partial_json", "")

    def _completion_chunk(self, data: dict[str, Any]) -> None:
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return
        choice = choices[0]
        delta = choice.get("delta") or {}

        text = delta.get("content")
        if text:
            block = self.session.current_text
            if block is None:
                block = self.session.open_text()
            block.content += text
            self._emit_text(block)

        for call in delta.get("tool_calls") or []:
            index = call.get("index", 0)
            function = call.get("function") or {}
            entry = self.session.indexed_tools.get(index)
            if entry is None:
                self.session.close_current()
                block = ToolInvocation(
                    id=str(call.get("id") or f"call_{index}"), name=str(function.get("name", ""))
                )
                self.session.blocks.append(block)
                entry = (block, [])
                self.session.indexed_tools[index] = entry
            if function.get("arguments"):
                entry[1].append(function["arguments"])

        if choice.get("finish_reason"):
            self.session.stop_reason = choice["finish_reason"]
            self.session.close_current()
            self.session.close_indexed_tools()
