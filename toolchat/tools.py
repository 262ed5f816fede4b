"""
Tool registry and executor.

Tools are looked up by exact name in a fixed registry. Every invocation goes
through ToolExecutor.invoke, which times the call, collects ambient errors
raised during it and encodes the outcome as a ToolResult for the model.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
import json
import logging
import time
from typing import Any

from ._types import ToolInvocation, ToolResult
from .diagnostics import MAX_ENTRIES, DiagnosticsSink

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Any]
ConfirmPrompt = Callable[[str], bool]


@dataclass
class Tool:
    """A named capability the model may invoke."""

    name: str
    description: str
    handler: ToolHandler
    input_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    requires_confirmation: bool = False
    confirmation_message: str | None = None

    def descriptor(self) -> dict[str, Any]:
        """Descriptor passed verbatim to the model request."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


class ToolRegistry:
    """Fixed table of tools keyed by name."""

    def __init__(self, tools: Iterable[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools or ():
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool by name."""
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def descriptors(self) -> list[dict[str, Any]]:
        return [tool.descriptor() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


class ToolExecutor:
    """Dispatches tool invocations and instruments them uniformly.

    Args:
        registry: Tools available to the model
        diagnostics: Sink of ambient errors; drained around each call
        confirm: Prompt used for tools that require confirmation. Without
            one, confirmation-gated tools are always declined.
        settle_delay: Seconds to wait after a call returns so late errors
            from its side effects still land in the call's window
    """

    def __init__(
        self,
        registry: ToolRegistry,
        diagnostics: DiagnosticsSink | None = None,
        confirm: ConfirmPrompt | None = None,
        settle_delay: float = 0.0,
    ) -> None:
        self.registry = registry
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsSink()
        self.confirm = confirm
        self.settle_delay = settle_delay

    def execute(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Run a tool by name. Failures come back as ``{"error": ...}``."""
        tool = self.registry.get(name)
        if tool is None:
            logger.warning("Unknown tool requested: %s", name)
            return {"error": f"Unknown tool: {name}"}

        if tool.requires_confirmation:
            message = tool.confirmation_message or f"Allow {name}?"
            if self.confirm is None or not self.confirm(message):
                logger.info("Tool %s declined by user", name)
                return {"ok": False, "reason": "cancelled"}

        try:
            result = tool.handler(arguments)
        except Exception as e:
            logger.warning("Tool %s failed: %s", name, e)
            return {"error": str(e)}

        if isinstance(result, dict):
            return result
        return {"result": result}

    def invoke(self, invocation: ToolInvocation) -> ToolResult:
        """Execute one invocation with timing and ambient error capture."""
        self.diagnostics.drain()
        logger.debug("Dispatching tool %s (%s)", invocation.name, invocation.id)

        started = time.perf_counter()
        result = self.execute(invocation.name, invocation.arguments)
        duration_ms = round((time.perf_counter() - started) * 1000)

        time.sleep(self.settle_delay)
        page_errors = self.diagnostics.drain()[-MAX_ENTRIES:]

        payload = dict(result)
        payload["_duration_ms"] = duration_ms
        if page_errors:
            payload["_page_errors"] = page_errors
        return ToolResult(tool_use_id=invocation.id, content=json.dumps(payload, default=str))
