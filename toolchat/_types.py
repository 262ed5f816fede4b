"""Dataclass models for conversation history."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

Role = Literal["user", "assistant"]


@dataclass
class TextBlock:
    """Accumulated text for one assistant utterance segment."""

    content: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.content}


@dataclass
class ToolInvocation:
    """A single tool call requested by the model.

    ``id`` and ``name`` are fixed when the block opens; ``arguments`` is
    filled in once the argument stream closes.
    """

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.arguments}


@dataclass
class ToolResult:
    """Correlated output of one tool invocation; ``content`` is JSON-encoded."""

    tool_use_id: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool_result", "tool_use_id": self.tool_use_id, "content": self.content}


ContentBlock = Union[TextBlock, ToolInvocation]
TurnItem = Union[TextBlock, ToolInvocation, ToolResult]


def _item_from_dict(data: dict[str, Any]) -> TurnItem:
    kind = data.get("type")
    if kind == "tool_use":
        arguments = data.get("input")
        return ToolInvocation(
            id=data["id"],
            name=data["name"],
            arguments=arguments if isinstance(arguments, dict) else {},
        )
    if kind == "tool_result":
        content = data.get("content", "")
        return ToolResult(tool_use_id=data["tool_use_id"], content=content if isinstance(content, str) else "")
    if kind == "text":
        return TextBlock(content=data.get("text", ""))
    raise ValueError(f"Unsupported content item type: {kind!r}")


@dataclass
class Turn:
    """One role-tagged unit of conversation history."""

    role: Role
    content: str | list[TurnItem]

    @property
    def tool_invocations(self) -> list[ToolInvocation]:
        if isinstance(self.content, str):
            return []
        return [item for item in self.content if isinstance(item, ToolInvocation)]

    @property
    def tool_results(self) -> list[ToolResult]:
        if isinstance(self.content, str):
            return []
        return [item for item in self.content if isinstance(item, ToolResult)]

    @property
    def is_tool_result_turn(self) -> bool:
        return self.role == "user" and bool(self.tool_results)

    @property
    def text(self) -> str:
        """Concatenated text content of the turn."""
        if isinstance(self.content, str):
            return self.content
        return "".join(item.content for item in self.content if isinstance(item, TextBlock))

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [item.to_dict() for item in self.content]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Turn:
        role = data["role"]
        if role not in ("user", "assistant"):
            raise ValueError(f"Unsupported role: {role!r}")
        content = data.get("content", "")
        if isinstance(content, str):
            return cls(role=role, content=content)
        return cls(role=role, content=[_item_from_dict(item) for item in content])
