"""
Workspace tools.

A small set of tools over an in-memory workspace, one per side-effect class:
pure calls, immediate state mutations, and a confirmation-gated commit that
goes out through a persistence collaborator.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import logging
from typing import Any

import requests

from ._exceptions import ToolchatError
from ._http import HTTPClient
from .tools import Tool

logger = logging.getLogger(__name__)
render_logger = logging.getLogger(f"{__name__}.renderer")

LAYOUTS = ("editor", "split", "preview")
CHART_KINDS = ("bar", "line", "scatter", "pie")

Saver = Callable[[dict[str, Any]], dict[str, Any]]


@dataclass
class Workspace:
    """Visible state the model can change through tools."""

    layout: str = "editor"
    highlights: list[dict[str, Any]] = field(default_factory=list)
    chart: dict[str, Any] | None = None
    history: list[str] = field(default_factory=list)

    def snapshot(self) -> dict[str, Any]:
        return {"layout": self.layout, "highlights": list(self.highlights), "chart": self.chart}


class HTTPSaver:
    """Persists workspace snapshots by POSTing them to a save endpoint."""

    def __init__(self, http: HTTPClient, path: str = "/save") -> None:
        self._http = http
        self._path = path

    def __call__(self, payload: dict[str, Any]) -> dict[str, Any]:
        resp = self._http.request("POST", self._path, json=payload)
        try:
            return resp.json()
        except ValueError:
            return {"ok": True, "status": resp.status_code}


def _ping(_args: dict[str, Any]) -> dict[str, Any]:
    return {"ok": True, "pong": True}


def build_workspace_tools(workspace: Workspace, saver: Saver | None = None) -> list[Tool]:
    """Create the workspace tool set bound to ``workspace``."""

    def set_layout(args: dict[str, Any]) -> dict[str, Any]:
        layout = args.get("layout")
        if layout not in LAYOUTS:
            return {"error": f"layout must be one of {', '.join(LAYOUTS)}"}
        workspace.layout = layout
        workspace.history.append(f"layout:{layout}")
        return {"ok": True, "layout": layout}

    def highlight(args: dict[str, Any]) -> dict[str, Any]:
        start = args.get("start_line")
        end = args.get("end_line", start)
        if not isinstance(start, int) or not isinstance(end, int):
            return {"error": "start_line and end_line must be integers"}
        if end < start:
            start, end = end, start
        entry = {"start_line": start, "end_line": end, "color": args.get("color") or "yellow"}
        if args.get("replace", True):
            workspace.highlights = [entry]
        else:
            workspace.highlights.append(entry)
        workspace.history.append(f"highlight:{start}-{end}")
        return {"ok": True, **entry}

    def render_chart(args: dict[str, Any]) -> dict[str, Any]:
        kind = args.get("kind", "bar")
        data = args.get("data") or []
        options = args.get("options") or {}
        if kind not in CHART_KINDS:
            # The renderer falls back to a bar chart and reports the bad option.
            render_logger.error("Unsupported chart kind %r, rendered as bar", kind)
            kind = "bar"
        if not isinstance(data, list):
            render_logger.error("Chart data must be a list, got %s", type(data).__name__)
            data = []
        workspace.chart = {"kind": kind, "data": data, "options": options}
        workspace.history.append(f"chart:{kind}")
        return {"ok": True, "kind": kind, "points": len(data)}

    def commit_changes(args: dict[str, Any]) -> dict[str, Any]:
        if saver is None:
            return {"error": "No save backend configured"}
        payload = {"message": args.get("message") or "", "workspace": workspace.snapshot()}
        try:
            result = saver(payload)
        except (ToolchatError, requests.RequestException) as e:
            logger.warning("Commit failed: %s", e)
            return {"error": str(e)}
        workspace.history.append("commit")
        return result

    return [
        Tool(
            name="ping",
            description="Check that tool calls work. Returns pong.",
            handler=_ping,
        ),
        Tool(
            name="set_layout",
            description="Switch the workspace layout.",
            handler=set_layout,
            input_schema={
                "type": "object",
                "properties": {"layout": {"type": "string", "enum": list(LAYOUTS)}},
                "required": ["layout"],
            },
        ),
        Tool(
            name="highlight",
            description="Highlight a range of lines in the editor.",
            handler=highlight,
            input_schema={
                "type": "object",
                "properties": {
                    "start_line": {"type": "integer"},
                    "end_line": {"type": "integer"},
                    "color": {"type": "string"},
                    "replace": {"type": "boolean"},
                },
                "required": ["start_line"],
            },
        ),
        Tool(
            name="render_chart",
            description="Render a chart in the preview pane.",
            handler=render_chart,
            input_schema={
                "type": "object",
                "properties": {
                    "kind": {"type": "string", "enum": list(CHART_KINDS)},
                    "data": {"type": "array"},
                    "options": {"type": "object"},
                },
                "required": ["data"],
            },
        ),
        Tool(
            name="commit_changes",
            description="Save the current workspace. Asks the user first.",
            handler=commit_changes,
            input_schema={
                "type": "object",
                "properties": {"message": {"type": "string"}},
            },
            requires_confirmation=True,
            confirmation_message="Commit workspace changes?",
        ),
    ]
