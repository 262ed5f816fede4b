"""
CLI display for the agentic loop.

Streams assistant text as live markdown, shows tool calls and their results,
and renders failures as error panels. Live refreshes are rate-limited by
rich, so rapid deltas are coalesced; the final text is always rendered when
the turn completes.
"""

import json
import re
from typing import Any

from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel

from .._types import ToolInvocation, ToolResult, Turn
from ..conversation import LoopObserver, LoopState

RESULT_PREVIEW_CHARS = 500


class RichLoopObserver(LoopObserver):
    """LoopObserver rendering to a rich Console."""

    def __init__(self, console: Console | None = None, label: str = "assistant") -> None:
        self.console = console or Console()
        self.label = label
        self.live: Live | None = None
        self.text = ""

    def on_state(self, state: LoopState) -> None:
        if state in (LoopState.IDLE, LoopState.CANCELLED, LoopState.FAILED):
            self._stop_live()

    def on_text(self, text: str) -> None:
        if self.live is not None and not text.startswith(self.text):
            # A new text block started; keep the previous one on screen.
            self._stop_live()
        self.text = text
        if self.live is None:
            self.live = Live(
                _render_markdown(text),
                console=self.console,
                refresh_per_second=12,
                vertical_overflow="visible",
            )
            self.live.start()
        else:
            self.live.update(_render_markdown(text))

    def on_assistant_turn(self, turn: Turn) -> None:
        if self.live is not None:
            # Converge on the complete text before the live region is frozen.
            self.live.update(_render_markdown(self.text), refresh=True)
        self._stop_live()

    def on_tool_start(self, invocation: ToolInvocation) -> None:
        self.console.print(f"[bold cyan]⚡ Calling tool:[/bold cyan] [yellow]{invocation.name}[/yellow]")

    def on_tool_result(self, invocation: ToolInvocation, result: ToolResult) -> None:
        payload = _decode(result.content)
        failed = isinstance(payload, dict) and ("error" in payload or payload.get("ok") is False)
        style = "red" if failed else "green"
        mark = "✗" if failed else "✓"
        self.console.print(
            Panel(
                format_tool_result(payload),
                title=f"[{style}]{mark}[/{style}] Tool Result: {invocation.name}",
                border_style=style,
                expand=False,
            )
        )

    def on_error(self, message: str) -> None:
        self._stop_live()
        self.console.print(Panel(f"[red]{message}[/red]", title="[red]❌ Error[/red]", border_style="red"))

    def on_cancelled(self) -> None:
        self._stop_live()
        self.console.print("[dim]Stopped.[/dim]")

    def _stop_live(self) -> None:
        if self.live is not None:
            self.live.stop()
            self.live = None
        self.text = ""


def _decode(content: str) -> Any:
    try:
        return json.loads(content)
    except ValueError:
        return content


def format_tool_result(result: object) -> str:
    """Format a tool result for display, truncating long payloads."""
    if isinstance(result, dict | list):
        text = json.dumps(result, indent=2, ensure_ascii=False)
    else:
        text = str(result)
    if len(text) > RESULT_PREVIEW_CHARS:
        text = text[: RESULT_PREVIEW_CHARS - 3] + "..."
    return text


_TASK_LIST_PATTERN = re.compile(r"^(\s*[-*]\s+)\[([ xX])\]\s+(.*)$", flags=re.MULTILINE)


def _normalize_markdown(text: str) -> str:
    """Apply small GitHub-flavored markdown tweaks Rich lacks natively."""

    def replace(match: re.Match[str]) -> str:
        prefix, state, content = match.groups()
        symbol = "☑" if state.lower() == "x" else "☐"
        return f"{prefix}{symbol} {content}"

    return _TASK_LIST_PATTERN.sub(replace, text)


def _render_markdown(text: str) -> Markdown:
    return Markdown(_normalize_markdown(text), code_theme="monokai", justify="left")
