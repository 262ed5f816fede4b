"""
Main CLI entry point for toolchat.

Provides an interactive chat with tool use against one of the configured
model backends.
"""

from __future__ import annotations

import argparse
import queue
import sys
import threading

from rich.console import Console

from toolchat import __version__

from .._exceptions import ToolchatError
from .._http import HTTPClient
from ..builtin_tools import HTTPSaver, Workspace, build_workspace_tools
from ..client import ModelClient
from ..config import PRESETS, load_config
from ..conversation import AgenticLoop, ConversationState, LoopState
from ..diagnostics import DiagnosticsSink
from ..session import DEFAULT_SESSION_PATH, SessionStore
from ..tools import ToolExecutor, ToolRegistry
from .display import RichLoopObserver
from .prompt import confirm_prompt, prompt
from .util import configure_logging, graceful_main


class ConfirmBridge:
    """Hands confirmation prompts from the loop thread to the main thread."""

    def __init__(self, auto_confirm: bool = False) -> None:
        self.auto_confirm = auto_confirm
        self._requests: queue.Queue[tuple[str, queue.Queue[bool]]] = queue.Queue()

    def ask(self, message: str) -> bool:
        """Called from the loop thread; blocks until the main thread answers."""
        if self.auto_confirm:
            return True
        reply: queue.Queue[bool] = queue.Queue(maxsize=1)
        self._requests.put((message, reply))
        return reply.get()

    def answer_pending(self, decline: bool = False) -> None:
        while True:
            try:
                message, reply = self._requests.get_nowait()
            except queue.Empty:
                return
            answer = False
            try:
                if not decline:
                    answer = confirm_prompt(message)
            finally:
                # The loop thread is blocked on this reply.
                reply.put(answer)


def run_turn(loop: AgenticLoop, text: str, bridge: ConfirmBridge) -> LoopState:
    """Run one submission on a worker thread; Ctrl-C cancels it."""
    outcome: dict[str, object] = {}

    def work() -> None:
        try:
            outcome["state"] = loop.submit(text)
        except BaseException as e:
            outcome["error"] = e

    worker = threading.Thread(target=work, name="toolchat-loop", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            bridge.answer_pending()
            worker.join(0.05)
    except KeyboardInterrupt:
        loop.cancel()
        while worker.is_alive():
            bridge.answer_pending(decline=True)
            worker.join(0.05)

    error = outcome.get("error")
    if isinstance(error, BaseException):
        raise error
    state = outcome.get("state")
    return state if isinstance(state, LoopState) else loop.status


def _cmd_agents(args: argparse.Namespace, console: Console) -> int:
    for name, config in PRESETS.items():
        auth = " (token required)" if config.requires_auth else ""
        console.print(
            f"[bold]{name}[/bold]  {config.model}  [dim]{config.endpoint}{auth}[/dim]", soft_wrap=True
        )
    return 0


def _cmd_chat(args: argparse.Namespace, console: Console) -> int:
    try:
        config = load_config(args.agent, model=args.model, endpoint=args.endpoint)
    except ToolchatError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        return 1

    store = None if args.no_session else SessionStore(args.session)
    conversation = store.restore() if store else ConversationState()
    if len(conversation):
        console.print(f"[dim]Session restored ({len(conversation)} turns)[/dim]")

    workspace = Workspace()
    saver = HTTPSaver(HTTPClient(args.save_url, label="save")) if args.save_url else None
    registry = ToolRegistry(build_workspace_tools(workspace, saver))
    diagnostics = DiagnosticsSink()
    diagnostics.install()
    bridge = ConfirmBridge(auto_confirm=args.yes)

    loop = AgenticLoop(
        client=ModelClient(config, tools=registry.descriptors()),
        executor=ToolExecutor(registry, diagnostics, confirm=bridge.ask),
        conversation=conversation,
        observer=RichLoopObserver(console, label=config.display_name),
    )

    console.print(f"[bold]{config.display_name}[/bold] [dim]({config.model}) · /clear, /quit[/dim]")
    try:
        while True:
            text = prompt("> ")
            if text in ("/quit", "/exit"):
                return 0
            if text == "/clear":
                if confirm_prompt("Clear chat history?"):
                    loop.conversation = ConversationState()
                    if store:
                        store.clear()
                    console.print("[dim]History cleared.[/dim]")
                continue

            state = run_turn(loop, text, bridge)
            if state is LoopState.FAILED:
                console.print("[dim]Nothing was retried; send another message to continue.[/dim]")
            if store:
                store.save(loop.conversation)
    finally:
        diagnostics.uninstall()


def _real_main(argv: list[str]) -> int:
    """Real main CLI logic that handles command parsing and execution."""
    parser = argparse.ArgumentParser(
        prog="toolchat",
        description="Streaming chat with tool use",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--debug", action="store_true", help="Show debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    chat = subparsers.add_parser("chat", help="Start an interactive chat")
    chat.add_argument("--agent", help=f"Agent preset ({', '.join(PRESETS)})")
    chat.add_argument("--model", help="Override the model identifier")
    chat.add_argument("--endpoint", help="Override the backend URL")
    chat.add_argument(
        "--session", default=str(DEFAULT_SESSION_PATH), help="Session file (default: %(default)s)"
    )
    chat.add_argument("--no-session", action="store_true", help="Do not load or save the session")
    chat.add_argument("--save-url", help="Endpoint used by the commit_changes tool")
    chat.add_argument("--yes", "-y", action="store_true", help="Approve tool confirmations")

    subparsers.add_parser("agents", help="List agent presets")

    args = parser.parse_args(argv)
    configure_logging(args.debug)

    if not args.command:
        parser.print_help()
        return 0

    console = Console()
    if args.command == "agents":
        return _cmd_agents(args, console)
    return _cmd_chat(args, console)


def main() -> None:
    """Main CLI entry point with graceful interrupt handling."""
    code = graceful_main(_real_main, sys.argv[1:])
    raise SystemExit(code)


if __name__ == "__main__":
    main()
