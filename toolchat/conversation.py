"""
Conversation state and the agentic loop.

The loop appends the user's turn, streams an assistant turn, runs any tool
invocations it contains in order, appends one correlated result turn, and
asks the model again until it answers without tools.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from enum import Enum
import json
import logging
import threading
from typing import TYPE_CHECKING, Any

from ._exceptions import ConversationBusyError, RequestCancelled, StreamError, ToolchatError
from ._types import ToolInvocation, ToolResult, Turn
from .assembler import ContentBlockAssembler
from .streaming import CancelToken

if TYPE_CHECKING:
    from .client import ModelClient
    from .tools import ToolExecutor

logger = logging.getLogger(__name__)

# Upper bound on model requests for a single user message.
DEFAULT_MAX_ROUNDS = 25


class LoopState(str, Enum):
    """Agentic loop states."""

    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    EXECUTING_TOOLS = "executing_tools"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ConversationState:
    """Ordered, append-only turn history."""

    def __init__(self, turns: Iterable[Turn] | None = None) -> None:
        self._turns: list[Turn] = []
        for turn in turns or ():
            self.append(turn)

    @classmethod
    def from_messages(cls, messages: Iterable[dict[str, Any]]) -> ConversationState:
        state = cls()
        state.hydrate(messages)
        return state

    def hydrate(self, messages: Iterable[dict[str, Any]]) -> None:
        """Load persisted turns into an empty conversation."""
        if self._turns:
            raise ValueError("Cannot hydrate a conversation that already has turns")
        for message in messages:
            self.append(Turn.from_dict(message))

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)

    @property
    def turns(self) -> list[Turn]:
        """Copy of the history."""
        return list(self._turns)

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def pending_invocations(self) -> list[ToolInvocation]:
        """Tool invocations of the final assistant turn that have no result turn."""
        last = self.last
        if last is None or last.role != "assistant":
            return []
        return last.tool_invocations

    def to_messages(self) -> list[dict[str, Any]]:
        return [turn.to_dict() for turn in self._turns]

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(list(self._turns))


class LoopObserver:
    """Receives loop progress. All hooks are optional no-ops.

    ``on_text`` gets the accumulated text of the block currently streaming.
    """

    def on_state(self, state: LoopState) -> None:
        pass

    def on_text(self, text: str) -> None:
        pass

    def on_assistant_turn(self, turn: Turn) -> None:
        pass

    def on_tool_start(self, invocation: ToolInvocation) -> None:
        pass

    def on_tool_result(self, invocation: ToolInvocation, result: ToolResult) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass

    def on_cancelled(self) -> None:
        pass


class AgenticLoop:
    """
    Drives request → stream → tools → request cycles for one conversation.

    Only one cycle runs at a time. ``cancel()`` may be called from another
    thread; it aborts the in-flight read and nothing further is appended.
    """

    def __init__(
        self,
        client: ModelClient,
        executor: ToolExecutor,
        conversation: ConversationState | None = None,
        observer: LoopObserver | None = None,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
    ) -> None:
        self.client = client
        self.executor = executor
        self.conversation = conversation if conversation is not None else ConversationState()
        self.observer = observer or LoopObserver()
        self.max_rounds = max_rounds
        self.last_error: str | None = None
        self._status = LoopState.IDLE
        self._lock = threading.Lock()
        self._cancel: CancelToken | None = None

    @property
    def status(self) -> LoopState:
        return self._status

    @property
    def busy(self) -> bool:
        return self._status not in (LoopState.IDLE, LoopState.CANCELLED, LoopState.FAILED)

    def _set_status(self, status: LoopState) -> None:
        self._status = status
        logger.debug("Loop state -> %s", status.value)
        self.observer.on_state(status)

    def cancel(self) -> None:
        """Cancel the running cycle, if any."""
        token = self._cancel
        if token is not None:
            logger.debug("Cancelling in-flight request")
            token.cancel()

    def submit(self, text: str) -> LoopState:
        """
        Append a user turn and run the loop until the model stops calling tools.

        Returns:
            The final state: IDLE on success, CANCELLED or FAILED otherwise

        Raises:
            ConversationBusyError: a cycle is already running
        """
        with self._lock:
            if self.busy:
                raise ConversationBusyError("A response is still in progress")
            token = CancelToken()
            self._cancel = token
            self._status = LoopState.REQUESTING

        self.last_error = None
        try:
            self._close_dangling_invocations()
            self.conversation.append(Turn(role="user", content=text))
            self._run(token)
        except RequestCancelled:
            logger.info("Request cancelled")
            self._set_status(LoopState.CANCELLED)
            self.observer.on_cancelled()
        except ToolchatError as e:
            logger.warning("Loop failed: %s", e.message)
            self.last_error = e.message
            self._set_status(LoopState.FAILED)
            self.observer.on_error(e.message)
        except BaseException:
            self._set_status(LoopState.FAILED)
            raise
        finally:
            self._cancel = None
        return self._status

    def _close_dangling_invocations(self) -> None:
        pending = self.conversation.pending_invocations()
        if not pending:
            return
        payload = json.dumps({"error": "cancelled"})
        results = [ToolResult(tool_use_id=invocation.id, content=payload) for invocation in pending]
        self.conversation.append(Turn(role="user", content=list(results)))

    def _run(self, token: CancelToken) -> None:
        rounds = 0
        while True:
            rounds += 1
            if rounds > self.max_rounds:
                raise ToolchatError(
                    f"Stopped after {self.max_rounds} model requests without a final answer"
                )

            self._set_status(LoopState.REQUESTING)
            events = self.client.stream(self.conversation.turns, token)

            self._set_status(LoopState.STREAMING)
            assembler = ContentBlockAssembler(on_text=self.observer.on_text)
            try:
                blocks = assembler.assemble(events)
            finally:
                close = getattr(events, "close", None)
                if close is not None:
                    close()
            token.raise_if_cancelled()

            turn = Turn(role="assistant", content=list(blocks))
            if not turn.tool_invocations and not turn.text:
                raise StreamError("Empty response")
            self.conversation.append(turn)
            self.observer.on_assistant_turn(turn)

            invocations = turn.tool_invocations
            if not invocations:
                self._set_status(LoopState.IDLE)
                return

            self._set_status(LoopState.EXECUTING_TOOLS)
            results: list[ToolResult] = []
            for invocation in invocations:
                token.raise_if_cancelled()
                self.observer.on_tool_start(invocation)
                result = self.executor.invoke(invocation)
                self.observer.on_tool_result(invocation, result)
                results.append(result)
            token.raise_if_cancelled()

            self.conversation.append(Turn(role="user", content=list(results)))
