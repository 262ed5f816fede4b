"""
Tests for conversation state and the agentic loop.
"""

import json
import threading

import pytest

from tests.utils.mocks import (
    ScriptedClient,
    message_stream,
    sse_frame,
    text_block_frames,
    text_stream,
    tool_block_frames,
    tool_stream,
)
from toolchat._exceptions import ConversationBusyError, StreamError, TransportError
from toolchat._types import TextBlock, ToolInvocation, ToolResult, Turn
from toolchat.builtin_tools import Workspace, build_workspace_tools
from toolchat.conversation import AgenticLoop, ConversationState, LoopObserver, LoopState
from toolchat.streaming import ProtocolEvent, parse_sse
from toolchat.tools import Tool, ToolExecutor, ToolRegistry


class RecordingObserver(LoopObserver):
    def __init__(self):
        self.states = []
        self.texts = []
        self.tool_results = []
        self.errors = []
        self.cancelled = 0

    def on_state(self, state):
        self.states.append(state)

    def on_text(self, text):
        self.texts.append(text)

    def on_tool_result(self, invocation, result):
        self.tool_results.append((invocation.id, json.loads(result.content)))

    def on_error(self, message):
        self.errors.append(message)

    def on_cancelled(self):
        self.cancelled += 1


def _ping_registry(calls=None):
    def ping(args):
        if calls is not None:
            calls.append(args)
        return {"ok": True}

    return ToolRegistry([Tool(name="ping", description="ping", handler=ping)])


def _loop(client, registry=None, **kwargs):
    observer = kwargs.pop("observer", RecordingObserver())
    executor = ToolExecutor(registry or _ping_registry())
    return AgenticLoop(client, executor, observer=observer, **kwargs)


def assert_results_match_invocations(turns):
    """Every tool-using assistant turn is followed by exactly one matching result turn."""
    for i, turn in enumerate(turns):
        invocations = turn.tool_invocations if turn.role == "assistant" else []
        if not invocations:
            continue
        follower = turns[i + 1]
        assert follower.role == "user"
        ids = [result.tool_use_id for result in follower.tool_results]
        assert len(ids) == len(invocations)
        assert len(set(ids)) == len(ids)
        assert set(ids) == {inv.id for inv in invocations}


class TestConversationState:
    def test_append_only_history(self):
        state = ConversationState()
        state.append(Turn("user", "hi"))
        turns = state.turns
        turns.append(Turn("user", "not stored"))
        assert len(state) == 1
        assert state.last == Turn("user", "hi")

    def test_hydrate_from_messages(self):
        messages = [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": [{"type": "tool_use", "id": "t1", "name": "ping", "input": {}}]},
            {"role": "user", "content": [{"type": "tool_result", "tool_use_id": "t1", "content": "{}"}]},
            {"role": "assistant", "content": [{"type": "text", "text": "done"}]},
        ]
        state = ConversationState.from_messages(messages)
        assert [t.role for t in state] == ["user", "assistant", "user", "assistant"]
        assert state.turns[1].tool_invocations == [ToolInvocation("t1", "ping", {})]
        assert state.to_messages() == messages

    def test_hydrate_requires_empty_state(self):
        state = ConversationState([Turn("user", "hi")])
        with pytest.raises(ValueError):
            state.hydrate([{"role": "user", "content": "again"}])

    def test_pending_invocations(self):
        state = ConversationState([Turn("user", "hi"), Turn("assistant", [ToolInvocation("t1", "ping")])])
        assert [inv.id for inv in state.pending_invocations()] == ["t1"]
        state.append(Turn("user", [ToolResult("t1", "{}")]))
        assert state.pending_invocations() == []


class TestScenarios:
    def test_text_only_turn(self):
        """Scenario A: a single text block ends the loop."""
        loop = _loop(ScriptedClient(text_stream("Hello")))
        assert loop.submit("hi") is LoopState.IDLE
        assert loop.conversation.turns == [
            Turn("user", "hi"),
            Turn("assistant", [TextBlock("Hello")]),
        ]
        assert loop.status is LoopState.IDLE

    def test_tool_round_trip(self):
        """Scenario B: tool call, result turn, then a final text answer."""
        calls = []
        client = ScriptedClient(tool_stream("t1", "ping"), text_stream("done"))
        loop = _loop(client, registry=_ping_registry(calls))

        assert loop.submit("ping it") is LoopState.IDLE

        turns = loop.conversation.turns
        assert [t.role for t in turns] == ["user", "assistant", "user", "assistant"]
        assert turns[1].content == [ToolInvocation("t1", "ping", {})]
        (result,) = turns[2].tool_results
        assert result.tool_use_id == "t1"
        assert json.loads(result.content)["ok"] is True
        assert turns[3].content == [TextBlock("done")]
        assert calls == [{}]
        assert_results_match_invocations(turns)

    def test_second_request_carries_full_history(self):
        client = ScriptedClient(tool_stream("t1", "ping"), text_stream("done"))
        _loop(client).submit("ping it")
        first, second = client.requests
        assert first == [Turn("user", "ping it")]
        assert [t.role for t in second] == ["user", "assistant", "user"]
        assert second[2].is_tool_result_turn

    def test_unknown_tool_fed_back(self):
        """Scenario C: unknown tool becomes an error result, loop continues."""
        client = ScriptedClient(tool_stream("t1", "nope"), text_stream("sorry"))
        loop = _loop(client)
        assert loop.submit("try") is LoopState.IDLE
        payload = json.loads(loop.conversation.turns[2].tool_results[0].content)
        assert payload["error"] == "Unknown tool: nope"
        assert loop.conversation.last.text == "sorry"

    def test_state_transitions(self):
        observer = RecordingObserver()
        client = ScriptedClient(tool_stream("t1", "ping"), text_stream("done"))
        _loop(client, observer=observer).submit("go")
        assert observer.states == [
            LoopState.REQUESTING,
            LoopState.STREAMING,
            LoopState.EXECUTING_TOOLS,
            LoopState.REQUESTING,
            LoopState.STREAMING,
            LoopState.IDLE,
        ]

    def test_live_text_updates(self):
        observer = RecordingObserver()
        body = message_stream(text_block_frames(0, "He", "llo"))
        _loop(ScriptedClient(body), observer=observer).submit("hi")
        assert observer.texts == ["He", "Hello"]


class TestToolOrdering:
    def test_multiple_tools_run_sequentially_in_order(self):
        workspace = Workspace()
        registry = ToolRegistry(build_workspace_tools(workspace))
        body = message_stream(
            tool_block_frames(0, "a", "set_layout", '{"layout": "split"}'),
            tool_block_frames(1, "b", "render_chart", '{"kind": "pie", "data": [1, 2]}'),
            tool_block_frames(2, "c", "highlight", '{"start_line": 2}'),
            stop_reason="tool_use",
        )
        observer = RecordingObserver()
        loop = _loop(ScriptedClient(body, text_stream("ok")), registry=registry, observer=observer)
        loop.submit("set things up")

        assert workspace.history == ["layout:split", "chart:pie", "highlight:2-2"]
        assert [rid for rid, _ in observer.tool_results] == ["a", "b", "c"]
        results = loop.conversation.turns[2].tool_results
        assert [r.tool_use_id for r in results] == ["a", "b", "c"]
        assert_results_match_invocations(loop.conversation.turns)


class TestAmbientErrors:
    def test_page_errors_reach_result_turn(self, diagnostics):
        diagnostics.install()
        workspace = Workspace()
        registry = ToolRegistry(build_workspace_tools(workspace))
        executor = ToolExecutor(registry, diagnostics)
        client = ScriptedClient(
            tool_stream("t1", "render_chart", '{"kind": "donut", "data": [1]}'), text_stream("Drew a bar chart.")
        )
        loop = AgenticLoop(client, executor)

        assert loop.submit("chart it") is LoopState.IDLE
        payload = json.loads(loop.conversation.turns[2].tool_results[0].content)
        assert payload["kind"] == "bar"
        assert len(payload["_page_errors"]) == 1
        assert "donut" in payload["_page_errors"][0]

    def test_injected_sink_is_used(self, diagnostics):
        assert ToolExecutor(ToolRegistry(), diagnostics).diagnostics is diagnostics


class TestFailures:
    def test_transport_error_fails_without_retry(self):
        observer = RecordingObserver()
        client = ScriptedClient(TransportError("claude 500: boom", status_code=500))
        loop = _loop(client, observer=observer)
        assert loop.submit("hi") is LoopState.FAILED
        assert observer.errors == ["claude 500: boom"]
        assert loop.last_error == "claude 500: boom"
        assert loop.conversation.turns == [Turn("user", "hi")]
        assert len(client.requests) == 1

    def test_stream_error_discards_partial_turn(self):
        def broken(turns, cancel):
            good = text_stream("partial").encode()

            def source():
                yield good[: len(good) // 2]
                raise ConnectionResetError("reset")

            return parse_sse(source(), cancel)

        loop = _loop(ScriptedClient(broken))
        assert loop.submit("hi") is LoopState.FAILED
        assert loop.conversation.turns == [Turn("user", "hi")]

    def test_server_error_event(self):
        def errored(turns, cancel):
            return [ProtocolEvent("error", {"type": "error", "error": {"message": "Overloaded"}})]

        observer = RecordingObserver()
        loop = _loop(ScriptedClient(errored), observer=observer)
        assert loop.submit("hi") is LoopState.FAILED
        assert observer.errors == ["Overloaded"]

    def test_can_submit_again_after_failure(self):
        client = ScriptedClient(StreamError("cut"), text_stream("recovered"))
        loop = _loop(client)
        assert loop.submit("one") is LoopState.FAILED
        assert loop.submit("two") is LoopState.IDLE
        assert [t.role for t in loop.conversation] == ["user", "user", "assistant"]

    def test_empty_response_not_recorded(self):
        observer = RecordingObserver()
        client = ScriptedClient(message_stream(), text_stream("ok"))
        loop = _loop(client, observer=observer)

        assert loop.submit("hi") is LoopState.FAILED
        assert observer.errors == ["Empty response"]
        assert loop.conversation.turns == [Turn("user", "hi")]

        assert loop.submit("again") is LoopState.IDLE
        assert [t.role for t in client.requests[1]] == ["user", "user"]

    def test_thinking_only_response_is_empty(self):
        thinking = [
            sse_frame("content_block_start", {"index": 0, "content_block": {"type": "thinking"}}),
            sse_frame("content_block_stop", {"index": 0}),
        ]
        loop = _loop(ScriptedClient(message_stream(thinking)))
        assert loop.submit("hi") is LoopState.FAILED
        assert len(loop.conversation) == 1

    def test_round_limit(self):
        client = ScriptedClient(*[tool_stream(f"t{i}", "ping") for i in range(3)])
        loop = _loop(client, max_rounds=2)
        assert loop.submit("loop forever") is LoopState.FAILED
        assert "2 model requests" in loop.last_error
        assert len(client.requests) == 2
        assert_results_match_invocations(loop.conversation.turns)


class TestCancellation:
    def test_cancel_mid_stream_appends_nothing(self):
        loop_ref = {}

        def cancelled_midway(turns, cancel):
            body = text_stream("Hello there").encode()

            def source():
                yield body[:40]
                loop_ref["loop"].cancel()
                yield body[40:]

            return parse_sse(source(), cancel)

        observer = RecordingObserver()
        loop = _loop(ScriptedClient(cancelled_midway), observer=observer)
        loop_ref["loop"] = loop
        assert loop.submit("hi") is LoopState.CANCELLED
        assert loop.conversation.turns == [Turn("user", "hi")]
        assert observer.cancelled == 1
        assert observer.errors == []

    def test_cancel_during_tools_discards_results(self):
        loop_ref = {}

        def first(args):
            loop_ref["loop"].cancel()
            return {"ok": True}

        second_calls = []
        registry = ToolRegistry(
            [
                Tool(name="first", description="", handler=first),
                Tool(name="second", description="", handler=lambda args: second_calls.append(args) or {}),
            ]
        )
        body = message_stream(
            tool_block_frames(0, "a", "first"), tool_block_frames(1, "b", "second"), stop_reason="tool_use"
        )
        loop = _loop(ScriptedClient(body, text_stream("next")), registry=registry)
        loop_ref["loop"] = loop

        assert loop.submit("go") is LoopState.CANCELLED
        turns = loop.conversation.turns
        assert [t.role for t in turns] == ["user", "assistant"]
        assert second_calls == []

        # The dangling invocations are closed before the next user turn.
        assert loop.submit("again") is LoopState.IDLE
        turns = loop.conversation.turns
        assert [t.role for t in turns] == ["user", "assistant", "user", "user", "assistant"]
        assert [json.loads(r.content) for r in turns[2].tool_results] == [{"error": "cancelled"}] * 2
        assert_results_match_invocations(turns)

    def test_cancel_when_idle_is_noop(self):
        loop = _loop(ScriptedClient(text_stream("x")))
        loop.cancel()
        assert loop.submit("hi") is LoopState.IDLE


class TestConcurrencyGuard:
    def test_submit_while_running_rejected(self):
        started = threading.Event()
        release = threading.Event()

        def slow(turns, cancel):
            started.set()
            release.wait(5)
            return parse_sse([text_stream("late").encode()], cancel)

        loop = _loop(ScriptedClient(slow))
        worker = threading.Thread(target=loop.submit, args=("first",))
        worker.start()
        try:
            assert started.wait(5)
            assert loop.busy
            with pytest.raises(ConversationBusyError):
                loop.submit("second")
        finally:
            release.set()
            worker.join(5)
        assert loop.status is LoopState.IDLE
        assert [t.role for t in loop.conversation] == ["user", "assistant"]
