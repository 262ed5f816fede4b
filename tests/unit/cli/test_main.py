"""Tests for the CLI entry point and the loop thread hand-off."""

import json
import threading

import pytest
import responses

from tests.utils.mocks import ScriptedClient, text_stream, tool_stream
from toolchat.builtin_tools import Workspace, build_workspace_tools
from toolchat.cli import main as main_module
from toolchat.cli.main import ConfirmBridge, _real_main, run_turn
from toolchat.conversation import AgenticLoop, LoopState
from toolchat.session import SessionStore
from toolchat.tools import ToolExecutor, ToolRegistry


def _scripted_inputs(monkeypatch, *lines):
    inputs = iter(lines)
    monkeypatch.setattr(main_module, "prompt", lambda label: next(inputs))


class TestConfirmBridge:
    def test_auto_confirm(self):
        assert ConfirmBridge(auto_confirm=True).ask("Commit?") is True

    def test_answered_from_main_thread(self, monkeypatch):
        asked = []
        monkeypatch.setattr(main_module, "confirm_prompt", lambda message: asked.append(message) or True)
        bridge = ConfirmBridge()
        answers = []
        worker = threading.Thread(target=lambda: answers.append(bridge.ask("Commit workspace changes?")))
        worker.start()
        while worker.is_alive():
            bridge.answer_pending()
            worker.join(0.01)
        assert answers == [True]
        assert asked == ["Commit workspace changes?"]

    def test_interrupted_prompt_still_answers(self, monkeypatch):
        def interrupted(message):
            raise KeyboardInterrupt

        monkeypatch.setattr(main_module, "confirm_prompt", interrupted)
        bridge = ConfirmBridge()
        answers = []
        worker = threading.Thread(target=lambda: answers.append(bridge.ask("Commit?")))
        worker.start()
        interrupts = 0
        while worker.is_alive():
            try:
                bridge.answer_pending()
            except KeyboardInterrupt:
                interrupts += 1
            worker.join(0.01)
        assert interrupts == 1
        assert answers == [False]

    def test_decline_pending(self, monkeypatch):
        monkeypatch.setattr(main_module, "confirm_prompt", lambda message: True)
        bridge = ConfirmBridge()
        answers = []
        worker = threading.Thread(target=lambda: answers.append(bridge.ask("Commit?")))
        worker.start()
        while worker.is_alive():
            bridge.answer_pending(decline=True)
            worker.join(0.01)
        assert answers == [False]


class TestRunTurn:
    def test_confirmation_gated_tool(self, monkeypatch):
        monkeypatch.setattr(main_module, "confirm_prompt", lambda message: False)
        workspace = Workspace()
        saved = []
        registry = ToolRegistry(build_workspace_tools(workspace, saver=saved.append))
        bridge = ConfirmBridge()
        loop = AgenticLoop(
            ScriptedClient(tool_stream("t1", "commit_changes", '{"message": "wip"}'), text_stream("Not saved.")),
            ToolExecutor(registry, confirm=bridge.ask),
        )

        assert run_turn(loop, "save it", bridge) is LoopState.IDLE
        result = json.loads(loop.conversation.turns[2].tool_results[0].content)
        assert result["ok"] is False
        assert result["reason"] == "cancelled"
        assert saved == []

    def test_unexpected_error_reraised(self):
        class Boom(Exception):
            pass

        loop = AgenticLoop(ScriptedClient(Boom("bug")), ToolExecutor(ToolRegistry()))
        with pytest.raises(Boom):
            run_turn(loop, "hi", ConfirmBridge())
        assert loop.status is LoopState.FAILED


class TestMain:
    def test_agents_command(self, monkeypatch, capsys):
        monkeypatch.setenv("COLUMNS", "40")
        assert _real_main(["agents"]) == 0
        out = capsys.readouterr().out
        assert "claude-haiku" in out
        assert "token required" in out

    def test_no_command_prints_help(self, capsys):
        assert _real_main([]) == 0
        assert "chat" in capsys.readouterr().out

    def test_chat_needs_token_for_github_models(self, capsys):
        assert _real_main(["chat", "--agent", "gpt", "--no-session"]) == 1
        assert "needs a token" in capsys.readouterr().out

    @responses.activate
    def test_chat_session_round_trip(self, monkeypatch, tmp_path, capsys):
        endpoint = "https://llm.test/v1/messages"
        responses.add(responses.POST, endpoint, body=text_stream("Hi there"))
        session = tmp_path / "session.json"
        _scripted_inputs(monkeypatch, "hello", "/quit")

        code = _real_main(["chat", "--endpoint", endpoint, "--session", str(session)])

        assert code == 0
        assert "Hi there" in capsys.readouterr().out
        turns = SessionStore(session).load()
        assert [t.role for t in turns] == ["user", "assistant"]
        assert turns[1].text == "Hi there"

    @responses.activate
    def test_chat_failure_keeps_session_usable(self, monkeypatch, tmp_path, capsys):
        endpoint = "https://llm.test/v1/messages"
        responses.add(responses.POST, endpoint, body="overloaded", status=529)
        _scripted_inputs(monkeypatch, "hello", "/exit")

        code = _real_main(["chat", "--endpoint", endpoint, "--no-session"])

        assert code == 0
        out = capsys.readouterr().out
        assert "529: overloaded" in out
        assert len(responses.calls) == 1
