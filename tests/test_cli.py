"""CLI tests for clai via Click's CliRunner.

The model provider is replaced by a ScriptedProvider and every path
(config, history, logs, plugins) lives under tmp_path.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from click.testing import CliRunner

from clai.cli import cli
from clai.cli import runtime
from clai.cli.formatting import truncate_output
from clai.engine.tokens import ApproximateTokenCounter
from clai.llm.errors import LLMTransportError
from clai.models.config import load_config
from clai.protocols import Message
from clai.storage.history import SqliteHistoryStore
from tests.conftest import ScriptedProvider, text, tool


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def runner():
    """Create a Click test runner."""
    return CliRunner()


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "clai.yaml"
    path.write_text(
        f"session_dir: {tmp_path / 'state'}\n"
        f"plugin_dir: {tmp_path / 'plugins'}\n"
        "model: test-model\n"
    )
    return path


@pytest.fixture
def provider(monkeypatch):
    """Scripted provider installed in place of the HTTP client."""
    scripted = ScriptedProvider(model="test-model")
    monkeypatch.setattr(runtime, "OpenAIClient", SimpleNamespace(from_config=lambda config: scripted))
    monkeypatch.setattr(runtime, "make_token_counter", lambda model: ApproximateTokenCounter())
    return scripted


def _invoke(runner, config_path, *args, input=None):
    return runner.invoke(cli, ["--config", str(config_path), *args], input=input, env={"CLAI_MODEL": None})


# ---------------------------------------------------------------------------
# ask
# ---------------------------------------------------------------------------

class TestAsk:
    def test_prints_reply(self, runner, config_path, provider, workspace):
        provider.scripts.append([text("The answer "), text("is 4.")])

        result = _invoke(runner, config_path, "ask", "-C", str(workspace), "what", "is", "2+2?")

        assert result.exit_code == 0, result.output
        assert "The answer is 4." in result.output
        assert provider.calls[0][0] == Message.user("what is 2+2?")

    def test_denies_by_default(self, runner, config_path, provider, workspace):
        provider.scripts.extend([
            [tool("write_file", {"path": "out.txt", "content": "x"})],
            [text("Okay, I will not.")],
        ])

        result = _invoke(runner, config_path, "ask", "-C", str(workspace), "write a file")

        assert result.exit_code == 0, result.output
        assert "denying write_file" in result.output
        assert not (workspace / "out.txt").exists()

    def test_yes_allows_tools(self, runner, config_path, provider, workspace):
        provider.scripts.extend([
            [tool("write_file", {"path": "out.txt", "content": "x"})],
            [text("Done.")],
        ])

        result = _invoke(runner, config_path, "ask", "--yes", "-C", str(workspace), "write a file")

        assert result.exit_code == 0, result.output
        assert (workspace / "out.txt").read_text() == "x"
        assert "Done." in result.output

    def test_allow_option(self, runner, config_path, provider, workspace):
        provider.scripts.extend([[tool("read_file", {"path": "hello.txt"})], [text("ok")]])

        result = _invoke(
            runner, config_path, "ask", "--allow", "read_file", "-C", str(workspace), "read"
        )

        assert result.exit_code == 0, result.output
        assert "allowing" not in result.output
        assert "denying" not in result.output
        assert "> // hello.txt" in result.output

    def test_transport_error_exits_nonzero(self, runner, config_path, provider, workspace):
        provider.scripts.append(LLMTransportError("Cannot reach http://localhost:11434/v1"))

        result = _invoke(runner, config_path, "ask", "-C", str(workspace), "hi")

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "Cannot reach" in result.output

    def test_history_saved(self, runner, config_path, provider, workspace, tmp_path):
        provider.scripts.append([text("saved reply")])

        _invoke(runner, config_path, "ask", "-C", str(workspace), "remember me")

        store = SqliteHistoryStore.open(tmp_path / "state" / "history.db")
        try:
            (summary,) = store.list_sessions()
            assert summary.preview == "remember me"
            assert summary.message_count == 2
        finally:
            store.close()


# ---------------------------------------------------------------------------
# chat
# ---------------------------------------------------------------------------

class TestChat:
    def test_prompt_then_exit(self, runner, config_path, provider, workspace):
        provider.scripts.append([text("Hi there!")])

        result = _invoke(runner, config_path, "chat", "-C", str(workspace), input="hello\n/exit\n")

        assert result.exit_code == 0, result.output
        assert "Hi there!" in result.output
        assert "Goodbye!" in result.output
        assert len(provider.calls) == 1

    def test_eof_exits(self, runner, config_path, provider, workspace):
        result = _invoke(runner, config_path, "chat", "-C", str(workspace), input="")

        assert result.exit_code == 0, result.output
        assert "saved" in result.output
        assert provider.calls == []

    def test_permission_prompt(self, runner, config_path, provider, workspace):
        provider.scripts.extend([[tool("mkdir", {"path": "made"})], [text("Created.")]])

        result = _invoke(
            runner, config_path, "chat", "-C", str(workspace), input="make a dir\no\n/q\n"
        )

        assert result.exit_code == 0, result.output
        assert "Permission required" in result.output
        assert (workspace / "made").is_dir()
        assert "Created." in result.output

    def test_resume_session(self, runner, config_path, provider, workspace, tmp_path):
        store = SqliteHistoryStore.open(tmp_path / "state" / "history.db")
        store.save("old123", [Message.user("earlier"), Message.assistant("reply")])
        store.close()
        provider.scripts.append([text("welcome back")])

        result = _invoke(
            runner, config_path, "chat", "-s", "old123", "-C", str(workspace), input="again\n"
        )

        assert result.exit_code == 0, result.output
        assert "session old123" in result.output
        assert [m.content for m in provider.calls[0]] == ["earlier", "reply", "again"]


# ---------------------------------------------------------------------------
# tools / sessions / config
# ---------------------------------------------------------------------------

class TestInfoCommands:
    def test_tools(self, runner, config_path):
        result = _invoke(runner, config_path, "tools")

        assert result.exit_code == 0, result.output
        for name in ("list_files", "read_file", "write_file", "grep"):
            assert name in result.output

    def test_sessions_empty(self, runner, config_path):
        result = _invoke(runner, config_path, "sessions")

        assert result.exit_code == 0
        assert "No saved sessions." in result.output

    def test_sessions_list_and_delete(self, runner, config_path, tmp_path):
        store = SqliteHistoryStore.open(tmp_path / "state" / "history.db")
        store.save("abc123", [Message.user("how do I exit vim")])
        store.close()

        listed = _invoke(runner, config_path, "sessions")
        deleted = _invoke(runner, config_path, "sessions", "--delete", "abc123")
        missing = _invoke(runner, config_path, "sessions", "--delete", "abc123")

        assert "abc123" in listed.output
        assert "how do I exit vim" in listed.output
        assert deleted.exit_code == 0
        assert missing.exit_code == 1

    def test_config_show_masks_key(self, runner, tmp_path):
        path = tmp_path / "openai.yaml"
        path.write_text(
            "provider: openai\napi_key: sk-1234567890abcd\n"
            f"session_dir: {tmp_path / 'state'}\n"
        )

        result = _invoke(runner, path, "config", "show")

        assert result.exit_code == 0, result.output
        assert "sk-1...abcd" in result.output
        assert "sk-1234567890abcd" not in result.output

    def test_model_flag_overrides(self, runner, config_path):
        result = runner.invoke(cli, ["--config", str(config_path), "--model", "flagged", "config", "show"])

        assert result.exit_code == 0, result.output
        assert "flagged" in result.output

    def test_config_init(self, runner, tmp_path):
        target = tmp_path / "new.yaml"

        first = runner.invoke(cli, ["config", "init", "--path", str(target)])
        second = runner.invoke(cli, ["config", "init", "--path", str(target)])

        assert first.exit_code == 0
        assert load_config(target, environ={}).provider == "ollama"
        assert second.exit_code == 1
        assert "already exists" in second.output

    def test_invalid_config(self, runner, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("provider: custom\n")

        result = _invoke(runner, path, "tools")

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "base_url" in result.output


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

class TestFormatting:
    def test_truncate_output(self):
        assert truncate_output("a\nb") == "> a\n> b"
        assert truncate_output("1\n2\n3\n4\n5") == "> 1\n> 2\n> 3\n> [...] (2 more lines)"
        assert truncate_output("") == "> "
