"""Shared test fixtures for clai.

Provides a scripted model provider, a small workspace on disk, and
helpers that drive a running Session through its event queues.
"""

from __future__ import annotations

import queue
import threading

import pytest

from clai.chat.events import TERMINAL_EVENTS, ToolCallRequested, UserPrompt
from clai.chat.session import Session
from clai.llm.channel import ChunkChannel
from clai.models.config import load_config
from clai.protocols import TextChunk, ToolCall, ToolCallChunk
from clai.toolkit.definitions import get_builtin_tools
from clai.toolkit.gateway import ToolGateway
from clai.toolkit.permissions import PermissionState
from clai.toolkit.registry import ToolRegistry

# Script item that blocks the producer until the stream is cancelled.
HOLD = object()


class ScriptedProvider:
    """A ModelProvider that replays one scripted reply per call.

    Each script is a list of chunks. A ``HOLD`` item parks the producer
    until the stream is cancelled; an exception instance closes the
    channel with that error (a mid-stream failure). A script that is
    itself an exception instance is raised from ``stream_message``.
    """

    def __init__(self, scripts=(), model: str = "scripted") -> None:
        self.scripts = list(scripts)
        self.calls: list[list] = []
        self.tools: list = []
        self.closed = False
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    def set_model(self, model: str) -> None:
        self._model = model

    def set_tools(self, tools) -> None:
        self.tools = list(tools)

    def close(self) -> None:
        self.closed = True

    def stream_message(self, messages, cancel: threading.Event) -> ChunkChannel:
        self.calls.append(list(messages))
        script = self.scripts.pop(0) if self.scripts else [TextChunk("(no script)")]
        if isinstance(script, BaseException):
            raise script
        channel = ChunkChannel(maxsize=4)
        threading.Thread(
            target=self._feed, args=(script, channel, cancel), daemon=True
        ).start()
        return channel

    @staticmethod
    def _feed(script, channel: ChunkChannel, cancel: threading.Event) -> None:
        error = None
        for item in script:
            if item is HOLD:
                cancel.wait(5)
                break
            if isinstance(item, BaseException):
                error = item
                break
            if not channel.send(item, cancel):
                break
        channel.close(error)


# ------------------------------------------------------------------
# Shared test helpers
# ------------------------------------------------------------------

def text(value: str) -> TextChunk:
    return TextChunk(value)


def tool(name: str, arguments: dict | None = None, call_id: str = "call_1") -> ToolCallChunk:
    return ToolCallChunk(ToolCall(id=call_id, name=name, arguments=arguments or {}))


def make_session(provider, working_dir, *, allowed=(), **kwargs) -> Session:
    """Create and start a Session over the built-in tools."""
    gateway = ToolGateway(ToolRegistry(get_builtin_tools()))
    session = Session(
        provider,
        gateway,
        working_dir=working_dir,
        permissions=PermissionState(allowed),
        poll_interval=0.01,
        **kwargs,
    )
    session.start()
    return session


def run_turn(session: Session, prompt: str, decide=None, on_event=None, timeout: float = 5.0):
    """Send a prompt and collect its events. See ``drain``."""
    session.commands.put_nowait(UserPrompt(prompt))
    return drain(session, decide=decide, on_event=on_event, timeout=timeout)


def drain(session: Session, decide=None, on_event=None, timeout: float = 5.0):
    """Collect events up to the next terminal event.

    Args:
        decide: ``tool_call -> command`` answering each ToolCallRequested.
        on_event: Called with ``(event, events_so_far)`` for every event.

    Returns:
        The list of events, terminal event last.
    """
    events = []
    while True:
        try:
            event = session.events.get(timeout=timeout)
        except queue.Empty:
            raise AssertionError(f"Turn did not finish; events so far: {events}") from None
        events.append(event)
        if on_event is not None:
            on_event(event, events)
        if isinstance(event, ToolCallRequested) and decide is not None:
            session.commands.put_nowait(decide(event.tool_call))
        if isinstance(event, TERMINAL_EVENTS):
            return events


def of_type(events, cls) -> list:
    return [e for e in events if isinstance(e, cls)]


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------

@pytest.fixture
def workspace(tmp_path):
    """A small project directory with an excluded folder and a log file."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "hello.txt").write_text("hello world\n")
    (root / "src").mkdir()
    (root / "src" / "main.py").write_text("print('hi')\n")
    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / "node_modules" / "pkg" / "index.js").write_text("module.exports = 1;\n")
    (root / "debug.log").write_text("noise\n")
    return root


@pytest.fixture
def config(tmp_path):
    """A config isolated from the user's home directory and environment."""
    path = tmp_path / "clai.yaml"
    path.write_text(
        f"session_dir: {tmp_path / 'state'}\n"
        f"plugin_dir: {tmp_path / 'plugins'}\n"
    )
    return load_config(path, environ={})


@pytest.fixture
def gateway(config) -> ToolGateway:
    return ToolGateway(ToolRegistry(get_builtin_tools()), config)


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def session(provider, workspace):
    """A started session with nothing pre-approved."""
    s = make_session(provider, workspace)
    yield s
    s.close()
