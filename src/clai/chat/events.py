"""Closed event vocabularies for the session's two queues.

Outbound events flow from the Session Coordinator to its observer;
inbound commands flow the other way. Each direction is a fixed union of
frozen dataclasses, each tagged with a ``kind`` enum member so observers
can dispatch with a plain ``match`` or dict lookup.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import ClassVar, Union

from clai.protocols import ToolCall


class EventKind(str, enum.Enum):
    """Kinds of outbound events."""

    STREAM_STARTED = "stream_started"
    STREAM_CHUNK = "stream_chunk"
    STREAM_THINK = "stream_think"
    STREAM_ENDED = "stream_ended"
    STREAM_CANCELLED = "stream_cancelled"
    STREAM_ERRORED = "stream_errored"
    TOOL_CALL_REQUESTED = "tool_call_requested"
    TOOL_RUNNING = "tool_running"
    TOOL_OUTPUT = "tool_output"
    SYSTEM_MESSAGE = "system_message"
    COMMAND_RESULT = "command_result"


class CommandKind(str, enum.Enum):
    """Kinds of inbound commands."""

    USER_PROMPT = "user_prompt"
    PERMIT_TOOL_ONCE = "permit_tool_once"
    PERMIT_TOOL_FOR_SESSION = "permit_tool_for_session"
    DENY_TOOL = "deny_tool"
    CANCEL_STREAM = "cancel_stream"
    SHUTDOWN = "shutdown"


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StreamStarted:
    kind: ClassVar[EventKind] = EventKind.STREAM_STARTED


@dataclass(frozen=True)
class StreamChunkReceived:
    """A fragment of assistant prose, in arrival order."""

    text: str
    kind: ClassVar[EventKind] = EventKind.STREAM_CHUNK


@dataclass(frozen=True)
class StreamThink:
    """A fragment of reasoning output."""

    text: str
    kind: ClassVar[EventKind] = EventKind.STREAM_THINK


@dataclass(frozen=True)
class StreamEnded:
    """The turn settled. ``text`` is the final prose, possibly empty."""

    text: str
    kind: ClassVar[EventKind] = EventKind.STREAM_ENDED


@dataclass(frozen=True)
class StreamCancelled:
    kind: ClassVar[EventKind] = EventKind.STREAM_CANCELLED


@dataclass(frozen=True)
class StreamErrored:
    """The backend could not be reached or failed mid-stream."""

    message: str
    kind: ClassVar[EventKind] = EventKind.STREAM_ERRORED


@dataclass(frozen=True)
class ToolCallRequested:
    """The model wants a tool that is not pre-approved; a decision is needed."""

    tool_call: ToolCall
    kind: ClassVar[EventKind] = EventKind.TOOL_CALL_REQUESTED


@dataclass(frozen=True)
class ToolRunning:
    tool_call: ToolCall
    kind: ClassVar[EventKind] = EventKind.TOOL_RUNNING


@dataclass(frozen=True)
class ToolOutput:
    text: str
    tool_call: ToolCall | None = None
    kind: ClassVar[EventKind] = EventKind.TOOL_OUTPUT


@dataclass(frozen=True)
class SystemMessage:
    text: str
    kind: ClassVar[EventKind] = EventKind.SYSTEM_MESSAGE


@dataclass(frozen=True)
class CommandResult:
    """Reply to a slash command. Terminal for that turn."""

    message: str
    should_exit: bool = False
    kind: ClassVar[EventKind] = EventKind.COMMAND_RESULT


OutboundEvent = Union[
    StreamStarted,
    StreamChunkReceived,
    StreamThink,
    StreamEnded,
    StreamCancelled,
    StreamErrored,
    ToolCallRequested,
    ToolRunning,
    ToolOutput,
    SystemMessage,
    CommandResult,
]

# Exactly one of these closes every turn.
TERMINAL_EVENTS = (StreamEnded, StreamCancelled, StreamErrored, CommandResult)


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UserPrompt:
    text: str
    kind: ClassVar[CommandKind] = CommandKind.USER_PROMPT


@dataclass(frozen=True)
class PermitToolOnce:
    tool_call_id: str | None = None
    kind: ClassVar[CommandKind] = CommandKind.PERMIT_TOOL_ONCE


@dataclass(frozen=True)
class PermitToolForSession:
    tool_call_id: str | None = None
    kind: ClassVar[CommandKind] = CommandKind.PERMIT_TOOL_FOR_SESSION


@dataclass(frozen=True)
class DenyTool:
    tool_call_id: str | None = None
    kind: ClassVar[CommandKind] = CommandKind.DENY_TOOL


@dataclass(frozen=True)
class CancelStream:
    kind: ClassVar[CommandKind] = CommandKind.CANCEL_STREAM


@dataclass(frozen=True)
class Shutdown:
    kind: ClassVar[CommandKind] = CommandKind.SHUTDOWN


InboundCommand = Union[
    UserPrompt,
    PermitToolOnce,
    PermitToolForSession,
    DenyTool,
    CancelStream,
    Shutdown,
]
