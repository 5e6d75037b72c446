"""Conversation layer: the stream driver and the session coordinator."""

from clai.chat.events import (
    TERMINAL_EVENTS,
    CancelStream,
    CommandResult,
    DenyTool,
    PermitToolForSession,
    PermitToolOnce,
    Shutdown,
    StreamCancelled,
    StreamChunkReceived,
    StreamEnded,
    StreamErrored,
    StreamStarted,
    StreamThink,
    SystemMessage,
    ToolCallRequested,
    ToolOutput,
    ToolRunning,
    UserPrompt,
)
from clai.chat.models import PermissionDecision, SessionState, StreamState
from clai.chat.session import Session
from clai.chat.stream import NullStreamObserver, Stream, StreamObserver

__all__ = [
    "TERMINAL_EVENTS",
    "CancelStream",
    "CommandResult",
    "DenyTool",
    "NullStreamObserver",
    "PermissionDecision",
    "PermitToolForSession",
    "PermitToolOnce",
    "Session",
    "SessionState",
    "Shutdown",
    "Stream",
    "StreamCancelled",
    "StreamChunkReceived",
    "StreamEnded",
    "StreamErrored",
    "StreamObserver",
    "StreamStarted",
    "StreamState",
    "StreamThink",
    "SystemMessage",
    "ToolCallRequested",
    "ToolOutput",
    "ToolRunning",
    "UserPrompt",
]
