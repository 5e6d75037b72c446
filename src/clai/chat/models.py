"""State enums for the stream driver and the session coordinator."""

from __future__ import annotations

import enum


class StreamState(str, enum.Enum):
    """Lifecycle of one Stream Driver.

    RUNNING -> TOOL_REQUESTED -> DRAINING -> DONE, or RUNNING -> DRAINING
    -> DONE when the provider closes the channel or the stream is cancelled.
    """

    PENDING = "pending"
    RUNNING = "running"
    TOOL_REQUESTED = "tool_requested"
    DRAINING = "draining"
    DONE = "done"


class SessionState(str, enum.Enum):
    """Lifecycle of the Session Coordinator."""

    IDLE = "idle"
    STREAMING = "streaming"
    AWAITING_PERMISSION = "awaiting_permission"
    EXECUTING_TOOL = "executing_tool"
    CLOSED = "closed"


class PermissionDecision(str, enum.Enum):
    """Answer to a ToolCallRequested event."""

    ONCE = "once"
    SESSION = "session"
    DENY = "deny"
    CANCEL = "cancel"
