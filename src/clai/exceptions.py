"""Clai exception hierarchy.

All clai-specific exceptions inherit from ClaiError.
"""


class ClaiError(Exception):
    """Base exception for all clai errors."""


class ConfigError(ClaiError):
    """Raised when configuration is missing or invalid."""


class SandboxViolationError(ClaiError):
    """Raised when a tool path argument escapes the working directory.

    Attributes:
        path: The path as requested by the model.
        working_dir: The directory the path must stay inside.
    """

    def __init__(self, path: str, working_dir: str) -> None:
        self.path = path
        self.working_dir = working_dir
        super().__init__(
            f"Path '{path}' is outside the working directory {working_dir}"
        )


class ToolError(ClaiError):
    """Raised by a tool handler for an expected, user-facing failure."""


class PluginError(ToolError):
    """Raised when an external tool executable misbehaves."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Plugin {path}: {reason}")


class HistoryError(ClaiError):
    """Raised when conversation history cannot be persisted or loaded."""


class HistoryIntegrityError(ClaiError):
    """Raised when a tool-result message does not answer a prior tool call.

    Attributes:
        tool_call_id: The orphaned tool-call id.
    """

    def __init__(self, tool_call_id: str | None) -> None:
        self.tool_call_id = tool_call_id
        super().__init__(
            f"Tool result {tool_call_id!r} does not match any preceding "
            "assistant tool call"
        )


class SessionError(ClaiError):
    """Raised when the session is used in an invalid state."""


class UnknownCommandError(ClaiError):
    """Raised when a slash command is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown command: /{name}. Type /help for commands.")
