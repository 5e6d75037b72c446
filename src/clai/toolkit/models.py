"""Toolkit data models for clai tool definitions.

Frozen dataclasses for tool definitions, the execution context handed to
every handler, and the structured result returned by the gateway.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from clai.toolkit.sandbox import is_excluded, resolve_in_workdir

if TYPE_CHECKING:
    from collections.abc import Callable

    from clai.models.config import ClaiConfig


@dataclass(frozen=True)
class ToolContext:
    """Everything a tool handler may rely on besides its arguments.

    Attributes:
        working_dir: Sandbox root; every path argument resolves inside it.
        timeout: Deadline in seconds for subprocess-based tools.
        exclude_patterns: Paths matching these read as nonexistent.
        max_file_size: Files larger than this are not read.
        config: The full configuration, forwarded to plugins.
    """

    working_dir: Path
    timeout: float = 30.0
    exclude_patterns: tuple[str, ...] = ()
    max_file_size: int = 1024 * 1024
    config: ClaiConfig | None = None

    @classmethod
    def from_config(cls, config: ClaiConfig, working_dir: str | Path) -> ToolContext:
        return cls(
            working_dir=Path(working_dir).resolve(),
            timeout=config.tool_timeout,
            exclude_patterns=tuple(config.exclude_patterns),
            max_file_size=config.max_file_size,
            config=config,
        )

    def resolve(self, path: str | None) -> Path:
        """Resolve a model-supplied path inside the working directory.

        Raises:
            SandboxViolationError: If the path escapes the working directory.
        """
        return resolve_in_workdir(path or ".", self.working_dir)

    def excluded(self, path: Path) -> bool:
        return is_excluded(path, self.exclude_patterns, self.working_dir)

    def relative(self, path: Path) -> str:
        """Display form of ``path`` relative to the working directory."""
        try:
            rel = path.relative_to(self.working_dir)
        except ValueError:
            return str(path)
        return rel.as_posix() or "."


@dataclass(frozen=True)
class ToolDefinition:
    """A single tool definition for LLM consumption.

    Attributes:
        name: Tool name (e.g. "read_file").
        description: When and why the model should use this tool.
        parameters: JSON Schema dict describing tool parameters.
        handler: ``(context, arguments) -> text`` executor.
    """

    name: str
    description: str
    parameters: dict
    handler: Callable[[ToolContext, dict], str]

    def to_openai(self) -> dict:
        """Convert to OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolStatus(str, enum.Enum):
    """Outcome category of a gateway call."""

    OK = "ok"
    ERROR = "error"
    UNKNOWN_TOOL = "unknown_tool"
    PERMISSION_REQUIRED = "permission_required"
    SANDBOX_VIOLATION = "sandbox_violation"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ToolResult:
    """Structured result from the tool gateway.

    Attributes:
        tool_name: Name of the requested tool.
        status: Outcome category.
        output: Tool output on success.
        error: Human-readable failure description otherwise.
        available_tools: Registered names, filled for UNKNOWN_TOOL.
    """

    tool_name: str
    status: ToolStatus
    output: str = ""
    error: str = ""
    available_tools: tuple[str, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return self.status is ToolStatus.OK

    @property
    def requires_permission(self) -> bool:
        return self.status is ToolStatus.PERMISSION_REQUIRED

    @property
    def text(self) -> str:
        """The text to feed back to the model as the tool result."""
        if self.success:
            return self.output
        return f"ERROR: {self.error}"
