"""Protocol definitions and core value types for clai.

Defines the conversation data model (Role, Message, ToolCall), the
streaming chunk union produced by the classifier (TextChunk,
ReasoningChunk, ToolCallChunk), and the pluggable TokenCounter protocol.

No SQLAlchemy or httpx imports allowed in this module -- pure domain types.
"""

from __future__ import annotations

import enum
import json as _json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, TypedDict, Union, runtime_checkable

from clai.exceptions import HistoryIntegrityError

if TYPE_CHECKING:
    from collections.abc import Iterable


class Role(str, enum.Enum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


class ToolCallDict(TypedDict):
    """Canonical storage format for a single tool call."""

    id: str
    name: str
    arguments: dict


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    Arguments are always a parsed dict. The provider's JSON string is
    parsed at ingestion time; an unparsable payload is kept verbatim
    under the ``"_raw"`` key so the gateway can report it back.
    """

    id: str
    name: str
    arguments: dict

    @classmethod
    def from_openai(cls, tc: dict) -> ToolCall:
        """Parse from OpenAI/compatible format."""
        function = tc.get("function") or {}
        raw_args = function.get("arguments") or "{}"
        try:
            arguments = _json.loads(raw_args) if isinstance(raw_args, str) else raw_args
        except (_json.JSONDecodeError, TypeError):
            arguments = {"_raw": raw_args}
        if not isinstance(arguments, dict):
            arguments = {"_raw": raw_args}
        return cls(
            id=tc.get("id") or "",
            name=function.get("name") or "",
            arguments=arguments,
        )

    @classmethod
    def from_dict(cls, d: ToolCallDict | dict[str, object]) -> ToolCall:
        """Reconstruct from a stored dict."""
        return cls(
            id=d["id"],
            name=d["name"],
            arguments=d.get("arguments", {}),
        )

    @property
    def raw_arguments(self) -> str:
        """The arguments as the JSON text the model produced."""
        if set(self.arguments) == {"_raw"}:
            return str(self.arguments["_raw"])
        return _json.dumps(self.arguments)

    def to_openai(self) -> dict:
        """Serialize to OpenAI wire format."""
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": self.raw_arguments,
            },
        }

    def to_dict(self) -> ToolCallDict:
        """Serialize for storage."""
        return {
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
        }


@dataclass(frozen=True)
class Message:
    """A single message in the conversation history.

    Attributes:
        role: Who authored the message.
        content: Message text.
        tool_call_id: For tool-result messages, the id of the call answered.
        tool_call: For assistant messages that request a tool.
    """

    role: Role
    content: str
    tool_call_id: str | None = None
    tool_call: ToolCall | None = None

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, tool_call: ToolCall | None = None) -> Message:
        return cls(role=Role.ASSISTANT, content=content, tool_call=tool_call)

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> Message:
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=Role.SYSTEM, content=content)

    def to_openai(self) -> dict:
        """Convert to an OpenAI chat-completions message dict."""
        d: dict = {"role": self.role.value, "content": self.content}
        if self.tool_call is not None:
            d["tool_calls"] = [self.tool_call.to_openai()]
        if self.tool_call_id is not None:
            d["tool_call_id"] = self.tool_call_id
        return d

    def to_dict(self) -> dict:
        """Serialize for storage."""
        return {
            "role": self.role.value,
            "content": self.content,
            "tool_call_id": self.tool_call_id,
            "tool_call": self.tool_call.to_dict() if self.tool_call else None,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Message:
        """Reconstruct from a stored dict."""
        tool_call = d.get("tool_call")
        return cls(
            role=Role(d["role"]),
            content=d.get("content") or "",
            tool_call_id=d.get("tool_call_id"),
            tool_call=ToolCall.from_dict(tool_call) if tool_call else None,
        )


def validate_history(messages: Iterable[Message]) -> None:
    """Check that every tool-result message answers a preceding tool call.

    Raises:
        HistoryIntegrityError: On the first orphaned tool-result message.
    """
    requested: set[str] = set()
    for message in messages:
        if message.role is Role.ASSISTANT and message.tool_call is not None:
            requested.add(message.tool_call.id)
        elif message.role is Role.TOOL and message.tool_call_id not in requested:
            raise HistoryIntegrityError(message.tool_call_id)


# ---------------------------------------------------------------------------
# Stream chunks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextChunk:
    """A fragment of assistant prose."""

    text: str


@dataclass(frozen=True)
class ReasoningChunk:
    """A fragment of the model's reasoning ("thinking") output."""

    text: str


@dataclass(frozen=True)
class ToolCallChunk:
    """A complete tool call. Terminal for the stream that produced it."""

    tool_call: ToolCall


StreamChunk = Union[TextChunk, ReasoningChunk, ToolCallChunk]


@runtime_checkable
class TokenCounter(Protocol):
    """Protocol for token counting implementations."""

    def count_text(self, text: str) -> int:
        """Count tokens in a plain text string."""
        ...

    def count_messages(self, messages: list[dict]) -> int:
        """Count tokens in a list of message dicts, including overhead."""
        ...
