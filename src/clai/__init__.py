"""clai: a terminal coding assistant.

Streams replies from an OpenAI-compatible model and lets it use local
tools, each gated by the user's permission and confined to the working
directory.
"""

__version__ = "0.1.0"

from clai.chat import Session, Stream
from clai.exceptions import (
    ClaiError,
    ConfigError,
    HistoryError,
    HistoryIntegrityError,
    SandboxViolationError,
    SessionError,
    ToolError,
)
from clai.llm import ModelProvider, OpenAIClient
from clai.models.config import ClaiConfig, load_config
from clai.protocols import (
    Message,
    ReasoningChunk,
    Role,
    StreamChunk,
    TextChunk,
    TokenCounter,
    ToolCall,
    ToolCallChunk,
)
from clai.toolkit import PermissionState, ToolGateway, ToolRegistry

__all__ = [
    "__version__",
    "ClaiConfig",
    "ClaiError",
    "ConfigError",
    "HistoryError",
    "HistoryIntegrityError",
    "Message",
    "ModelProvider",
    "OpenAIClient",
    "PermissionState",
    "ReasoningChunk",
    "Role",
    "SandboxViolationError",
    "Session",
    "SessionError",
    "Stream",
    "StreamChunk",
    "TextChunk",
    "TokenCounter",
    "ToolCall",
    "ToolCallChunk",
    "ToolError",
    "ToolGateway",
    "ToolRegistry",
    "load_config",
]
