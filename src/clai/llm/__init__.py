"""Model backend layer: chunk classification, channels and providers."""

from clai.llm.channel import ChannelClosed, ChunkChannel
from clai.llm.classifier import classify
from clai.llm.client import OpenAIClient, iter_deltas
from clai.llm.errors import (
    LLMAuthError,
    LLMClientError,
    LLMConfigError,
    LLMResponseError,
    LLMTransportError,
)
from clai.llm.protocols import ModelProvider

__all__ = [
    "ChannelClosed",
    "ChunkChannel",
    "LLMAuthError",
    "LLMClientError",
    "LLMConfigError",
    "LLMResponseError",
    "LLMTransportError",
    "ModelProvider",
    "OpenAIClient",
    "classify",
    "iter_deltas",
]
