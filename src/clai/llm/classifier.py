"""Chunk classifier: maps one provider-normalized delta to a StreamChunk.

A delta is a mapping shaped like an OpenAI streaming ``choices[0].delta``.
Priority is tool call, then reasoning, then prose; anything else is
dropped. Only the first tool call in a delta is honoured, since a tool
call always ends the stream that carries it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from clai.protocols import ReasoningChunk, TextChunk, ToolCall, ToolCallChunk

if TYPE_CHECKING:
    from collections.abc import Mapping

    from clai.protocols import StreamChunk

# Field names used by OpenAI-compatible servers for thinking output
# (ollama and vLLM: "reasoning", DeepSeek: "reasoning_content").
REASONING_KEYS = ("reasoning", "reasoning_content", "thinking")


def classify(delta: Mapping | None) -> StreamChunk | None:
    """Classify a single streaming delta.

    Args:
        delta: The provider delta. ``None`` and non-mapping values are
            treated as empty.

    Returns:
        ToolCallChunk, ReasoningChunk or TextChunk, or None when the delta
        carries nothing worth forwarding.
    """
    if not delta or not hasattr(delta, "get"):
        return None

    tool_calls = delta.get("tool_calls")
    if tool_calls:
        first = tool_calls[0]
        if isinstance(first, ToolCall):
            return ToolCallChunk(first)
        if isinstance(first, dict) and (first.get("function") or {}).get("name"):
            return ToolCallChunk(ToolCall.from_openai(first))

    for key in REASONING_KEYS:
        reasoning = delta.get(key)
        if isinstance(reasoning, str) and reasoning:
            return ReasoningChunk(reasoning)

    content = delta.get("content")
    if isinstance(content, str) and content:
        return TextChunk(content)
    return None
