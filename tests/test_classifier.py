"""Tests for the streaming delta classifier."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from clai.llm.classifier import REASONING_KEYS, classify
from clai.protocols import ReasoningChunk, TextChunk, ToolCall, ToolCallChunk


def _tool_delta(name: str = "read_file", arguments: str = '{"path": "a.txt"}') -> dict:
    return {
        "tool_calls": [
            {"id": "call_9", "type": "function", "function": {"name": name, "arguments": arguments}}
        ]
    }


class TestClassify:
    def test_content_is_text(self):
        assert classify({"content": "hello"}) == TextChunk("hello")

    @pytest.mark.parametrize("key", REASONING_KEYS)
    def test_reasoning_keys(self, key):
        assert classify({key: "pondering"}) == ReasoningChunk("pondering")

    def test_tool_call_dict(self):
        chunk = classify(_tool_delta())

        assert chunk == ToolCallChunk(ToolCall("call_9", "read_file", {"path": "a.txt"}))

    def test_tool_call_object(self):
        call = ToolCall("x", "list_files", {})

        assert classify({"tool_calls": [call]}) == ToolCallChunk(call)

    def test_tool_call_wins_over_text_and_reasoning(self):
        delta = {**_tool_delta(), "content": "text", "reasoning": "why"}

        assert isinstance(classify(delta), ToolCallChunk)

    def test_reasoning_wins_over_text(self):
        assert classify({"reasoning": "r", "content": "c"}) == ReasoningChunk("r")

    def test_only_first_tool_call_is_used(self):
        delta = _tool_delta("first")
        delta["tool_calls"].append(_tool_delta("second")["tool_calls"][0])

        assert classify(delta).tool_call.name == "first"

    def test_nameless_tool_call_falls_through(self):
        delta = {"tool_calls": [{"function": {"arguments": "{}"}}], "content": "hi"}

        assert classify(delta) == TextChunk("hi")

    def test_malformed_arguments_kept_raw(self):
        chunk = classify(_tool_delta(arguments="{not json"))

        assert chunk.tool_call.arguments == {"_raw": "{not json"}

    @pytest.mark.parametrize(
        "delta",
        [None, {}, {"content": ""}, {"content": None}, {"role": "assistant"}, {"tool_calls": []}],
    )
    def test_empty_deltas_are_dropped(self, delta):
        assert classify(delta) is None

    @given(st.text(min_size=1))
    def test_any_nonempty_content_is_text(self, content):
        assert classify({"content": content}) == TextChunk(content)
