"""Tests for prompt enhancement and reply text helpers."""

from __future__ import annotations

from clai.chat.text import (
    enhance_message,
    parse_textual_tool_call,
    strip_think_blocks,
    tool_request_text,
)
from clai.protocols import ToolCall
from clai.toolkit.models import ToolContext


class TestEnhanceMessage:
    def test_no_reference_unchanged(self, workspace):
        ctx = ToolContext(working_dir=workspace)

        assert enhance_message("plain prompt", ctx) == "plain prompt"

    def test_attaches_file(self, workspace):
        ctx = ToolContext(working_dir=workspace)

        out = enhance_message("what does @src/main.py do?", ctx)

        assert out == (
            "what does src/main.py do?"
            "\n\nYou can see the content of @src/main.py here:\n```\nprint('hi')\n\n```\n"
        )

    def test_repeated_reference_attached_once(self, workspace):
        ctx = ToolContext(working_dir=workspace)

        out = enhance_message("@hello.txt vs @hello.txt", ctx)

        assert out.count("You can see the content of @hello.txt") == 1
        assert out.startswith("hello.txt vs hello.txt")

    def test_missing_outside_and_excluded_left_alone(self, config, workspace):
        ctx = ToolContext.from_config(config, workspace)
        prompt = "see @missing.txt and @../secret and @debug.log, ping @someone"

        assert enhance_message(prompt, ctx) == prompt

    def test_size_limit(self, workspace):
        ctx = ToolContext(working_dir=workspace, max_file_size=3)

        assert enhance_message("read @hello.txt", ctx) == "read @hello.txt"


class TestThinkBlocks:
    def test_strip(self):
        assert strip_think_blocks("<think>a\nb</think>\nAnswer") == "Answer"

    def test_unterminated(self):
        assert strip_think_blocks("Answer <think>still going") == "Answer"

    def test_multiple(self):
        assert strip_think_blocks("<think>1</think>A<think>2</think>B") == "AB"

    def test_no_blocks(self):
        assert strip_think_blocks("  plain  ") == "plain"


class TestTextualToolCall:
    def test_round_trip_with_placeholder(self):
        call = ToolCall(id="c1", name="read_file", arguments={"path": "a.txt"})

        parsed = parse_textual_tool_call(tool_request_text(call))

        assert parsed.name == "read_file"
        assert parsed.arguments == {"path": "a.txt"}
        assert parsed.id.startswith("text_")

    def test_placeholder_text(self):
        call = ToolCall(id="c1", name="mkdir", arguments={"path": "d"})

        assert tool_request_text(call) == 'Request to use tool: `mkdir` with args: {"path": "d"}'

    def test_empty_args(self):
        assert parse_textual_tool_call("Request to use tool: `list_files` with args: {}").arguments == {}

    def test_prose_is_not_a_call(self):
        assert parse_textual_tool_call("I would use `read_file` here.") is None

    def test_bad_arguments(self):
        assert parse_textual_tool_call("Request to use tool: `x` with args: {nope") is None
        assert parse_textual_tool_call('Request to use tool: `x` with args: ["a"]') is None
