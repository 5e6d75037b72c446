"""Prompt and reply text helpers.

- ``enhance_message`` inlines ``@path`` file references into a prompt.
- ``strip_think_blocks`` removes ``<think>...</think>`` sections that some
  models emit inline instead of on a separate reasoning channel.
- ``parse_textual_tool_call`` recognises the placeholder phrasing a model
  sometimes copies back as prose instead of using structured tool calls.
  It is a best-effort fallback only.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from typing import TYPE_CHECKING

from clai.exceptions import SandboxViolationError
from clai.protocols import ToolCall

if TYPE_CHECKING:
    from clai.toolkit.models import ToolContext

logger = logging.getLogger(__name__)

_FILE_REFERENCE = re.compile(r"@([./A-Za-z0-9_-]+)")
_THINK_BLOCK = re.compile(r"<think>.*?(?:</think>|$)", re.DOTALL)
_TEXTUAL_TOOL_CALL = re.compile(
    r"^Request to use tool: `([^`]+)` with args: (.*)$", re.DOTALL
)


def tool_request_text(tool_call: ToolCall) -> str:
    """Placeholder assistant content recorded for a structured tool call."""
    return f"Request to use tool: `{tool_call.name}` with args: {tool_call.raw_arguments}"


def strip_think_blocks(content: str) -> str:
    """Remove inline reasoning blocks, including an unterminated trailing one."""
    return _THINK_BLOCK.sub("", content).strip()


def parse_textual_tool_call(content: str) -> ToolCall | None:
    """Recover a tool call a model wrote out as prose.

    Returns:
        A ToolCall with a synthesized id, or None if ``content`` does not
        look like a tool request or its arguments are not a JSON object.
    """
    match = _TEXTUAL_TOOL_CALL.match(content.strip())
    if match is None:
        return None
    name, raw = match.group(1).strip(), match.group(2).strip()
    try:
        arguments = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        logger.debug("Textual tool call for %s has unparsable args: %.80s", name, raw)
        return None
    if not isinstance(arguments, dict):
        return None
    return ToolCall(id=f"text_{uuid.uuid4().hex[:12]}", name=name, arguments=arguments)


def enhance_message(message: str, context: ToolContext) -> str:
    """Append the contents of every ``@path`` the prompt mentions.

    References are rewritten to the bare path. Paths outside the working
    directory, excluded, missing, or over the size limit are left as typed.
    """
    if "@" not in message:
        return message

    attachments: list[str] = []
    seen: set[str] = set()
    for match in _FILE_REFERENCE.finditer(message):
        reference = match.group(0)
        if reference in seen:
            continue
        seen.add(reference)
        try:
            path = context.resolve(match.group(1))
        except SandboxViolationError as exc:
            logger.info("Not attaching %s: %s", reference, exc)
            continue
        if context.excluded(path) or not path.is_file():
            continue
        if path.stat().st_size > context.max_file_size:
            logger.info("Not attaching %s: larger than max_file_size", reference)
            continue
        try:
            data = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.warning("Failed to read %s: %s", path, exc)
            continue
        message = message.replace(reference, match.group(1))
        attachments.append(
            f"\n\nYou can see the content of {reference} here:\n```\n{data}\n```\n"
        )
    return message + "".join(attachments)
