"""Token counting implementations for clai.

Provides TiktokenCounter (production use) and ApproximateTokenCounter
(offline fallback and tests). Both implement the TokenCounter protocol
from protocols.py. Counts are estimates for display; nothing is budgeted
against them.
"""

from __future__ import annotations

import json


def _message_strings(message: dict) -> list[str]:
    """The text fields of a wire message that the model actually reads."""
    parts = [v for v in message.values() if isinstance(v, str)]
    for tool_call in message.get("tool_calls") or []:
        function = tool_call.get("function") or {}
        parts.append(function.get("name", ""))
        arguments = function.get("arguments", "")
        parts.append(arguments if isinstance(arguments, str) else json.dumps(arguments))
    return parts


class TiktokenCounter:
    """Token counter using tiktoken (OpenAI's tokenizer).

    Falls back to o200k_base encoding if the model is unknown, which is
    the usual case for ollama model names.

    Implements the TokenCounter protocol.
    """

    def __init__(self, model: str = "gpt-4o", encoding_name: str | None = None) -> None:
        import tiktoken

        if encoding_name is not None:
            self._enc = tiktoken.get_encoding(encoding_name)
        else:
            try:
                self._enc = tiktoken.encoding_for_model(model)
            except KeyError:
                self._enc = tiktoken.get_encoding("o200k_base")

        self._encoding_name = self._enc.name

    @property
    def encoding_name(self) -> str:
        """Name of the tiktoken encoding being used."""
        return self._encoding_name

    def count_text(self, text: str) -> int:
        if not text:
            return 0
        return len(self._enc.encode(text))

    def count_messages(self, messages: list[dict]) -> int:
        """Count tokens in wire-format messages including overhead.

        Uses the OpenAI cookbook formula: 3 tokens per message, plus 3
        for the response primer.
        """
        if not messages:
            return 0
        total = 0
        for message in messages:
            total += 3
            for part in _message_strings(message):
                total += len(self._enc.encode(part))
        return total + 3


class ApproximateTokenCounter:
    """Estimates roughly four characters per token.

    Used when no tokenizer is available, e.g. tiktoken cannot fetch its
    encoding files offline.

    Implements the TokenCounter protocol.
    """

    def __init__(self, chars_per_token: int = 4) -> None:
        self._chars_per_token = chars_per_token

    def count_text(self, text: str) -> int:
        if not text:
            return 0
        return max(1, len(text) // self._chars_per_token)

    def count_messages(self, messages: list[dict]) -> int:
        if not messages:
            return 0
        total = 0
        for message in messages:
            total += 3 + sum(self.count_text(p) for p in _message_strings(message))
        return total + 3
