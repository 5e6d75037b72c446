"""LLM-specific error hierarchy.

All LLM errors inherit from ClaiError for consistent exception handling.
"""

from __future__ import annotations

from clai.exceptions import ClaiError


class LLMClientError(ClaiError):
    """Base for all LLM client errors."""


class LLMConfigError(LLMClientError):
    """Missing or invalid LLM configuration (e.g., no API key)."""


class LLMTransportError(LLMClientError):
    """Backend unreachable, or answered with a non-200 status.

    Attributes:
        status_code: HTTP status code, or None for connection failures.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class LLMAuthError(LLMTransportError):
    """Authentication failed (401/403)."""


class LLMResponseError(LLMClientError):
    """Unexpected payload in the event stream."""
