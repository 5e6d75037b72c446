"""Built-in OpenAI-compatible streaming client over httpx.

Speaks the chat-completions server-sent-events protocol used by OpenAI,
ollama and most self-hosted servers. Each call returns a ChunkChannel fed
by a short-lived reader thread; the reader classifies every delta before
handing it over, so consumers only ever see StreamChunk values. A watcher
thread closes the response as soon as the call is cancelled, so a stalled
backend never pins the reader.

Failed calls are never retried.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from typing import TYPE_CHECKING, Any

import httpx

from clai.llm.channel import ChunkChannel
from clai.llm.classifier import classify
from clai.llm.errors import (
    LLMAuthError,
    LLMConfigError,
    LLMResponseError,
    LLMTransportError,
)
from clai.protocols import ToolCallChunk

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from clai.models.config import ClaiConfig
    from clai.protocols import Message
    from clai.toolkit.models import ToolDefinition

logger = logging.getLogger(__name__)

_AUTH_ERROR_STATUS_CODES = {401, 403}
_CANCEL_POLL_SECONDS = 0.05


def _merge_tool_fragments(pending: dict[int, dict], fragments: list[dict]) -> None:
    """Fold streamed tool-call fragments into ``pending``, keyed by index."""
    for fragment in fragments:
        index = fragment.get("index", 0)
        slot = pending.setdefault(
            index,
            {"id": "", "type": "function", "function": {"name": "", "arguments": ""}},
        )
        if fragment.get("id"):
            slot["id"] = fragment["id"]
        function = fragment.get("function") or {}
        if function.get("name"):
            slot["function"]["name"] = function["name"]
        arguments = function.get("arguments")
        if isinstance(arguments, str):
            slot["function"]["arguments"] += arguments
        elif isinstance(arguments, dict):
            slot["function"]["arguments"] = json.dumps(arguments)


def _assemble_tool_calls(pending: dict[int, dict]) -> list[dict]:
    calls = []
    for index in sorted(pending):
        call = pending[index]
        if not call["id"]:
            call["id"] = f"call_{uuid.uuid4().hex[:12]}"
        calls.append(call)
    return calls


def iter_deltas(
    lines: Iterable[str], cancel: threading.Event | None = None
) -> Iterator[dict]:
    """Turn raw SSE lines into provider-normalized deltas.

    Text and reasoning deltas are yielded as they arrive. Tool-call
    fragments are assembled by index and yielded as one complete
    ``{"tool_calls": [...]}`` delta once the choice reports a
    ``finish_reason`` or the stream ends.

    Raises:
        LLMResponseError: If the server sends an in-band error event.
    """
    pending: dict[int, dict] = {}
    for raw in lines:
        if cancel is not None and cancel.is_set():
            return
        line = raw.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            break
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed stream event: %.120s", data)
            continue
        if not isinstance(event, dict):
            continue
        if event.get("error"):
            error = event["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise LLMResponseError(f"Stream error from backend: {message}")

        choices = event.get("choices") or []
        if not choices:
            continue
        choice = choices[0]
        delta = dict(choice.get("delta") or {})
        fragments = delta.pop("tool_calls", None)
        if fragments:
            _merge_tool_fragments(pending, fragments)
        if delta:
            yield delta
        if pending and choice.get("finish_reason"):
            yield {"tool_calls": _assemble_tool_calls(pending)}
            pending = {}

    if pending:
        yield {"tool_calls": _assemble_tool_calls(pending)}


class OpenAIClient:
    """Streaming httpx client for OpenAI-compatible chat completions.

    Implements the ModelProvider protocol. The system prompt is prepended
    to every request; the advertised tools are sent in function-calling
    format.

    Usage::

        with OpenAIClient(base_url="http://localhost:11434/v1") as client:
            channel = client.stream_message([Message.user("hi")], threading.Event())
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str = "gpt-oss:latest",
        *,
        system_prompt: str = "",
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout: float = 120.0,
        require_api_key: bool = False,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: API key. Falls back to the OPENAI_API_KEY env var.
            base_url: API base URL. Falls back to https://api.openai.com/v1.
            model: Model name for requests.
            system_prompt: Prepended as a system message to every request.
            max_tokens: Maximum tokens to generate, or None for the server default.
            temperature: Sampling temperature, or None for the server default.
            timeout: Read/connect timeout in seconds.
            require_api_key: Raise if no API key can be found.

        Raises:
            LLMConfigError: If ``require_api_key`` and no key is available.
        """
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        if require_api_key and not self._api_key:
            raise LLMConfigError(
                "No API key provided. Set api_key in the config file or the "
                "OPENAI_API_KEY environment variable."
            )
        self._base_url = (base_url or "https://api.openai.com/v1").rstrip("/")
        self._model = model
        self._system_prompt = system_prompt
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._tools: list[ToolDefinition] = []
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        self._client = httpx.Client(timeout=timeout, headers=headers)

    @classmethod
    def from_config(cls, config: ClaiConfig) -> OpenAIClient:
        """Build a client from the resolved configuration."""
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            model=config.model,
            system_prompt=config.system_prompt,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            require_api_key=config.provider == "openai",
        )

    # ------------------------------------------------------------------
    # ModelProvider
    # ------------------------------------------------------------------

    @property
    def model(self) -> str:
        return self._model

    def set_model(self, model: str) -> None:
        logger.info("Switching model %s -> %s", self._model, model)
        self._model = model

    def set_tools(self, tools: list[ToolDefinition]) -> None:
        self._tools = list(tools)

    def build_payload(self, messages: list[Message]) -> dict[str, Any]:
        """Build the chat-completions request body for ``messages``."""
        wire: list[dict] = []
        if self._system_prompt:
            wire.append({"role": "system", "content": self._system_prompt})
        wire.extend(m.to_openai() for m in messages)
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": wire,
            "stream": True,
        }
        if self._max_tokens is not None:
            payload["max_tokens"] = self._max_tokens
        if self._temperature is not None:
            payload["temperature"] = self._temperature
        if self._tools:
            payload["tools"] = [t.to_openai() for t in self._tools]
        return payload

    def stream_message(
        self, messages: list[Message], cancel: threading.Event
    ) -> ChunkChannel:
        """Open a streaming completion and return its chunk channel.

        Raises:
            LLMAuthError: On 401/403.
            LLMTransportError: If the backend is unreachable or answers
                with any other non-200 status.
        """
        url = f"{self._base_url}/chat/completions"
        request = self._client.build_request("POST", url, json=self.build_payload(messages))
        try:
            response = self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise LLMTransportError(f"Cannot reach {url}: {exc}") from exc

        if response.status_code != 200:
            try:
                body = response.read().decode("utf-8", errors="replace")
            finally:
                response.close()
            if response.status_code in _AUTH_ERROR_STATUS_CODES:
                raise LLMAuthError(
                    f"Authentication failed: HTTP {response.status_code} - {body}",
                    status_code=response.status_code,
                )
            raise LLMTransportError(
                f"API error (status {response.status_code}): {body}",
                status_code=response.status_code,
            )

        channel = ChunkChannel()
        reader = threading.Thread(
            target=self._pump,
            args=(response, channel, cancel),
            name="clai-stream-reader",
            daemon=True,
        )
        reader.start()
        threading.Thread(
            target=self._close_on_cancel,
            args=(response, channel, cancel),
            name="clai-stream-watcher",
            daemon=True,
        ).start()
        return channel

    @staticmethod
    def _close_on_cancel(
        response: httpx.Response,
        channel: ChunkChannel,
        cancel: threading.Event,
    ) -> None:
        """Close the response once cancelled, unblocking a stalled read."""
        while not cancel.wait(_CANCEL_POLL_SECONDS):
            if channel.closed:
                return
        if not channel.closed:
            response.close()

    def _pump(
        self,
        response: httpx.Response,
        channel: ChunkChannel,
        cancel: threading.Event,
    ) -> None:
        """Reader thread body: SSE lines -> deltas -> chunks -> channel."""
        error: BaseException | None = None
        try:
            for delta in iter_deltas(response.iter_lines(), cancel):
                chunk = classify(delta)
                if chunk is None:
                    continue
                if not channel.send(chunk, cancel):
                    break
                if isinstance(chunk, ToolCallChunk):
                    break
        except (httpx.HTTPError, httpx.StreamError) as exc:
            if cancel.is_set():
                logger.debug("Stream closed after cancellation: %s", exc)
            else:
                logger.warning("Stream interrupted: %s", exc)
                error = LLMTransportError(f"Stream interrupted: {exc}")
        except LLMResponseError as exc:
            logger.warning("%s", exc)
            error = exc
        finally:
            response.close()
            channel.close(error)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> OpenAIClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
