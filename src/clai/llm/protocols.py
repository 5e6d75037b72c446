"""ModelProvider protocol: the model backend boundary.

Any backend (OpenAI-compatible SSE, a scripted fake in tests) adapts into
this shape. The Stream Driver only ever sees a ChunkChannel.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    import threading

    from clai.llm.channel import ChunkChannel
    from clai.protocols import Message
    from clai.toolkit.models import ToolDefinition


@runtime_checkable
class ModelProvider(Protocol):
    """Protocol for streaming model backends.

    Any object with these methods satisfies the protocol. Use
    ``isinstance(obj, ModelProvider)`` for runtime checks.
    """

    @property
    def model(self) -> str:
        """Name of the model requests are sent to."""
        ...

    def stream_message(
        self, messages: list[Message], cancel: threading.Event
    ) -> ChunkChannel:
        """Open a streaming call for the full conversation.

        Must raise (an ``LLMTransportError``) if the call cannot be
        opened. Once a channel is returned, later failures close it with
        the error instead. Producers must stop when ``cancel`` is set.
        """
        ...

    def set_tools(self, tools: list[ToolDefinition]) -> None:
        """Advertise the tools the model may call."""
        ...

    def set_model(self, model: str) -> None:
        """Switch the model used by subsequent calls."""
        ...

    def close(self) -> None:
        """Release any held resources."""
        ...
