"""Stream Driver: owns one outstanding model call.

A Stream opens a provider call, then runs a receive loop that forwards
every classified chunk to its observer and folds it into the text and
reasoning accumulators. The loop ends when the provider closes the
channel, when a tool call arrives (a tool call always ends the turn), or
when ``close()`` is called from another thread.

``wait()`` is the synchronization point: ``content``, ``reasoning`` and
``tool_call`` are only meaningful once it has returned.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Protocol

from clai.chat.models import StreamState
from clai.exceptions import SessionError
from clai.llm.channel import ChannelClosed
from clai.protocols import ReasoningChunk, TextChunk, ToolCallChunk

if TYPE_CHECKING:
    from collections.abc import Sequence

    from clai.llm.channel import ChunkChannel
    from clai.llm.protocols import ModelProvider
    from clai.protocols import Message, StreamChunk, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.05


class StreamObserver(Protocol):
    """Receives a Stream's lifecycle notifications, on the stream's thread."""

    def on_start(self) -> None: ...

    def on_chunk(self, chunk: StreamChunk) -> None: ...

    def on_end(self, content: str) -> None: ...


class NullStreamObserver:
    """Observer that ignores everything."""

    def on_start(self) -> None:
        pass

    def on_chunk(self, chunk: StreamChunk) -> None:
        pass

    def on_end(self, content: str) -> None:
        pass


class Stream:
    """Live handle for a single model call.

    A Stream is single-use: construct, ``start()`` once, then read the
    accumulators after ``wait()``.

    Usage::

        stream = Stream(provider, observer)
        stream.start(history)          # blocks in the receive loop
        # from another thread, at any time:
        stream.close()
        stream.wait()
        print(stream.content, stream.tool_call)
    """

    def __init__(
        self,
        provider: ModelProvider,
        observer: StreamObserver | None = None,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._provider = provider
        self._observer: StreamObserver = observer or NullStreamObserver()
        self._poll_interval = poll_interval
        self._cancel = threading.Event()
        self._done = threading.Event()
        self._state = StreamState.PENDING
        self._content: list[str] = []
        self._reasoning: list[str] = []
        self._tool_call: ToolCall | None = None
        self._cancelled = False
        self._error: BaseException | None = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def content(self) -> str:
        """Accumulated prose."""
        return "".join(self._content)

    @property
    def reasoning(self) -> str:
        """Accumulated reasoning output."""
        return "".join(self._reasoning)

    @property
    def tool_call(self) -> ToolCall | None:
        """The tool call that ended the stream, if any."""
        return self._tool_call

    @property
    def cancelled(self) -> bool:
        """True if the loop exited because ``close()`` was called."""
        return self._cancelled

    @property
    def error(self) -> BaseException | None:
        """Transport error that ended the stream, on start or mid-stream."""
        return self._error

    @property
    def done(self) -> bool:
        return self._done.is_set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, messages: Sequence[Message]) -> None:
        """Open the provider call and run the receive loop to completion.

        Args:
            messages: The full conversation context.

        Raises:
            SessionError: If the stream was already started.
            LLMTransportError: If the call could not be opened. The loop
                never runs and ``wait()`` returns immediately.
        """
        if self._state is not StreamState.PENDING:
            raise SessionError("Stream already started")
        self._state = StreamState.RUNNING
        try:
            channel = self._provider.stream_message(list(messages), self._cancel)
        except Exception as exc:
            logger.debug("Stream failed to open: %s", exc)
            self._error = exc
            self._state = StreamState.DONE
            self._done.set()
            raise

        self._observer.on_start()
        self._run(channel)

    def close(self) -> None:
        """Request cancellation. The loop exits within one poll interval."""
        self._cancel.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the loop has exited and ``on_end`` has run.

        Returns:
            True if the stream is done, False on timeout.
        """
        return self._done.wait(timeout)

    # ------------------------------------------------------------------
    # Receive loop
    # ------------------------------------------------------------------

    def _run(self, channel: ChunkChannel) -> None:
        try:
            while True:
                if self._cancel.is_set():
                    self._cancelled = True
                    break
                try:
                    chunk = channel.receive(timeout=self._poll_interval)
                except ChannelClosed:
                    self._error = channel.error
                    break
                if chunk is None:
                    continue
                if self._cancel.is_set():
                    # arrived after close(); never shown, never accumulated
                    self._cancelled = True
                    break

                self._observer.on_chunk(chunk)
                if isinstance(chunk, ToolCallChunk):
                    self._tool_call = chunk.tool_call
                    self._state = StreamState.TOOL_REQUESTED
                    # stop the producer; not a user cancellation
                    self._cancel.set()
                    break
                if isinstance(chunk, ReasoningChunk):
                    self._reasoning.append(chunk.text)
                elif isinstance(chunk, TextChunk):
                    self._content.append(chunk.text)
        finally:
            self._state = StreamState.DRAINING
            if self._error is not None:
                logger.warning("Stream ended with error: %s", self._error)
            try:
                self._observer.on_end(self.content)
            finally:
                self._state = StreamState.DONE
                self._done.set()
