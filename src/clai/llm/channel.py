"""Bounded chunk channel between a provider reader thread and a consumer.

The provider's reader thread ``send()``s classified chunks and finally
``close()``s the channel, optionally with the transport error that ended
the stream. The Stream Driver ``receive()``s with a short timeout so it
can observe its own cancellation between chunks.
"""

from __future__ import annotations

import queue
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from clai.protocols import StreamChunk

_CLOSED = object()
_SEND_POLL_SECONDS = 0.05


class ChannelClosed(Exception):
    """Raised by ``receive()`` once the channel is closed and drained."""


class ChunkChannel:
    """A closable, bounded FIFO of stream chunks.

    A full channel blocks the producer (no chunk is ever dropped) until
    the consumer catches up or the cancel event is set.

    Usage::

        channel = ChunkChannel()
        # producer thread
        channel.send(TextChunk("hi"), cancel)
        channel.close()
        # consumer
        while True:
            try:
                chunk = channel.receive(timeout=0.05)
            except ChannelClosed:
                break
    """

    def __init__(self, maxsize: int = 64) -> None:
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self._error: BaseException | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def error(self) -> BaseException | None:
        """The transport error that closed the channel, if any."""
        return self._error

    def send(self, chunk: StreamChunk, cancel: threading.Event | None = None) -> bool:
        """Enqueue a chunk, blocking while the channel is full.

        Returns:
            True if the chunk was enqueued, False if the channel was closed
            or ``cancel`` was set before space became available.
        """
        while not self._closed.is_set():
            if cancel is not None and cancel.is_set():
                return False
            try:
                self._queue.put(chunk, timeout=_SEND_POLL_SECONDS)
                return True
            except queue.Full:
                continue
        return False

    def close(self, error: BaseException | None = None) -> None:
        """Mark the channel closed. Idempotent; the first error wins."""
        if self._closed.is_set():
            return
        self._error = error
        self._closed.set()
        try:
            self._queue.put_nowait(_CLOSED)
        except queue.Full:
            # the consumer sees the closed flag once the queue drains
            pass

    def receive(self, timeout: float | None = None) -> StreamChunk | None:
        """Dequeue the next chunk.

        Returns:
            The next chunk, or None if nothing arrived within ``timeout``.

        Raises:
            ChannelClosed: If the channel is closed and fully drained.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            if self._closed.is_set() and self._queue.empty():
                raise ChannelClosed() from None
            return None
        if item is _CLOSED:
            raise ChannelClosed()
        return item
