"""Session Coordinator: owns the conversation and sequences every turn.

The session talks to its observer (a terminal UI, a batch script, a test)
through two bounded queues:

- ``events``: outbound events, see :mod:`clai.chat.events`.
- ``commands``: inbound commands (prompts, permission decisions, cancel).

A coordinator thread (``run``) consumes ``commands``. Prompts are handed
to a single turn worker, so the coordinator stays free to deliver
permission decisions and cancellations while a turn is in flight. A turn
is an explicit loop: stream, then either settle on prose or route the
requested tool through the gateway and stream again, up to
``max_tool_chain`` consecutive tool calls.

Every turn ends with exactly one terminal event: StreamEnded,
StreamCancelled, StreamErrored or CommandResult.
"""

from __future__ import annotations

import logging
import queue
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

from clai.chat.commands import CommandRegistry, is_command
from clai.chat.events import (
    CancelStream,
    CommandResult,
    DenyTool,
    PermitToolForSession,
    PermitToolOnce,
    Shutdown,
    StreamCancelled,
    StreamChunkReceived,
    StreamEnded,
    StreamErrored,
    StreamStarted,
    StreamThink,
    SystemMessage,
    ToolCallRequested,
    ToolOutput,
    ToolRunning,
    UserPrompt,
)
from clai.chat.models import PermissionDecision, SessionState
from clai.chat.stream import DEFAULT_POLL_INTERVAL, Stream
from clai.chat.text import (
    enhance_message,
    parse_textual_tool_call,
    strip_think_blocks,
    tool_request_text,
)
from clai.engine.tokens import ApproximateTokenCounter
from clai.exceptions import (
    ClaiError,
    HistoryError,
    HistoryIntegrityError,
    SessionError,
)
from clai.llm.errors import LLMClientError
from clai.protocols import Message, ReasoningChunk, Role, TextChunk, validate_history
from clai.toolkit.models import ToolStatus
from clai.toolkit.permissions import PermissionState

if TYPE_CHECKING:
    from collections.abc import Iterable

    from clai.chat.events import InboundCommand, OutboundEvent
    from clai.llm.protocols import ModelProvider
    from clai.protocols import StreamChunk, TokenCounter, ToolCall
    from clai.storage.history import HistoryStore
    from clai.toolkit.gateway import ToolGateway

logger = logging.getLogger(__name__)

DEFAULT_EVENT_BUFFER = 16
DEFAULT_MAX_TOOL_CHAIN = 25

DECLINED_TEXT = "The user declined permission to run this tool."
CANCELLED_TEXT = "The user cancelled this tool call."

_DECISIONS = {
    PermitToolOnce: PermissionDecision.ONCE,
    PermitToolForSession: PermissionDecision.SESSION,
    DenyTool: PermissionDecision.DENY,
}
_EMIT_POLL_SECONDS = 0.1


class _StreamEvents:
    """StreamObserver that republishes chunks as outbound session events."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def on_start(self) -> None:
        self._session._emit(StreamStarted())

    def on_chunk(self, chunk: StreamChunk) -> None:
        if isinstance(chunk, TextChunk):
            self._session._emit(StreamChunkReceived(chunk.text))
        elif isinstance(chunk, ReasoningChunk):
            self._session._emit(StreamThink(chunk.text))

    def on_end(self, content: str) -> None:
        logger.debug("Stream ended with %d chars", len(content))


class Session:
    """The conversation state owner.

    Usage::

        session = Session(provider, gateway, working_dir=".")
        session.start()
        session.commands.put(UserPrompt("list files in ."))
        while True:
            event = session.events.get()
            ...
        session.close()

    ``send_message`` may also be called directly; it runs the turn on the
    calling thread and returns once its terminal event has been emitted.
    """

    def __init__(
        self,
        provider: ModelProvider,
        gateway: ToolGateway,
        *,
        working_dir: str | Path = ".",
        permissions: PermissionState | None = None,
        history: Iterable[Message] = (),
        history_store: HistoryStore | None = None,
        session_id: str | None = None,
        token_counter: TokenCounter | None = None,
        event_buffer: int = DEFAULT_EVENT_BUFFER,
        max_tool_chain: int = DEFAULT_MAX_TOOL_CHAIN,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._provider = provider
        self._gateway = gateway
        self._working_dir = Path(working_dir).resolve()
        self._permissions = permissions if permissions is not None else PermissionState()
        self._history: list[Message] = list(history)
        validate_history(self._history)
        self._requested_ids = {
            m.tool_call.id for m in self._history if m.tool_call is not None
        }
        self._history_store = history_store
        self._session_id = session_id or uuid.uuid4().hex[:6]
        self._token_counter: TokenCounter = token_counter or ApproximateTokenCounter()
        self._max_tool_chain = max_tool_chain
        self._poll_interval = poll_interval
        self.commands_registry = CommandRegistry()

        self.events: queue.Queue[OutboundEvent] = queue.Queue(maxsize=event_buffer)
        self.commands: queue.Queue[InboundCommand] = queue.Queue(maxsize=event_buffer)
        self._decisions: queue.Queue[PermissionDecision] = queue.Queue(maxsize=1)

        self._state = SessionState.IDLE
        self._state_lock = threading.Lock()
        self._turn_lock = threading.Lock()
        self._turn_cancel = threading.Event()
        self._closed = threading.Event()
        self._active_stream: Stream | None = None
        self._pending_tool_call: ToolCall | None = None
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="clai-turn")
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def history(self) -> tuple[Message, ...]:
        """Snapshot of the conversation history."""
        return tuple(self._history)

    @property
    def working_dir(self) -> Path:
        return self._working_dir

    @property
    def provider(self) -> ModelProvider:
        return self._provider

    @property
    def gateway(self) -> ToolGateway:
        return self._gateway

    @property
    def permissions(self) -> PermissionState:
        return self._permissions

    @property
    def token_counter(self) -> TokenCounter:
        return self._token_counter

    @property
    def pending_tool_call(self) -> ToolCall | None:
        """The tool call awaiting a permission decision, if any."""
        return self._pending_tool_call

    # ------------------------------------------------------------------
    # Coordinator thread
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the coordinator thread."""
        if self._closed.is_set():
            raise SessionError("Session is closed")
        if self._thread is not None:
            raise SessionError("Session already started")
        self._thread = threading.Thread(target=self.run, name="clai-coordinator", daemon=True)
        self._thread.start()

    def run(self) -> None:
        """Consume inbound commands until Shutdown."""
        logger.info("Session %s started in %s", self._session_id, self._working_dir)
        while True:
            command = self.commands.get()
            if isinstance(command, Shutdown):
                self.cancel()
                break
            self._dispatch(command)
        logger.info("Session %s coordinator stopped", self._session_id)

    def _dispatch(self, command: InboundCommand) -> None:
        if isinstance(command, UserPrompt):
            self._worker.submit(self._run_turn, command.text)
        elif isinstance(command, CancelStream):
            self.cancel()
        elif type(command) in _DECISIONS:
            self._offer_decision(_DECISIONS[type(command)], command.tool_call_id)
        else:
            logger.warning("Ignoring unknown command %r", command)

    def _offer_decision(self, decision: PermissionDecision, tool_call_id: str | None) -> None:
        with self._state_lock:
            pending = self._pending_tool_call
            if self._state is not SessionState.AWAITING_PERMISSION or pending is None:
                logger.warning("No tool call is awaiting permission; ignoring %s", decision.value)
                return
            if tool_call_id is not None and tool_call_id != pending.id:
                logger.warning(
                    "Decision for %s does not match pending call %s", tool_call_id, pending.id
                )
                return
            try:
                self._decisions.put_nowait(decision)
            except queue.Full:
                logger.warning("A decision for %s is already queued", pending.id)

    def cancel(self) -> None:
        """Cancel the turn in flight, if any.

        Closes the active stream and waits for its loop to exit, or
        answers a pending permission request with "cancel". The turn
        itself emits StreamCancelled.
        """
        self._turn_cancel.set()
        with self._state_lock:
            stream = self._active_stream
            if self._state is SessionState.AWAITING_PERMISSION:
                try:
                    self._decisions.put_nowait(PermissionDecision.CANCEL)
                except queue.Full:
                    # the turn re-checks the cancel flag after any decision
                    pass
        if stream is not None:
            stream.close()
            stream.wait()

    def close(self, timeout: float = 5.0) -> None:
        """Shut down: cancel any turn, stop the coordinator, join the worker."""
        if self._closed.is_set():
            return
        self._closed.set()
        self.cancel()
        if self._thread is not None and self._thread.is_alive():
            try:
                self.commands.put(Shutdown(), timeout=timeout)
            except queue.Full:
                logger.warning("Inbound queue full; coordinator did not receive Shutdown")
            self._thread.join(timeout)
        self._worker.shutdown(wait=True, cancel_futures=True)
        self._set_state(SessionState.CLOSED)
        logger.info("Session %s closed", self._session_id)

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def _run_turn(self, text: str) -> None:
        """Worker entry point. Nothing raised here may kill the worker."""
        try:
            self.send_message(text)
        except SessionError as exc:
            logger.debug("Dropping prompt: %s", exc)
        except Exception as exc:
            logger.exception("Turn failed")
            self._emit(StreamErrored(f"Internal error: {type(exc).__name__}: {exc}"))

    def send_message(self, text: str) -> None:
        """Run one full turn for ``text``. Blocks until it settles.

        Serialized: a second call waits for the first to finish.
        """
        if self._closed.is_set():
            raise SessionError("Session is closed")
        with self._turn_lock:
            if self._closed.is_set():
                raise SessionError("Session is closed")
            self._turn_cancel.clear()
            try:
                if is_command(text):
                    self._run_command(text)
                else:
                    self._converse(text)
            finally:
                with self._state_lock:
                    self._active_stream = None
                    self._pending_tool_call = None
                    if self._state is not SessionState.CLOSED:
                        self._state = SessionState.IDLE

    def _run_command(self, text: str) -> None:
        try:
            result = self.commands_registry.execute(self, text)
        except ClaiError as exc:
            result = CommandResult(str(exc))
        self._emit(result)

    def _converse(self, text: str) -> None:
        context = self._gateway.context_for(self._working_dir)
        self._append(Message.user(enhance_message(text, context)))

        chain = 0
        while True:
            stream = self._stream_once()
            if stream is None:
                return
            if stream.cancelled or self._turn_cancel.is_set():
                self._emit(StreamCancelled())
                return

            tool_call = stream.tool_call
            final = strip_think_blocks(stream.content)
            if tool_call is None and stream.error is None and final:
                tool_call = parse_textual_tool_call(final)

            if tool_call is None:
                if stream.error is not None:
                    self._emit(StreamErrored(str(stream.error)))
                    return
                if final:
                    self._append(Message.assistant(final))
                self._emit(StreamEnded(final))
                return

            if chain >= self._max_tool_chain:
                logger.warning("Tool chain limit %d reached", self._max_tool_chain)
                self._emit(
                    SystemMessage(
                        f"Stopped after {self._max_tool_chain} consecutive tool calls."
                    )
                )
                self._emit(StreamEnded(""))
                return
            chain += 1
            if not self._handle_tool_call(tool_call):
                return

    def _stream_once(self) -> Stream | None:
        """Stream one model reply over the full history.

        Returns:
            The finished Stream, or None if it could not be opened (the
            error event has already been emitted).
        """
        stream = Stream(self._provider, _StreamEvents(self), poll_interval=self._poll_interval)
        with self._state_lock:
            self._active_stream = stream
            self._state = SessionState.STREAMING
        if self._turn_cancel.is_set():
            stream.close()
        try:
            stream.start(self._history)
        except LLMClientError as exc:
            logger.warning("Could not start stream: %s", exc)
            self._emit(StreamErrored(str(exc)))
            return None
        finally:
            with self._state_lock:
                self._active_stream = None
        return stream

    def _handle_tool_call(self, tool_call: ToolCall) -> bool:
        """Route one tool call. Returns False if the turn is over."""
        self._append(Message.assistant(tool_request_text(tool_call), tool_call=tool_call))

        status = self._gateway.check(tool_call, self._permissions)
        if status is ToolStatus.UNKNOWN_TOOL:
            result = self._gateway.execute(tool_call, self._permissions, self._working_dir)
            self._emit(SystemMessage(result.error))
            self._append(Message.tool(tool_call.id, result.text))
            return True

        granted = False
        if status is ToolStatus.PERMISSION_REQUIRED:
            decision = self._await_permission(tool_call)
            if decision is PermissionDecision.CANCEL or self._turn_cancel.is_set():
                self._append(Message.tool(tool_call.id, CANCELLED_TEXT))
                self._emit(StreamCancelled())
                return False
            if decision is PermissionDecision.DENY:
                self._append(Message.tool(tool_call.id, DECLINED_TEXT))
                self._emit(SystemMessage(f"Declined to run {tool_call.name}."))
                return True
            if decision is PermissionDecision.SESSION:
                self._permissions.allow(tool_call.name)
            granted = True

        self._set_state(SessionState.EXECUTING_TOOL)
        self._emit(ToolRunning(tool_call))
        result = self._gateway.execute(
            tool_call, self._permissions, self._working_dir, granted=granted
        )
        self._emit(ToolOutput(result.text, tool_call))
        self._append(Message.tool(tool_call.id, result.text))

        # tools are not preemptible; honour a cancel once this one finished
        if self._turn_cancel.is_set():
            self._emit(StreamCancelled())
            return False
        return True

    def _await_permission(self, tool_call: ToolCall) -> PermissionDecision:
        while True:
            try:
                self._decisions.get_nowait()
            except queue.Empty:
                break
        with self._state_lock:
            self._pending_tool_call = tool_call
            self._state = SessionState.AWAITING_PERMISSION
        try:
            self._emit(ToolCallRequested(tool_call))
            if self._turn_cancel.is_set():
                return PermissionDecision.CANCEL
            decision = self._decisions.get()
            logger.info("Permission for %s: %s", tool_call.name, decision.value)
            return decision
        finally:
            with self._state_lock:
                self._pending_tool_call = None

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def clear_history(self) -> None:
        self._history.clear()
        self._requested_ids.clear()
        self._save()

    def _append(self, message: Message) -> None:
        if message.role is Role.TOOL and message.tool_call_id not in self._requested_ids:
            raise HistoryIntegrityError(message.tool_call_id)
        if message.tool_call is not None:
            self._requested_ids.add(message.tool_call.id)
        self._history.append(message)
        self._save()

    def _save(self) -> None:
        if self._history_store is None:
            return
        try:
            self._history_store.save(self._session_id, self._history)
        except HistoryError as exc:
            logger.warning("Could not save history: %s", exc)
            self._emit(SystemMessage(f"Could not save history: {exc}"))

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        with self._state_lock:
            self._state = state

    def _emit(self, event: OutboundEvent) -> None:
        """Deliver an event, blocking while the observer is behind."""
        while True:
            try:
                self.events.put(event, timeout=_EMIT_POLL_SECONDS)
                return
            except queue.Full:
                if self._closed.is_set():
                    logger.debug("Session closed; dropping %s", type(event).__name__)
                    return
