"""Terminal observer: renders session events and answers permission prompts."""

from __future__ import annotations

import logging
import queue
from collections.abc import Callable
from typing import TYPE_CHECKING

from rich.markup import escape

from clai.chat.events import (
    TERMINAL_EVENTS,
    CancelStream,
    CommandResult,
    DenyTool,
    PermitToolForSession,
    PermitToolOnce,
    StreamCancelled,
    StreamChunkReceived,
    StreamEnded,
    StreamErrored,
    StreamThink,
    SystemMessage,
    ToolCallRequested,
    ToolOutput,
    ToolRunning,
)
from clai.cli.formatting import format_error, format_tool_request, truncate_output

if TYPE_CHECKING:
    from rich.console import Console

    from clai.chat.events import InboundCommand, OutboundEvent
    from clai.chat.session import Session
    from clai.protocols import ToolCall

logger = logging.getLogger(__name__)

Decider = Callable[["ToolCall"], "InboundCommand"]

_POLL_SECONDS = 0.1


def interactive_decider(console: Console) -> Decider:
    """Ask on the terminal: once, for the session, or deny."""

    def decide(tool_call: ToolCall) -> InboundCommand:
        format_tool_request(tool_call, console)
        while True:
            try:
                choice = console.input("[o]nce / [s]ession / [d]eny: ").strip().lower()
            except EOFError:
                return DenyTool(tool_call.id)
            if choice in ("o", "once", "y", "yes"):
                return PermitToolOnce(tool_call.id)
            if choice in ("s", "session", "a", "always"):
                return PermitToolForSession(tool_call.id)
            if choice in ("d", "deny", "n", "no"):
                return DenyTool(tool_call.id)
            console.print("Please answer o, s or d.")

    return decide


def batch_decider(approve: bool, console: Console) -> Decider:
    """Non-interactive answer for every permission request."""

    def decide(tool_call: ToolCall) -> InboundCommand:
        verdict = "allowing" if approve else "denying"
        console.print(f"[dim]{verdict} {escape(tool_call.name)}[/dim]")
        if approve:
            return PermitToolOnce(tool_call.id)
        return DenyTool(tool_call.id)

    return decide


class ConsoleObserver:
    """Renders one turn's events on a rich console.

    Usage::

        observer = ConsoleObserver(session, console, interactive_decider(console))
        session.commands.put(UserPrompt(text))
        last = observer.drain_turn()
    """

    def __init__(
        self,
        session: Session,
        console: Console,
        decide: Decider,
        *,
        show_thinking: bool = True,
    ) -> None:
        self._session = session
        self._console = console
        self._decide = decide
        self._show_thinking = show_thinking
        self._thinking = False
        self._streamed = False

    def drain_turn(self) -> OutboundEvent:
        """Render events until the turn's terminal event, and return it.

        Ctrl-C while waiting cancels the turn; the terminal event that
        follows is still rendered.
        """
        self._streamed = False
        while True:
            try:
                event = self._session.events.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                continue
            except KeyboardInterrupt:
                self._send(CancelStream())
                continue
            try:
                self.render(event)
            except KeyboardInterrupt:
                self._send(CancelStream())
            if isinstance(event, TERMINAL_EVENTS):
                return event

    def _send(self, command: InboundCommand) -> None:
        self._session.commands.put(command)

    def _end_thinking(self) -> None:
        if self._thinking:
            self._console.print()
            self._thinking = False

    def render(self, event: OutboundEvent) -> None:
        console = self._console
        if isinstance(event, StreamThink):
            if self._show_thinking:
                if not self._thinking:
                    console.print("[dim italic]thinking...[/dim italic]")
                    self._thinking = True
                console.print(f"[dim]{escape(event.text)}[/dim]", end="")
        elif isinstance(event, StreamChunkReceived):
            self._end_thinking()
            console.out(event.text, end="", highlight=False)
            self._streamed = True
        elif isinstance(event, StreamEnded):
            self._end_thinking()
            if self._streamed:
                console.print()
        elif isinstance(event, StreamCancelled):
            self._end_thinking()
            console.print("\n[yellow]Cancelled.[/yellow]")
        elif isinstance(event, StreamErrored):
            self._end_thinking()
            format_error(event.message, console)
        elif isinstance(event, ToolCallRequested):
            self._end_thinking()
            self._send(self._decide(event.tool_call))
        elif isinstance(event, ToolRunning):
            self._end_thinking()
            console.print(f"[dim]Running {escape(event.tool_call.name)}...[/dim]")
        elif isinstance(event, ToolOutput):
            console.print(f"[dim]{escape(truncate_output(event.text))}[/dim]")
        elif isinstance(event, SystemMessage):
            self._end_thinking()
            console.print(f"[cyan]{escape(event.text)}[/cyan]")
        elif isinstance(event, CommandResult):
            console.print(escape(event.message))
        else:
            logger.debug("Unrendered event %r", event)
