"""Slash commands available inside a chat session.

A prompt starting with ``/`` never reaches the model. The first word
selects a command (by name or alias); the rest are its arguments. The
handler's CommandResult is the turn's terminal event.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from clai.chat.events import CommandResult
from clai.exceptions import UnknownCommandError

if TYPE_CHECKING:
    from collections.abc import Callable

    from clai.chat.session import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Command:
    """A registered slash command.

    Attributes:
        name: Primary name, typed after the slash.
        description: One line for ``/help``.
        usage: Usage string for ``/help <command>``.
        handler: ``(session, args) -> CommandResult``.
        aliases: Alternative names.
    """

    name: str
    description: str
    usage: str
    handler: Callable[[Session, list[str]], CommandResult]
    aliases: tuple[str, ...] = field(default_factory=tuple)


def is_command(text: str) -> bool:
    return text.lstrip().startswith("/")


class CommandRegistry:
    """Name/alias -> Command lookup with the built-in commands registered."""

    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}
        for command in _builtin_commands():
            self.register(command)

    def register(self, command: Command) -> None:
        self._commands[command.name] = command
        for alias in command.aliases:
            self._commands[alias] = command

    def get(self, name: str) -> Command | None:
        return self._commands.get(name)

    def list(self) -> list[Command]:
        """Unique commands in registration order."""
        seen: dict[str, Command] = {}
        for command in self._commands.values():
            seen.setdefault(command.name, command)
        return list(seen.values())

    def execute(self, session: Session, text: str) -> CommandResult:
        """Parse and run a slash command line.

        Raises:
            UnknownCommandError: If the command is not registered.
        """
        try:
            words = shlex.split(text.strip()[1:])
        except ValueError:
            words = text.strip()[1:].split()
        if not words:
            raise UnknownCommandError("")
        name, args = words[0].lower(), words[1:]
        command = self.get(name)
        if command is None:
            raise UnknownCommandError(name)
        logger.debug("Running command /%s %s", command.name, args)
        return command.handler(session, args)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _help(session: Session, args: list[str]) -> CommandResult:
    registry = session.commands_registry
    if args:
        command = registry.get(args[0].lstrip("/"))
        if command is None:
            return CommandResult(f"Unknown command: /{args[0]}")
        aliases = ", ".join(f"/{a}" for a in command.aliases) or "none"
        return CommandResult(
            f"/{command.name}: {command.description}\n"
            f"Usage: {command.usage}\nAliases: {aliases}"
        )
    lines = ["Available commands:"]
    for command in registry.list():
        lines.append(f"  {command.usage:<22} {command.description}")
    return CommandResult("\n".join(lines))


def _clear(session: Session, args: list[str]) -> CommandResult:
    session.clear_history()
    return CommandResult("Conversation history cleared.")


def _exit(session: Session, args: list[str]) -> CommandResult:
    return CommandResult("Goodbye!", should_exit=True)


def _model(session: Session, args: list[str]) -> CommandResult:
    if not args:
        return CommandResult(f"Current model: {session.provider.model}")
    session.provider.set_model(args[0])
    return CommandResult(f"Model changed to: {args[0]}")


def _tokens(session: Session, args: list[str]) -> CommandResult:
    history = session.history
    total = session.token_counter.count_messages([m.to_openai() for m in history])
    return CommandResult(
        f"Messages: {len(history)}\nEstimated context tokens: {total}"
    )


def _tools(session: Session, args: list[str]) -> CommandResult:
    allowed = session.permissions.allowed()
    lines = ["Tools (* = runs without asking):"]
    for tool in session.gateway.registry:
        marker = "*" if tool.name in allowed else " "
        lines.append(f" {marker} {tool.name}: {tool.description}")
    return CommandResult("\n".join(lines))


def _allow(session: Session, args: list[str]) -> CommandResult:
    if not args:
        return CommandResult("Usage: /allow <tool>")
    name = args[0]
    if name not in session.gateway.registry:
        return CommandResult(f"Unknown tool: {name}")
    session.permissions.allow(name)
    return CommandResult(f"{name} will run without asking for the rest of this session.")


def _revoke(session: Session, args: list[str]) -> CommandResult:
    if not args:
        return CommandResult("Usage: /revoke <tool>")
    session.permissions.revoke(args[0])
    return CommandResult(f"{args[0]} will ask for permission again.")


def _builtin_commands() -> list[Command]:
    return [
        Command("help", "Show available commands", "/help [command]", _help, ("h", "?")),
        Command("clear", "Clear conversation history", "/clear", _clear, ("c",)),
        Command("exit", "Exit the application", "/exit", _exit, ("quit", "q")),
        Command("model", "Show or change the AI model", "/model [model-name]", _model, ("m",)),
        Command("tokens", "Show token usage statistics", "/tokens", _tokens, ("t",)),
        Command("tools", "List tools and their permissions", "/tools", _tools),
        Command("allow", "Let a tool run without asking", "/allow <tool>", _allow),
        Command("revoke", "Make a tool ask for permission again", "/revoke <tool>", _revoke),
    ]
