"""clai CLI -- terminal front-end for the chat session.

This module is only loaded via the ``clai`` entry point defined in
pyproject.toml; the library never imports it.
"""

from __future__ import annotations

from pathlib import Path

import click
from dotenv import load_dotenv

from clai.chat.events import CommandResult, StreamErrored, UserPrompt
from clai.cli.formatting import (
    format_config,
    format_error,
    format_sessions,
    format_tools,
    get_console,
)
from clai.cli.observer import ConsoleObserver, batch_decider, interactive_decider
from clai.cli.runtime import configure_logging, open_session
from clai.exceptions import ClaiError
from clai.models.config import load_config, write_default_config
from clai.storage.history import SqliteHistoryStore
from clai.toolkit.registry import ToolRegistry


def _resolve_config(ctx: click.Context):
    """Load the configuration from the options stored on the Click context."""
    if "config" not in ctx.obj:
        options = ctx.obj["options"]
        try:
            config = load_config(
                options["config_path"],
                overrides={
                    "model": options["model"],
                    "provider": options["provider"],
                    "verbose": True if options["verbose"] else None,
                },
            )
        except ClaiError as e:
            format_error(str(e), get_console())
            raise SystemExit(1) from None
        ctx.obj["config"] = config
        ctx.obj["log_path"] = configure_logging(config)
    return ctx.obj["config"]


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    envvar="CLAI_CONFIG",
    help="Config file (default: ~/.clai.yaml).",
)
@click.option("--model", "-m", default=None, help="Model to use.")
@click.option(
    "--provider",
    "-p",
    type=click.Choice(["openai", "ollama", "custom"]),
    default=None,
    help="Model provider.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging.")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    model: str | None,
    provider: str | None,
    verbose: bool,
) -> None:
    """clai: a terminal coding assistant with permission-gated tools."""
    load_dotenv()
    ctx.ensure_object(dict)
    ctx.obj["options"] = {
        "config_path": config_path,
        "model": model,
        "provider": provider,
        "verbose": verbose,
    }


@cli.command()
@click.option("--session", "-s", "session_id", default=None, help="Resume a saved session.")
@click.option(
    "--workdir",
    "-C",
    type=click.Path(exists=True, file_okay=False),
    default=".",
    help="Working directory for tools.",
)
@click.pass_context
def chat(ctx: click.Context, session_id: str | None, workdir: str) -> None:
    """Start an interactive chat. Ctrl-C cancels a reply; /exit quits."""
    config = _resolve_config(ctx)
    console = get_console()
    try:
        with open_session(config, working_dir=workdir, session_id=session_id) as session:
            console.print(
                f"[bold]clai[/bold] [dim]{config.model} via {config.provider} - "
                f"session {session.session_id} in {session.working_dir}[/dim]"
            )
            console.print("[dim]Type /help for commands.[/dim]")
            observer = ConsoleObserver(
                session,
                console,
                interactive_decider(console),
                show_thinking=config.show_thinking,
            )
            while True:
                try:
                    text = console.input("[bold green]> [/bold green]").strip()
                except (EOFError, KeyboardInterrupt):
                    console.print()
                    break
                if not text:
                    continue
                session.commands.put(UserPrompt(text))
                last = observer.drain_turn()
                if isinstance(last, CommandResult) and last.should_exit:
                    break
            console.print(f"[dim]Session {session.session_id} saved.[/dim]")
    except ClaiError as e:
        format_error(str(e), console)
        raise SystemExit(1) from None


@cli.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option("--yes", "-y", is_flag=True, default=False, help="Allow every tool call.")
@click.option("--allow", "-a", multiple=True, help="Allow a tool without asking (repeatable).")
@click.option(
    "--workdir",
    "-C",
    type=click.Path(exists=True, file_okay=False),
    default=".",
    help="Working directory for tools.",
)
@click.pass_context
def ask(
    ctx: click.Context,
    prompt: tuple[str, ...],
    yes: bool,
    allow: tuple[str, ...],
    workdir: str,
) -> None:
    """Send a single prompt and print the reply.

    Tool calls that are not permitted are denied unless --yes is given.
    """
    config = _resolve_config(ctx)
    console = get_console()
    try:
        with open_session(config, working_dir=workdir, allow=allow) as session:
            observer = ConsoleObserver(
                session, console, batch_decider(yes, console), show_thinking=False
            )
            session.commands.put(UserPrompt(" ".join(prompt)))
            last = observer.drain_turn()
    except ClaiError as e:
        format_error(str(e), console)
        raise SystemExit(1) from None
    if isinstance(last, StreamErrored):
        raise SystemExit(1)


@cli.command()
@click.pass_context
def tools(ctx: click.Context) -> None:
    """List available tools and which run without asking."""
    config = _resolve_config(ctx)
    registry = ToolRegistry.from_config(config)
    format_tools(registry, frozenset(config.permitted_tools), get_console())


@cli.command()
@click.option("--delete", "delete_id", default=None, help="Delete a saved session.")
@click.pass_context
def sessions(ctx: click.Context, delete_id: str | None) -> None:
    """List saved sessions."""
    config = _resolve_config(ctx)
    console = get_console()
    if not config.history_db_path.exists():
        format_sessions([], console)
        return
    store = SqliteHistoryStore.open(config.history_db_path)
    try:
        if delete_id is not None:
            if not store.delete(delete_id):
                format_error(f"No session {delete_id}", console)
                raise SystemExit(1)
            console.print(f"Deleted session {delete_id}.")
            return
        format_sessions(store.list_sessions(), console)
    except ClaiError as e:
        format_error(str(e), console)
        raise SystemExit(1) from None
    finally:
        store.close()


@cli.group()
def config() -> None:
    """Show or create the configuration file."""


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the effective configuration (API key masked)."""
    format_config(_resolve_config(ctx.find_root()), get_console())


@config.command("init")
@click.option("--path", type=click.Path(dir_okay=False), default=None, help="Where to write.")
def config_init(path: str | None) -> None:
    """Write a commented default config file."""
    console = get_console()
    try:
        target = write_default_config(Path(path) if path else None)
    except ClaiError as e:
        format_error(str(e), console)
        raise SystemExit(1) from None
    console.print(f"Created config file at {target}")
