"""Wiring for CLI commands: logging, provider, tools, history, session."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from clai.chat.session import Session
from clai.engine.tokens import ApproximateTokenCounter, TiktokenCounter
from clai.llm.client import OpenAIClient
from clai.storage.history import SqliteHistoryStore
from clai.toolkit.gateway import ToolGateway
from clai.toolkit.permissions import PermissionState
from clai.toolkit.registry import ToolRegistry

if TYPE_CHECKING:
    from collections.abc import Iterator

    from clai.models.config import ClaiConfig
    from clai.protocols import TokenCounter

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"


def configure_logging(config: ClaiConfig) -> Path | None:
    """Send clai's logs to ``<session_dir>/clai.log``.

    Returns the log path, or None if the directory is not writable.
    """
    root = logging.getLogger("clai")
    root.setLevel(logging.DEBUG if config.verbose else logging.INFO)
    path = config.log_path
    for existing in root.handlers:
        if isinstance(existing, logging.FileHandler) and existing.baseFilename == str(path.resolve()):
            return path
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as exc:
        logging.getLogger(__name__).warning("Cannot open log file %s: %s", path, exc)
        return None
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.propagate = False
    return path


def make_token_counter(model: str) -> TokenCounter:
    """tiktoken when its encoding files can be loaded, else an estimate."""
    try:
        return TiktokenCounter(model=model)
    except Exception as exc:
        logger.warning("tiktoken unavailable (%s); estimating token counts", exc)
        return ApproximateTokenCounter()


@contextmanager
def open_session(
    config: ClaiConfig,
    *,
    working_dir: str | Path = ".",
    session_id: str | None = None,
    allow: tuple[str, ...] = (),
) -> Iterator[Session]:
    """Build a started Session and tear everything down afterwards.

    Resumes ``session_id`` from the history store when it exists.
    """
    registry = ToolRegistry.from_config(config)
    gateway = ToolGateway(registry, config)
    provider = OpenAIClient.from_config(config)
    provider.set_tools(registry.definitions())
    permissions = PermissionState([*config.permitted_tools, *allow])

    store = SqliteHistoryStore.open(config.history_db_path) if config.save_history else None
    history = store.load(session_id) if store is not None and session_id else []
    if history:
        logger.info("Resuming session %s with %d messages", session_id, len(history))

    session = Session(
        provider,
        gateway,
        working_dir=working_dir,
        permissions=permissions,
        history=history,
        history_store=store,
        session_id=session_id,
        token_counter=make_token_counter(config.model),
        event_buffer=config.event_buffer,
        max_tool_chain=config.max_tool_chain,
    )
    session.start()
    try:
        yield session
    finally:
        session.close()
        provider.close()
        if store is not None:
            store.close()
