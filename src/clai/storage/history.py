"""Conversation history persistence.

``HistoryStore`` is the save hook the session calls after every history
mutation. ``SqliteHistoryStore`` keeps one row per message; each save
rewrites the conversation in a single transaction, so a crash never
leaves a half-written history.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from clai.exceptions import HistoryError
from clai.protocols import Message, Role, ToolCall
from clai.storage.engine import create_history_engine, create_session_factory, init_db
from clai.storage.schema import ConversationRow, MessageRow

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationSummary:
    """Listing entry for a saved conversation."""

    session_id: str
    message_count: int
    created_at: datetime
    updated_at: datetime
    preview: str


class HistoryStore(ABC):
    """Abstract interface for conversation persistence."""

    @abstractmethod
    def save(self, session_id: str, messages: Sequence[Message]) -> None:
        """Replace the stored history of ``session_id`` with ``messages``.

        Raises:
            HistoryError: If the history could not be written.
        """
        ...

    @abstractmethod
    def load(self, session_id: str) -> list[Message]:
        """Load a history. Unknown ids yield an empty list.

        Raises:
            HistoryError: If the store could not be read.
        """
        ...

    @abstractmethod
    def list_sessions(self) -> list[ConversationSummary]:
        """All saved conversations, most recently updated first."""
        ...

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """Delete a conversation. Returns False if it did not exist."""
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SqliteHistoryStore(HistoryStore):
    """SQLAlchemy-backed history store.

    Usage::

        store = SqliteHistoryStore.open("~/.clai/history.db")
        store.save("a1b2c3", session.history)
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._lock = threading.Lock()
        init_db(engine)

    @classmethod
    def open(cls, db_path: str | Path = ":memory:") -> SqliteHistoryStore:
        return cls(create_history_engine(db_path))

    def save(self, session_id: str, messages: Sequence[Message]) -> None:
        rows = [
            MessageRow(
                session_id=session_id,
                position=i,
                role=m.role,
                content=m.content,
                tool_call_id=m.tool_call_id,
                tool_call_json=dict(m.tool_call.to_dict()) if m.tool_call else None,
            )
            for i, m in enumerate(messages)
        ]
        with self._lock:
            try:
                with self._session_factory() as db, db.begin():
                    conversation = db.get(ConversationRow, session_id)
                    now = _now()
                    if conversation is None:
                        conversation = ConversationRow(
                            session_id=session_id, created_at=now, updated_at=now
                        )
                        db.add(conversation)
                    conversation.updated_at = now
                    db.execute(delete(MessageRow).where(MessageRow.session_id == session_id))
                    db.add_all(rows)
            except SQLAlchemyError as exc:
                raise HistoryError(f"Failed to save session {session_id}: {exc}") from exc
        logger.debug("Saved %d messages for session %s", len(rows), session_id)

    def load(self, session_id: str) -> list[Message]:
        with self._lock:
            try:
                with self._session_factory() as db:
                    rows = db.scalars(
                        select(MessageRow)
                        .where(MessageRow.session_id == session_id)
                        .order_by(MessageRow.position)
                    ).all()
            except SQLAlchemyError as exc:
                raise HistoryError(f"Failed to load session {session_id}: {exc}") from exc
        return [
            Message(
                role=row.role,
                content=row.content,
                tool_call_id=row.tool_call_id,
                tool_call=ToolCall.from_dict(row.tool_call_json) if row.tool_call_json else None,
            )
            for row in rows
        ]

    def list_sessions(self) -> list[ConversationSummary]:
        first_prompt = (
            select(MessageRow.content)
            .where(MessageRow.session_id == ConversationRow.session_id)
            .where(MessageRow.role == Role.USER)
            .order_by(MessageRow.position)
            .limit(1)
            .scalar_subquery()
        )
        count = (
            select(func.count(MessageRow.id))
            .where(MessageRow.session_id == ConversationRow.session_id)
            .scalar_subquery()
        )
        stmt = select(ConversationRow, count, first_prompt).order_by(
            ConversationRow.updated_at.desc()
        )
        with self._lock:
            try:
                with self._session_factory() as db:
                    results = db.execute(stmt).all()
            except SQLAlchemyError as exc:
                raise HistoryError(f"Failed to list sessions: {exc}") from exc
        return [
            ConversationSummary(
                session_id=conversation.session_id,
                message_count=n or 0,
                created_at=conversation.created_at,
                updated_at=conversation.updated_at,
                preview=(preview or "").splitlines()[0][:60] if preview else "",
            )
            for conversation, n, preview in results
        ]

    def delete(self, session_id: str) -> bool:
        with self._lock:
            try:
                with self._session_factory() as db, db.begin():
                    conversation = db.get(ConversationRow, session_id)
                    if conversation is None:
                        return False
                    db.delete(conversation)
            except SQLAlchemyError as exc:
                raise HistoryError(f"Failed to delete session {session_id}: {exc}") from exc
        return True

    def close(self) -> None:
        self._engine.dispose()
