"""SQLAlchemy ORM schema for conversation history.

Two tables: ``conversations`` (one row per session id) and ``messages``
(ordered by ``position`` within a conversation).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from clai.protocols import Role


class Base(DeclarativeBase):
    """Base class for all clai ORM models."""

    pass


class ConversationRow(Base):
    """A saved session."""

    __tablename__ = "conversations"

    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    messages: Mapped[list["MessageRow"]] = relationship(
        "MessageRow",
        back_populates="conversation",
        order_by="MessageRow.position",
        cascade="all, delete-orphan",
    )


class MessageRow(Base):
    """One message of a saved conversation."""

    __tablename__ = "messages"
    __table_args__ = (UniqueConstraint("session_id", "position"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("conversations.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[Role] = mapped_column(nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    tool_call_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    tool_call_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    conversation: Mapped["ConversationRow"] = relationship(
        "ConversationRow", back_populates="messages"
    )
