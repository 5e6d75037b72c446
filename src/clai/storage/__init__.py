"""History persistence built on SQLAlchemy."""

from clai.storage.engine import create_history_engine, create_session_factory, init_db
from clai.storage.history import ConversationSummary, HistoryStore, SqliteHistoryStore

__all__ = [
    "ConversationSummary",
    "HistoryStore",
    "SqliteHistoryStore",
    "create_history_engine",
    "create_session_factory",
    "init_db",
]
