"""Tests for SQLAlchemy-backed conversation history."""

from __future__ import annotations

import threading

import pytest
from sqlalchemy import inspect

from clai.exceptions import HistoryError
from clai.protocols import Message, ToolCall
from clai.storage import SqliteHistoryStore, create_history_engine, init_db


def _conversation() -> list[Message]:
    call = ToolCall(id="call_1", name="read_file", arguments={"path": "a.txt"})
    return [
        Message.user("show me a.txt"),
        Message.assistant("Request to use tool: `read_file` with args: {}", tool_call=call),
        Message.tool("call_1", "// a.txt\ncontents"),
        Message.assistant("It says contents."),
    ]


@pytest.fixture
def store():
    s = SqliteHistoryStore.open()
    yield s
    s.close()


class TestEngine:
    def test_tables_created(self):
        engine = create_history_engine()
        init_db(engine)

        assert {"conversations", "messages"} <= set(inspect(engine).get_table_names())
        engine.dispose()

    def test_file_engine_creates_parent(self, tmp_path):
        path = tmp_path / "nested" / "history.db"
        store = SqliteHistoryStore.open(path)
        store.save("s1", [Message.user("hi")])
        store.close()

        assert path.exists()
        reopened = SqliteHistoryStore.open(path)
        assert reopened.load("s1") == [Message.user("hi")]
        reopened.close()


class TestHistoryStore:
    def test_round_trip(self, store):
        messages = _conversation()

        store.save("abc", messages)

        assert store.load("abc") == messages

    def test_save_replaces(self, store):
        store.save("abc", _conversation())
        store.save("abc", [Message.user("fresh start")])

        assert store.load("abc") == [Message.user("fresh start")]

    def test_unknown_session_is_empty(self, store):
        assert store.load("missing") == []

    def test_sessions_are_isolated(self, store):
        store.save("one", [Message.user("1")])
        store.save("two", [Message.user("2")])

        assert store.load("one") == [Message.user("1")]
        assert store.load("two") == [Message.user("2")]

    def test_list_sessions(self, store):
        store.save("old", [Message.user("first prompt\nsecond line")])
        store.save("new", _conversation())

        summaries = store.list_sessions()

        assert [s.session_id for s in summaries] == ["new", "old"]
        assert summaries[0].message_count == 4
        assert summaries[0].preview == "show me a.txt"
        assert summaries[1].preview == "first prompt"

    def test_empty_conversation_listed(self, store):
        store.save("empty", [])

        (summary,) = store.list_sessions()
        assert summary.message_count == 0
        assert summary.preview == ""

    def test_delete(self, store):
        store.save("abc", _conversation())

        assert store.delete("abc") is True
        assert store.load("abc") == []
        assert store.list_sessions() == []
        assert store.delete("abc") is False

    def test_concurrent_saves(self, store):
        def save(i: int) -> None:
            store.save(f"s{i}", [Message.user(str(i))])

        threads = [threading.Thread(target=save, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store.list_sessions()) == 10

    def test_errors_are_wrapped(self, tmp_path):
        store = SqliteHistoryStore.open(tmp_path / "h.db")
        with store._engine.begin() as conn:
            conn.exec_driver_sql("DROP TABLE messages")

        with pytest.raises(HistoryError):
            store.save("abc", [Message.user("x")])
        store.close()
