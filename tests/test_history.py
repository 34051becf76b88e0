"""
tests.test_history
~~~~~~~~~~~~~~~~~~

HistoryBuffer / HistoryStore 有界日志测试。
"""
from __future__ import annotations

import pytest

from roomrelay.services.history import ChatMessage, HistoryBuffer, HistoryStore


def make_message(i: int, room_id: str = "general") -> ChatMessage:
    return ChatMessage(
        text=f"msg-{i}",
        sender_name="Alice",
        sender_session_id="abc",
        room_id=room_id,
        timestamp=1_700_000_000_000 + i,
    )


class TestHistoryBuffer:

    def test_keeps_last_entries_in_order(self) -> None:
        """追加 150 条后应只保留最后 100 条，且顺序不变。"""
        buffer = HistoryBuffer(limit=100)
        for i in range(150):
            buffer.append(make_message(i))

        texts = [m.text for m in buffer.snapshot()]

        assert len(buffer) == 100
        assert texts == [f"msg-{i}" for i in range(50, 150)]

    def test_never_exceeds_limit(self) -> None:
        buffer = HistoryBuffer(limit=3)
        for i in range(10):
            buffer.append(make_message(i))
            assert len(buffer) <= 3

    def test_rejects_non_positive_limit(self) -> None:
        with pytest.raises(ValueError):
            HistoryBuffer(limit=0)


class TestHistoryStore:

    def test_unknown_room_is_empty(self) -> None:
        store = HistoryStore(limit=10)

        assert store.get("nowhere") == ()
        assert "nowhere" not in store

    def test_append_creates_room_lazily(self) -> None:
        store = HistoryStore(limit=10)
        store.append("general", make_message(1))

        assert "general" in store
        assert [m.text for m in store.get("general")] == ["msg-1"]

    def test_delete(self) -> None:
        store = HistoryStore(limit=10)
        store.append("general", make_message(1))

        store.delete("general")
        store.delete("general")

        assert store.get("general") == ()
