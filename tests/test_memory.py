"""Unit tests for the conversation store."""

import threading

import pytest

from chatbot.core.memory import ConversationStore
from chatbot.models import ChatContext


@pytest.fixture
def store(clock) -> ConversationStore:
    return ConversationStore(cap=3, clock=clock)


class TestAppendAndGet:
    def test_first_append_creates_record(self, store, clock):
        context = ChatContext(subject="Biology")
        store.append("c1", "alice", "Hi", "Hello!", context)

        record = store.get("c1")
        assert record.id == "c1"
        assert record.user_id == "alice"
        assert record.started_at == clock.now
        assert record.last_message_at == clock.now
        assert record.context == context
        assert [turn.message for turn in record.messages] == ["Hi"]
        assert record.messages[0].conversation_id == "c1"
        assert record.messages[0].id.startswith("msg_")

    def test_appends_keep_arrival_order(self, store, clock):
        for index in range(4):
            store.append("c1", "alice", f"m{index}", f"r{index}")
            clock.advance(seconds=1)

        record = store.get("c1")
        assert [turn.message for turn in record.messages] == ["m0", "m1", "m2", "m3"]
        assert record.last_message_at == record.messages[-1].timestamp

    def test_get_unknown_returns_none(self, store):
        assert store.get("missing") is None

    def test_returned_records_are_copies(self, store):
        store.append("c1", "alice", "Hi", "Hello!")

        snapshot = store.get("c1")
        snapshot.messages.clear()

        assert len(store.get("c1").messages) == 1

    def test_turns_are_frozen(self, store):
        turn = store.append("c1", "alice", "Hi", "Hello!")
        with pytest.raises(Exception):
            turn.response = "changed"


class TestListAndDelete:
    def test_list_newest_first(self, store, clock):
        store.append("old", "alice", "a", "b")
        clock.advance(minutes=1)
        store.append("new", "alice", "a", "b")
        clock.advance(minutes=1)
        store.append("old", "alice", "again", "b")
        store.append("other", "bob", "a", "b")

        assert [record.id for record in store.list_by_user("alice")] == ["old", "new"]
        assert [record.id for record in store.list_by_user("bob")] == ["other"]
        assert store.list_by_user("nobody") == []

    def test_delete(self, store):
        store.append("c1", "alice", "a", "b")

        assert store.delete("c1") is True
        assert store.get("c1") is None
        assert store.list_by_user("alice") == []
        assert store.delete("c1") is False


class TestEviction:
    def test_cap_evicts_oldest_whole_conversations(self, store, clock):
        for index in range(3):
            store.append(f"c{index}", "alice", "first", "reply")
            store.append(f"c{index}", "alice", "second", "reply")
            clock.advance(minutes=1)

        store.append("c3", "alice", "newest", "reply")

        remaining = [record.id for record in store.list_by_user("alice")]
        assert remaining == ["c3", "c2", "c1"]
        assert store.get("c0") is None
        assert len(store.get("c1").messages) == 2

    def test_recent_activity_protects_conversation(self, store, clock):
        for index in range(3):
            store.append(f"c{index}", "alice", "m", "r")
            clock.advance(minutes=1)
        store.append("c0", "alice", "bump", "r")
        clock.advance(minutes=1)

        store.append("c3", "alice", "m", "r")

        ids = {record.id for record in store.list_by_user("alice")}
        assert ids == {"c0", "c2", "c3"}

    def test_cap_is_per_user(self, store):
        for index in range(3):
            store.append(f"a{index}", "alice", "m", "r")
            store.append(f"b{index}", "bob", "m", "r")

        assert len(store.list_by_user("alice")) == 3
        assert len(store.list_by_user("bob")) == 3


def test_stats(store):
    store.append("c1", "alice", "a", "b")
    store.append("c1", "alice", "a", "b")
    store.append("c2", "bob", "a", "b")

    assert store.stats() == {"totalConversations": 2, "totalUsers": 2, "totalMessages": 3}


def test_concurrent_appends_are_not_lost():
    store = ConversationStore(cap=100)

    def worker(user: str) -> None:
        for index in range(50):
            store.append("shared", user, f"{user}-{index}", "r")

    threads = [threading.Thread(target=worker, args=(name,)) for name in ("alice", "bob", "carol")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    record = store.get("shared")
    assert len(record.messages) == 150
    for user in ("alice", "bob", "carol"):
        own = [turn.message for turn in record.messages if turn.message.startswith(f"{user}-")]
        assert own == [f"{user}-{index}" for index in range(50)]
