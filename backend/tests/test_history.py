"""Tests for the bounded HistoryStore."""
import pytest

from controverse.chat.history import MAX_HISTORY, HistoryStore
from controverse.chat.schemas import ChatMessage


def make_message(message_id, author="alice", text="hello") -> ChatMessage:
    return ChatMessage(
        id=message_id,
        text=text,
        userId=author,
        nickname=author.title(),
        color="hsl(10, 70%, 60%)",
    )


class TestBound:
    def test_default_bound(self):
        assert HistoryStore().max_history == MAX_HISTORY == 50

    def test_invalid_bound_rejected(self):
        with pytest.raises(ValueError):
            HistoryStore(max_history=0)

    def test_size_never_exceeds_bound(self):
        store = HistoryStore(max_history=5)
        for i in range(23):
            store.append(make_message(i))
            assert len(store) <= 5
        assert len(store) == 5

    def test_oldest_entries_are_evicted_first(self):
        store = HistoryStore(max_history=3)
        evicted = []
        for i in range(5):
            evicted.extend(store.append(make_message(i)))

        assert [m.id for m in store.snapshot()] == [2, 3, 4]
        assert [m.id for m in evicted] == [0, 1]

    def test_append_below_bound_evicts_nothing(self):
        store = HistoryStore(max_history=3)
        assert store.append(make_message(1)) == []


class TestAuthorScopedOperations:
    def test_find_by_id_and_author(self):
        store = HistoryStore()
        store.append(make_message("m1", author="alice"))

        assert store.find_by_id_and_author("m1", "alice").text == "hello"
        assert store.find_by_id_and_author("m1", "bob") is None
        assert store.find_by_id_and_author("m2", "alice") is None

    def test_remove_only_by_author(self):
        store = HistoryStore()
        store.append(make_message("m1", author="alice"))

        assert store.remove_by_id_and_author("m1", "bob") is False
        assert len(store) == 1
        assert store.remove_by_id_and_author("m1", "alice") is True
        assert len(store) == 0
        assert store.remove_by_id_and_author("m1", "alice") is False

    def test_edit_only_by_author(self):
        store = HistoryStore()
        store.append(make_message("m1", author="alice"))

        assert store.edit_by_id_and_author("m1", "bob", "hijacked") is None
        unchanged = store.snapshot()[0]
        assert unchanged.text == "hello"
        assert unchanged.edited is False
        assert unchanged.editedAt is None

        edited = store.edit_by_id_and_author("m1", "alice", "updated")
        assert edited.text == "updated"
        assert edited.edited is True
        assert edited.editedAt is not None
        assert store.snapshot()[0].text == "updated"

    def test_ids_match_by_type_and_value(self):
        store = HistoryStore()
        store.append(make_message(1))

        assert store.find_by_id_and_author(True, "alice") is None
        assert store.find_by_id_and_author(1.0, "alice") is None
        assert store.remove_by_id_and_author(True, "alice") is False
        assert store.edit_by_id_and_author(1.0, "alice", "x") is None
        assert store.find_by_id_and_author(1, "alice").id == 1

    def test_colliding_ids_affect_oldest_match(self):
        store = HistoryStore()
        store.append(make_message("dup", author="alice", text="first"))
        store.append(make_message("dup", author="alice", text="second"))

        store.edit_by_id_and_author("dup", "alice", "changed")
        assert [m.text for m in store.snapshot()] == ["changed", "second"]

    def test_colliding_ids_across_authors_are_isolated(self):
        store = HistoryStore()
        store.append(make_message("dup", author="alice", text="mine"))
        store.append(make_message("dup", author="bob", text="his"))

        assert store.remove_by_id_and_author("dup", "bob") is True
        assert [m.text for m in store.snapshot()] == ["mine"]


class TestIsolation:
    def test_snapshot_does_not_alias_state(self):
        store = HistoryStore()
        store.append(make_message("m1"))

        snapshot = store.snapshot()
        snapshot[0].text = "tampered"
        snapshot.clear()

        assert store.snapshot()[0].text == "hello"

    def test_appended_object_is_copied(self):
        store = HistoryStore()
        message = make_message("m1")
        store.append(message)
        message.text = "tampered"

        assert store.snapshot()[0].text == "hello"

    def test_find_returns_copy(self):
        store = HistoryStore()
        store.append(make_message("m1"))
        found = store.find_by_id_and_author("m1", "alice")
        found.text = "tampered"

        assert store.snapshot()[0].text == "hello"

    def test_clear(self):
        store = HistoryStore()
        store.append(make_message("m1"))
        store.clear()
        assert len(store) == 0
        assert store.snapshot() == []
