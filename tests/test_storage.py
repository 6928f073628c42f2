import sqlite3

import pytest

from pancake_chat.storage import ChatListItem, ChatRecord, ChatStore, user_database_path


@pytest.fixture
def store():
    with ChatStore() as s:
        yield s


def test_user_database_path(tmp_path):
    assert user_database_path(tmp_path, "alice") == tmp_path / "alice" / "UserDatas.db"


def test_records_round_trip_oldest_first(store):
    store.add_record(2, "bob", True, 200, "second", False)
    store.add_record(1, "bob", False, 100, "first", True)
    store.add_record(3, "carol", True, 150, "other", True)
    assert store.recent_records("bob", 0, 50) == [
        ChatRecord(1, False, 100, "first", True),
        ChatRecord(2, True, 200, "second", False),
    ]


def test_records_offset_and_limit(store):
    for i in range(5):
        store.add_record(i, "bob", True, i * 10, f"m{i}", True)
    newest = store.recent_records("bob", 0, 2)
    older = store.recent_records("bob", 2, 2)
    assert [r.content for r in newest] == ["m3", "m4"]
    assert [r.content for r in older] == ["m1", "m2"]


def test_count_and_delete(store):
    store.add_record(1, "bob", True, 1, "a", True)
    store.add_record(2, "bob", True, 2, "b", True)
    store.add_record(3, "carol", True, 3, "c", True)
    assert store.count_records("bob") == 2
    store.delete_records("bob")
    assert store.count_records("bob") == 0
    assert store.count_records("carol") == 1


def test_set_record_sent(store):
    store.add_record(7, "bob", True, 1, "hi", False)
    store.set_record_sent(7, True)
    assert store.recent_records("bob", 0, 1)[0].is_sent is True


def test_duplicate_record_id_raises(store):
    store.add_record(1, "bob", True, 1, "a", True)
    with pytest.raises(sqlite3.IntegrityError):
        store.add_record(1, "bob", True, 2, "b", True)


def test_chat_item_insert_or_ignore(store):
    store.add_chat_item("bob", 10, 2, "hello", True)
    store.add_chat_item("bob", 20, 5, "ignored", False)
    assert store.chat_items() == [ChatListItem("bob", 10, 2, "hello", True)]


def test_update_and_delete_chat_item(store):
    store.add_chat_item("bob", 10, 2, "hello", True)
    store.update_chat_item("bob", 30, 0, "bye", False)
    assert store.chat_items() == [ChatListItem("bob", 30, 0, "bye", False)]
    store.delete_chat_item("bob")
    assert store.chat_items() == []


def test_total_unread_counts_only_shown(store):
    assert store.total_unread() == 0
    store.add_chat_item("bob", 1, 3, "x", True)
    store.add_chat_item("carol", 1, 4, "y", True)
    store.add_chat_item("dave", 1, 100, "z", False)
    assert store.total_unread() == 7


def test_persists_across_reopen(tmp_path):
    path = user_database_path(tmp_path, "alice")
    with ChatStore(path) as s:
        s.add_record(1, "bob", True, 5, "kept", True)
    assert path.exists()
    with ChatStore(path) as s:
        assert s.count_records("bob") == 1
        assert s.recent_records("bob", 0, 10)[0].content == "kept"