"""Local SQLite store for a logged-in user's chat history and chat list."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Union

__all__ = ["ChatRecord", "ChatListItem", "ChatStore", "user_database_path"]

DATABASE_FILENAME = "UserDatas.db"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS message_tb(
    message_id BIGINT PRIMARY KEY,
    user_name VARCHAR(16),
    is_mine TINYINT,
    timestamp BIGINT,
    text TEXT,
    is_send TINYINT
);
CREATE TABLE IF NOT EXISTS chat_list_tb(
    user_name VARCHAR(16) PRIMARY KEY,
    last_time BIGINT,
    unread_num INT,
    content TEXT,
    is_show TINYINT
);
"""


def user_database_path(base_dir: Union[str, Path], username: str) -> Path:
    """Return where ``username``'s database lives under ``base_dir``."""
    return Path(base_dir) / username / DATABASE_FILENAME


@dataclass(frozen=True)
class ChatRecord:
    """One stored message exchanged with a contact."""

    record_id: int
    is_mine: bool
    timestamp: int
    content: str
    is_sent: bool


@dataclass(frozen=True)
class ChatListItem:
    """One conversation in the chat list."""

    username: str
    last_time: int
    unread_num: int
    content: str
    is_show: bool


class ChatStore:
    """Chat history and chat list kept in one SQLite database."""

    def __init__(self, path: Union[str, Path] = ":memory:") -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(str(path))
        with self._db:
            self._db.executescript(_SCHEMA)

    def recent_records(self, user: str, offset: int, limit: int) -> list[ChatRecord]:
        """Return up to ``limit`` records with ``user``, skipping the ``offset``
        newest, ordered oldest first."""
        rows = self._db.execute(
            "SELECT message_id, is_mine, timestamp, text, is_send FROM message_tb "
            "WHERE user_name = ? ORDER BY timestamp DESC LIMIT ? OFFSET ?",
            (user, limit, offset),
        ).fetchall()
        return [
            ChatRecord(int(rid), bool(mine), int(ts), text or "", bool(sent))
            for rid, mine, ts, text, sent in reversed(rows)
        ]

    def add_record(
        self,
        record_id: int,
        user: str,
        is_mine: bool,
        timestamp: int,
        content: str,
        is_sent: bool,
    ) -> None:
        """Store a message; raises sqlite3.IntegrityError if the id exists."""
        with self._db:
            self._db.execute(
                "INSERT INTO message_tb VALUES(?,?,?,?,?,?)",
                (record_id, user, int(is_mine), timestamp, content, int(is_sent)),
            )

    def set_record_sent(self, record_id: int, is_sent: bool) -> None:
        """Change a message's sent flag."""
        with self._db:
            self._db.execute(
                "UPDATE message_tb SET is_send = ? WHERE message_id = ?",
                (int(is_sent), record_id),
            )

    def count_records(self, user: str) -> int:
        """Return how many messages are stored for ``user``."""
        (count,) = self._db.execute(
            "SELECT COUNT(*) FROM message_tb WHERE user_name = ?", (user,)
        ).fetchone()
        return int(count)

    def delete_records(self, user: str) -> None:
        """Remove every message exchanged with ``user``."""
        with self._db:
            self._db.execute("DELETE FROM message_tb WHERE user_name = ?", (user,))

    def chat_items(self) -> list[ChatListItem]:
        """Return every conversation in the chat list."""
        rows = self._db.execute(
            "SELECT user_name, last_time, unread_num, content, is_show FROM chat_list_tb"
        ).fetchall()
        return [
            ChatListItem(name, int(last), int(unread), content or "", bool(show))
            for name, last, unread, content, show in rows
        ]

    def total_unread(self) -> int:
        """Return the unread count summed over the shown conversations."""
        (total,) = self._db.execute(
            "SELECT SUM(unread_num) FROM chat_list_tb WHERE is_show = 1"
        ).fetchone()
        return int(total or 0)

    def add_chat_item(
        self,
        username: str,
        last_time: int,
        unread_num: int,
        content: str,
        is_show: bool,
    ) -> None:
        """Add a conversation unless one for ``username`` already exists."""
        with self._db:
            self._db.execute(
                "INSERT OR IGNORE INTO chat_list_tb VALUES(?,?,?,?,?)",
                (username, last_time, unread_num, content, int(is_show)),
            )

    def update_chat_item(
        self,
        username: str,
        last_time: int,
        unread_num: int,
        content: str,
        is_show: bool,
    ) -> None:
        """Overwrite the conversation with ``username``."""
        with self._db:
            self._db.execute(
                "UPDATE chat_list_tb SET last_time = ?, unread_num = ?, content = ?, "
                "is_show = ? WHERE user_name = ?",
                (last_time, unread_num, content, int(is_show), username),
            )

    def delete_chat_item(self, username: str) -> None:
        """Remove the conversation with ``username`` from the chat list."""
        with self._db:
            self._db.execute("DELETE FROM chat_list_tb WHERE user_name = ?", (username,))

    def close(self) -> None:
        """Close the database."""
        self._db.close()

    def __enter__(self) -> "ChatStore":
        return self

    def __exit__(self, *args) -> None:
        self.close()