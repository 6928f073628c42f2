"""One open conversation: history paging, outgoing and incoming messages, delivery."""

from __future__ import annotations

import random
import time
from typing import Any, Callable, Dict, List, Optional, Protocol

from .call import CloseReason
from .protocol import DataPacket, PacketType
from .storage import ChatRecord, ChatStore
from .timeline import EntryKind, MessageEntry, Timeline

__all__ = ["ChatSession", "make_message_id", "call_summary", "PAGE_SIZE", "SALT_RANGE"]

PAGE_SIZE = 50
SALT_RANGE = 10000

_CALL_SUMMARIES = {
    CloseReason.FRIEND_OFFLINE: "对方不在线 ☏",
    CloseReason.FRIEND_REJECT: "对方已拒绝 ☏",
    CloseReason.FRIEND_BUSY: "对方忙 ☏",
    CloseReason.CANCEL: "已取消 ☏",
}


class _Sender(Protocol):
    def send(self, packet: DataPacket) -> Any: ...


def make_message_id(timestamp_ms: int, salt: int) -> int:
    """Return a message id built from a millisecond timestamp and a salt below 10000."""
    if not 0 <= salt < SALT_RANGE:
        raise ValueError(f"salt must be in [0, {SALT_RANGE}), got {salt}")
    return int(timestamp_ms) * SALT_RANGE + salt


def call_summary(reason: CloseReason, duration: str = "") -> Optional[str]:
    """Return the chat line recording how a call ended, or None if none is recorded."""
    if reason is CloseReason.NORMAL_CALL:
        return f"通话时长 {duration} ☏"
    return _CALL_SUMMARIES.get(reason)


def _default_salt() -> int:
    return random.randrange(SALT_RANGE)


class ChatSession:
    """The conversation with one contact, backed by the local store."""

    def __init__(
        self,
        store: ChatStore,
        target: str,
        connection: Optional[_Sender] = None,
        *,
        clock: Callable[[], float] = time.time,
        salt: Callable[[], int] = _default_salt,
        on_message: Optional[Callable[[str, str, int], None]] = None,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self.store = store
        self.target = target
        self._connection = connection
        self._clock = clock
        self._salt = salt
        self._on_message = on_message
        self.page_size = page_size
        self.timeline = Timeline()
        self._sending: Dict[int, MessageEntry] = {}
        self.total = store.count_records(target)
        self.load_older(page_size)

    @property
    def sending(self) -> List[int]:
        """Ids of messages sent but not yet confirmed by the server."""
        return list(self._sending)

    def _entry_from_record(self, record: ChatRecord) -> MessageEntry:
        kind = EntryKind.ME if record.is_mine else EntryKind.OTHER
        return MessageEntry(
            kind,
            record.content,
            record.timestamp // 1000,
            record.record_id,
            record.is_sent,
        )

    def has_more(self) -> bool:
        """Whether older messages remain in the store that are not loaded."""
        return len(self.timeline.messages()) != self.total

    def load_older(self, count: int = PAGE_SIZE) -> List[MessageEntry]:
        """Load up to ``count`` messages older than those shown; return them, oldest first."""
        loaded = len(self.timeline.messages())
        records = self.store.recent_records(self.target, loaded, count)
        entries = [self._entry_from_record(record) for record in records]
        self.timeline.insert_older(entries)
        return entries

    def _new_id(self) -> int:
        return make_message_id(int(self._clock() * 1000), self._salt())

    def _announce(self, text: str, timestamp_ms: int) -> None:
        if self._on_message is not None:
            self._on_message(self.target, text, timestamp_ms)

    def add_my_message(self, text: str) -> MessageEntry:
        """Store and show a message of ours, not yet confirmed as sent."""
        now = self._clock()
        timestamp_ms = int(now * 1000)
        message_id = make_message_id(timestamp_ms, self._salt())
        self.store.add_record(message_id, self.target, True, timestamp_ms, text, False)
        self.total += 1
        self._announce(text, timestamp_ms)
        return self.timeline.append(
            MessageEntry(EntryKind.ME, text, int(now), message_id, False)
        )

    def add_other_message(self, text: str, timestamp_ms: int) -> MessageEntry:
        """Store and show a message received from the contact."""
        message_id = self._new_id()
        self.store.add_record(message_id, self.target, False, timestamp_ms, text, True)
        self.total += 1
        self._announce(text, timestamp_ms)
        return self.timeline.append(
            MessageEntry(EntryKind.OTHER, text, int(timestamp_ms) // 1000, message_id, True)
        )

    def send_message(self, text: str) -> MessageEntry:
        """Add a message of ours and send it; raises ConnectionError without a link."""
        if self._connection is None:
            raise ConnectionError("no connection to send through")
        entry = self.add_my_message(text)
        assert entry.message_id is not None
        self._sending[entry.message_id] = entry
        content = f"{entry.message_id}\r\n{self.target}\r\n{text}\r\n"
        self._connection.send(DataPacket(PacketType.SMA, content))
        return entry

    def _confirm(self, entry: MessageEntry) -> None:
        assert entry.message_id is not None
        self.store.set_record_sent(entry.message_id, True)
        entry.sent = True

    def mark_sent(self, message_id: int) -> bool:
        """Record the server's confirmation of a message; return whether it was pending."""
        entry = self._sending.pop(message_id, None)
        if entry is None:
            return False
        self._confirm(entry)
        return True

    def record_call(self, reason: CloseReason, duration: str = "") -> Optional[MessageEntry]:
        """Add a line recording how a call ended; return it, or None if none applies."""
        content = call_summary(reason, duration)
        if content is None:
            return None
        entry = self.add_my_message(content)
        self._confirm(entry)
        return entry