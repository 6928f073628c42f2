"""The rows of a conversation view: messages plus the time separators between them."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Iterator, List, Optional

__all__ = [
    "EntryKind",
    "MessageEntry",
    "Timeline",
    "format_message_time",
    "needs_time_separator",
    "SEPARATOR_GAP",
]

# Two messages further apart than this many seconds get a time separator.
SEPARATOR_GAP = 180

_DAY = 86400
_DAY_OFFSET = 57600  # moves day boundaries to midnight at UTC+8
_DISPLAY_TZ = timezone(timedelta(hours=8))
_WEEKDAYS = ("星期一", "星期二", "星期三", "星期四", "星期五", "星期六", "星期日")


class EntryKind(Enum):
    """What a row of the conversation shows."""

    SYSTEM = "system"
    ME = "me"
    OTHER = "other"
    TIME = "time"
    LOAD = "load"


@dataclass
class MessageEntry:
    """One row: a message, a time separator or a loading marker.

    ``timestamp`` is in whole seconds.
    """

    kind: EntryKind
    text: str = ""
    timestamp: int = 0
    message_id: Optional[int] = None
    sent: bool = False

    @property
    def is_message(self) -> bool:
        """Whether the row holds a message from either side."""
        return self.kind in (EntryKind.ME, EntryKind.OTHER)

    @classmethod
    def separator(cls, timestamp: int) -> "MessageEntry":
        """Return a time separator for ``timestamp``."""
        return cls(EntryKind.TIME, str(timestamp), timestamp)


def _day_number(timestamp: int) -> int:
    return (int(timestamp) - _DAY_OFFSET) // _DAY


def format_message_time(timestamp: int, now: int) -> str:
    """Return the label shown for a message sent at ``timestamp`` when it is ``now``.

    Today gives the clock time, yesterday is prefixed 昨天, the rest of the
    week gives the weekday, and anything older (or in the future) the full date.
    """
    moment = datetime.fromtimestamp(int(timestamp), _DISPLAY_TZ)
    clock = moment.strftime("%H:%M")
    days = _day_number(now) - _day_number(timestamp)
    if days == 0:
        return clock
    if days == 1:
        return f"昨天 {clock}"
    if 1 < days < 7:
        return f"{_WEEKDAYS[moment.weekday()]} {clock}"
    return f"{moment.year:04d}年{moment.month:02d}月{moment.day:02d}日 {clock}"


def needs_time_separator(previous: Optional[int], current: int) -> bool:
    """Whether a separator goes before a row at ``current`` that follows one at
    ``previous`` (None when nothing precedes it)."""
    if previous is None:
        return True
    return current - previous > SEPARATOR_GAP


class Timeline:
    """Ordered rows of a conversation, adding time separators as messages arrive."""

    def __init__(self) -> None:
        self._rows: List[MessageEntry] = []
        self._messages: List[MessageEntry] = []

    def append(self, entry: MessageEntry) -> MessageEntry:
        """Add ``entry`` at the end, preceded by a separator when it is a message
        far enough from the last row; return the entry."""
        if entry.is_message:
            previous = self._rows[-1].timestamp if self._rows else None
            if needs_time_separator(previous, entry.timestamp):
                self._rows.append(MessageEntry.separator(entry.timestamp))
            self._messages.append(entry)
        self._rows.append(entry)
        return entry

    def insert_older(self, entries: Iterable[MessageEntry]) -> int:
        """Put older messages, given oldest first, before the current rows; return
        how many rows were inserted, separators included."""
        block: List[MessageEntry] = []
        older: List[MessageEntry] = []
        for entry in entries:
            previous = block[-1].timestamp if block else None
            if needs_time_separator(previous, entry.timestamp):
                block.append(MessageEntry.separator(entry.timestamp))
            block.append(entry)
            if entry.is_message:
                older.append(entry)
        self._rows[:0] = block
        self._messages[:0] = older
        return len(block)

    def messages(self) -> List[MessageEntry]:
        """Return the message rows, oldest first."""
        return list(self._messages)

    def clear(self) -> None:
        """Remove every row."""
        self._rows.clear()
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[MessageEntry]:
        return iter(list(self._rows))