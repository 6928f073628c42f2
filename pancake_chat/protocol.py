"""Wire format of the chat server's packets and an incremental parser for it.

A packet looks like::

    TYPE\r\n
    Content-Length: N\r\n
    \r\n
    <N bytes of content>
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Union

__all__ = [
    "PacketType",
    "ProtocolError",
    "DataPacket",
    "PacketParser",
    "parse_packet_type",
    "encode_packet",
]

_CONTENT_LENGTH = b"content-length:"
_LEADING_INT = re.compile(rb"[+-]?\d+")


class PacketType(IntEnum):
    """Kinds of packet exchanged with the server."""

    HBT = 0  # heartbeat
    LGN = 1  # login
    RGT = 2  # register
    LGT = 3  # logout
    SCU = 4  # search user
    ADF = 5  # add friend request
    DEF = 6  # delete friend
    RFR = 7  # reply to friend request
    RCN = 8  # reconnect
    GFI = 9  # get friend list
    AFI = 10  # friend added
    DFI = 11  # friend removed
    SMA = 12  # send message
    RMA = 13  # receive message
    RDY = 14  # server ready
    SAV = 15  # send avatar
    RAV = 16  # receive avatar
    SOC = 17  # start voice call
    ROC = 18  # respond to voice call
    AOC = 19  # voice call accepted
    DOC = 20  # voice call ended by peer
    EOC = 21  # hang up voice call


class ProtocolError(ValueError):
    """Raised when incoming bytes do not follow the packet format."""


def parse_packet_type(name: Union[str, bytes]) -> PacketType:
    """Return the packet type named by ``name``, ignoring case."""
    if isinstance(name, bytes):
        try:
            name = name.decode("ascii")
        except UnicodeDecodeError as exc:
            raise ProtocolError(f"bad packet type {name!r}") from exc
    try:
        return PacketType[name.upper()]
    except KeyError:
        raise ProtocolError(f"unknown packet type {name!r}") from None


def _as_bytes(content: Union[str, bytes, bytearray]) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


def encode_packet(category: PacketType, content: Union[str, bytes] = b"") -> bytes:
    """Return the wire form of a packet of ``category`` carrying ``content``."""
    body = _as_bytes(content)
    head = f"{PacketType(category).name}\r\nContent-Length: {len(body)}\r\n\r\n"
    return head.encode("ascii") + body


@dataclass(frozen=True)
class DataPacket:
    """One packet: its type and its raw content."""

    category: PacketType
    content: bytes = field(default=b"")

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", PacketType(self.category))
        object.__setattr__(self, "content", _as_bytes(self.content))

    @property
    def text(self) -> str:
        """The content decoded as UTF-8."""
        return self.content.decode("utf-8", errors="replace")

    def __len__(self) -> int:
        return len(self.content)

    def encode(self) -> bytes:
        """Return the packet's wire form."""
        return encode_packet(self.category, self.content)


class _State(Enum):
    TYPE_LINE = "type"
    HEADERS = "headers"
    CONTENT = "content"


def _parse_length(value: bytes) -> int:
    match = _LEADING_INT.match(value.lstrip(b" \t"))
    length = int(match.group()) if match else 0
    if length < 0:
        raise ProtocolError(f"negative content length {length}")
    return length


class PacketParser:
    """Turns a byte stream into packets, keeping incomplete data between feeds."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self.reset()

    def reset(self) -> None:
        """Discard buffered data and any partly read packet."""
        self._buffer.clear()
        self._state = _State.TYPE_LINE
        self._category = PacketType.HBT
        self._length = 0

    def _take_line(self) -> bytes | None:
        buf = self._buffer
        for i, byte in enumerate(buf):
            if byte == 0x0D:  # '\r'
                if i + 1 == len(buf):
                    return None
                if buf[i + 1] != 0x0A:
                    raise ProtocolError("carriage return not followed by line feed")
                line = bytes(buf[:i])
                del buf[: i + 2]
                return line
            if byte == 0x0A:  # '\n' without a preceding '\r'
                raise ProtocolError("line feed without carriage return")
        return None

    def _finish(self, content: bytes) -> DataPacket:
        packet = DataPacket(self._category, content)
        self._state = _State.TYPE_LINE
        self._category = PacketType.HBT
        self._length = 0
        return packet

    def _step(self) -> DataPacket | bool:
        """Advance the parser once; return a packet, True to continue, False to wait."""
        if self._state is _State.CONTENT:
            if len(self._buffer) < self._length:
                return False
            content = bytes(self._buffer[: self._length])
            del self._buffer[: self._length]
            return self._finish(content)

        line = self._take_line()
        if line is None:
            return False

        if self._state is _State.TYPE_LINE:
            self._category = parse_packet_type(line)
            self._length = 0
            self._state = _State.HEADERS
            return True

        if not line:
            if self._length:
                self._state = _State.CONTENT
                return True
            return self._finish(b"")
        if line[: len(_CONTENT_LENGTH)].lower() == _CONTENT_LENGTH:
            self._length = _parse_length(line[len(_CONTENT_LENGTH):])
        return True

    def feed(self, data: Union[bytes, bytearray]) -> list[DataPacket]:
        """Add ``data`` and return every packet it completes, in order.

        Raises ProtocolError on malformed input; the parser is then reset.
        """
        self._buffer.extend(data)
        packets: list[DataPacket] = []
        try:
            while True:
                result = self._step()
                if result is False:
                    break
                if isinstance(result, DataPacket):
                    packets.append(result)
        except ProtocolError:
            self.reset()
            raise
        return packets