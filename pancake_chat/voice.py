"""Voice datagrams, the playback jitter buffer and the UDP channel that carries them."""

from __future__ import annotations

import socket
import struct
import threading
from dataclasses import dataclass
from typing import Optional, Tuple

__all__ = [
    "UDP_PORT",
    "MAX_AUDIO_LEN",
    "FRAME_LEN",
    "VOICE_SERVER_PORT",
    "VoicePacket",
    "PlaybackBuffer",
    "VoiceChannel",
]

UDP_PORT = 10086
MAX_AUDIO_LEN = 960000
FRAME_LEN = 960
VOICE_SERVER_PORT = 4400

_HEADER = struct.Struct("<ii")
_PACKET = struct.Struct(f"<ii{FRAME_LEN}s")


@dataclass(frozen=True)
class VoicePacket:
    """One datagram of PCM audio tagged with the call's id."""

    chat_id: int
    data: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))
        if len(self.data) > FRAME_LEN:
            raise ValueError(f"voice frame longer than {FRAME_LEN} bytes")

    def pack(self) -> bytes:
        """Return the fixed-size wire form: id, length, zero-padded frame."""
        return _PACKET.pack(self.chat_id, len(self.data), self.data)

    @classmethod
    def unpack(cls, data: bytes) -> "VoicePacket":
        """Parse a datagram; raises ValueError if it is malformed."""
        if len(data) < _HEADER.size:
            raise ValueError("voice datagram shorter than its header")
        chat_id, length = _HEADER.unpack_from(data)
        if not 0 <= length <= FRAME_LEN:
            raise ValueError(f"bad voice frame length {length}")
        end = _HEADER.size + length
        if len(data) < end:
            raise ValueError("voice datagram truncated")
        return cls(chat_id, bytes(data[_HEADER.size:end]))


class PlaybackBuffer:
    """Thread-safe queue of received PCM bytes handed out a frame at a time."""

    def __init__(self, frame_len: int = FRAME_LEN, max_len: int = MAX_AUDIO_LEN) -> None:
        self.frame_len = frame_len
        self.max_len = max_len
        self._data = bytearray()
        self._index = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data) - self._index

    def append(self, data: bytes) -> None:
        """Add received audio to the end of the buffer."""
        with self._lock:
            self._data.extend(data)

    def next_frame(self) -> Optional[bytes]:
        """Return the next whole frame, or None if not enough audio is buffered."""
        with self._lock:
            end = self._index + self.frame_len
            if len(self._data) < end:
                return None
            frame = bytes(self._data[self._index:end])
            self._index = end
            if self._index > self.max_len:
                del self._data[: self.max_len]
                self._index -= self.max_len
            return frame

    def clear(self) -> None:
        """Drop all buffered audio."""
        with self._lock:
            self._data.clear()
            self._index = 0


class VoiceChannel:
    """UDP socket that sends a call's audio to the relay and collects what comes back."""

    def __init__(
        self,
        chat_id: int,
        server: Tuple[str, int],
        *,
        local_port: int = UDP_PORT,
        sock: Optional[socket.socket] = None,
    ) -> None:
        self.chat_id = chat_id
        self.server = server
        if sock is None:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.bind(("", local_port))
            sock.setblocking(False)
        self._sock: Optional[socket.socket] = sock

    def _socket(self) -> socket.socket:
        if self._sock is None:
            raise ConnectionError("voice channel is closed")
        return self._sock

    def send(self, pcm: bytes) -> int:
        """Send ``pcm`` in frame-sized datagrams; return how many were sent."""
        sock = self._socket()
        sent = 0
        for start in range(0, len(pcm), FRAME_LEN):
            packet = VoicePacket(self.chat_id, pcm[start:start + FRAME_LEN])
            sock.sendto(packet.pack(), self.server)
            sent += 1
        return sent

    def receive_into(self, buffer: PlaybackBuffer) -> int:
        """Move every pending datagram's audio into ``buffer``; return how many
        packets were taken. Malformed datagrams are skipped."""
        sock = self._socket()
        taken = 0
        while True:
            try:
                datagram, _sender = sock.recvfrom(_PACKET.size)
            except (BlockingIOError, InterruptedError):
                break
            try:
                packet = VoicePacket.unpack(datagram)
            except ValueError:
                continue
            buffer.append(packet.data)
            taken += 1
        return taken

    def close(self) -> None:
        """Close the socket; further sends raise ConnectionError."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> "VoiceChannel":
        return self

    def __exit__(self, *args) -> None:
        self.close()