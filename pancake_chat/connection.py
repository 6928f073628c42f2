"""Client connection to the chat server: packet queues, heartbeat and relogin."""

from __future__ import annotations

import socket
import time
from collections import defaultdict
from typing import Callable, Optional, Union

from .protocol import DataPacket, PacketParser, PacketType

__all__ = ["Connection"]

HBT_INTERVAL = 20
RECONNECT_INTERVAL = 6
LONGEST_NO_DATA_INTERVAL = 30
READ_BUFFER_SIZE = 1024
DEFAULT_PORT = 4399

# Packet types that are queued but announce nothing to subscribers.
_SILENT = frozenset({PacketType.HBT, PacketType.LGT, PacketType.RDY})

Callback = Callable[[DataPacket], None]


class Connection:
    """A TCP link to the server that queues incoming packets by type."""

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        *,
        session_id: str = "",
        clock: Callable[[], float] = time.time,
        socket_factory: Callable[..., socket.socket] = socket.create_connection,
    ) -> None:
        self.host = host
        self.port = port
        self.session_id = session_id
        self.enabled = False
        self._clock = clock
        self._socket_factory = socket_factory
        self._sock: Optional[socket.socket] = None
        self._parser = PacketParser()
        self._latest = 0.0
        self._queues: dict[PacketType, list[DataPacket]] = defaultdict(list)
        self._listeners: dict[PacketType, list[Callback]] = defaultdict(list)

    def connect(self) -> None:
        """Open the link if it is down, then log in again."""
        if self.enabled:
            return
        self._drop()
        self._sock = self._socket_factory((self.host, self.port))
        self.relogin(self._clock())

    def close(self) -> None:
        """Close the link."""
        self._drop()

    def _drop(self) -> None:
        self.enabled = False
        self._parser.reset()
        if self._sock is not None:
            try:
                self._sock.close()
            finally:
                self._sock = None

    def send(self, packet: DataPacket) -> None:
        """Write ``packet`` to the server; raises ConnectionError if not connected."""
        if self._sock is None:
            raise ConnectionError("not connected")
        self._sock.sendall(packet.encode())

    def process(self, data: Union[bytes, bytearray, None] = None) -> list[DataPacket]:
        """Parse ``data`` (or read from the socket when None), queue and announce
        the completed packets and return them.

        Raises protocol.ProtocolError on malformed input.
        """
        if data is None:
            if self._sock is None:
                raise ConnectionError("not connected")
            data = self._sock.recv(READ_BUFFER_SIZE)
            if not data:
                self._drop()
                return []
        self._latest = self._clock()
        packets = self._parser.feed(data)
        for packet in packets:
            self._queues[packet.category].append(packet)
            if packet.category not in _SILENT:
                for callback in list(self._listeners[packet.category]):
                    callback(packet)
        return packets

    def pending(self, category: PacketType) -> list[DataPacket]:
        """Return the queued packets of ``category`` without removing them."""
        return list(self._queues[PacketType(category)])

    def take(self, category: PacketType) -> list[DataPacket]:
        """Remove and return the queued packets of ``category``."""
        return self._queues.pop(PacketType(category), [])

    def subscribe(self, category: PacketType, callback: Callback) -> Callable[[], None]:
        """Call ``callback`` with each new packet of ``category``; return an
        unsubscribe function."""
        listeners = self._listeners[PacketType(category)]
        listeners.append(callback)

        def unsubscribe() -> None:
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def check_alive(self, now: float) -> bool:
        """Return whether the link is usable, dropping it after too long a silence."""
        if not self.enabled:
            return False
        if now - self._latest > LONGEST_NO_DATA_INTERVAL:
            self._drop()
            return False
        return True

    def heartbeat(self, now: float) -> bool:
        """Send a heartbeat if the link is alive; return whether one was sent."""
        if not self.check_alive(now):
            return False
        self.send(DataPacket(PacketType.HBT, f"{int(now)}\r\n"))
        return True

    def relogin(self, now: float) -> None:
        """Mark the link usable and resume the session if there is one."""
        self._latest = now
        if self.session_id:
            self.send(DataPacket(PacketType.RCN, f"{self.session_id}\r\n"))
        self.enabled = True