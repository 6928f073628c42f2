import pytest

from pancake_chat.connection import Connection
from pancake_chat.protocol import DataPacket, PacketType, ProtocolError, encode_packet


class FakeSocket:
    def __init__(self, incoming=()):
        self.sent = []
        self.incoming = list(incoming)
        self.closed = False

    def sendall(self, data):
        self.sent.append(bytes(data))

    def recv(self, size):
        return self.incoming.pop(0) if self.incoming else b""

    def close(self):
        self.closed = True


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def make(session_id="", incoming=()):
    sock = FakeSocket(incoming)
    clock = Clock()
    conn = Connection("localhost", session_id=session_id, clock=clock,
                      socket_factory=lambda addr: sock)
    return conn, sock, clock


def test_send_without_connection_raises():
    conn, _, _ = make()
    with pytest.raises(ConnectionError):
        conn.send(DataPacket(PacketType.SMA, b"hi"))


def test_connect_enables_and_sends_nothing_without_session():
    conn, sock, _ = make()
    conn.connect()
    assert conn.enabled is True
    assert sock.sent == []


def test_connect_with_session_sends_rcn():
    conn, sock, _ = make(session_id="token")
    conn.connect()
    assert sock.sent == [encode_packet(PacketType.RCN, "token\r\n")]


def test_send_writes_wire_form():
    conn, sock, _ = make()
    conn.connect()
    conn.send(DataPacket(PacketType.SMA, b"hello"))
    assert sock.sent == [b"SMA\r\nContent-Length: 5\r\n\r\nhello"]


def test_process_queues_and_take_clears():
    conn, _, _ = make()
    data = encode_packet(PacketType.RMA, "a") + encode_packet(PacketType.RMA, "b")
    packets = conn.process(data)
    assert [p.content for p in packets] == [b"a", b"b"]
    assert [p.content for p in conn.pending(PacketType.RMA)] == [b"a", b"b"]
    assert [p.content for p in conn.take(PacketType.RMA)] == [b"a", b"b"]
    assert conn.pending(PacketType.RMA) == []


def test_process_split_across_feeds():
    conn, _, _ = make()
    wire = encode_packet(PacketType.SAV, "payload")
    assert conn.process(wire[:7]) == []
    assert conn.process(wire[7:]) == [DataPacket(PacketType.SAV, b"payload")]


def test_subscribe_and_unsubscribe():
    conn, _, _ = make()
    seen = []
    unsubscribe = conn.subscribe(PacketType.AOC, seen.append)
    conn.process(encode_packet(PacketType.AOC, "42\r\n"))
    unsubscribe()
    conn.process(encode_packet(PacketType.AOC, "43\r\n"))
    assert [p.content for p in seen] == [b"42\r\n"]
    assert len(conn.pending(PacketType.AOC)) == 2


def test_heartbeat_packets_not_announced():
    conn, _, _ = make()
    seen = []
    conn.subscribe(PacketType.HBT, seen.append)
    conn.process(encode_packet(PacketType.HBT, "1\r\n"))
    assert seen == []
    assert len(conn.pending(PacketType.HBT)) == 1


def test_process_reads_from_socket():
    wire = encode_packet(PacketType.RFR, "x")
    conn, _, _ = make(incoming=[wire])
    conn.connect()
    assert conn.process() == [DataPacket(PacketType.RFR, b"x")]


def test_process_empty_read_drops_link():
    conn, sock, _ = make()
    conn.connect()
    assert conn.process() == []
    assert conn.enabled is False
    assert sock.closed is True


def test_malformed_input_raises():
    conn, _, _ = make()
    with pytest.raises(ProtocolError):
        conn.process(b"XYZ\r\n")


def test_heartbeat_sends_time():
    conn, sock, clock = make()
    conn.connect()
    assert conn.heartbeat(clock.now + 10) is True
    assert sock.sent[-1] == encode_packet(PacketType.HBT, f"{int(clock.now + 10)}\r\n")


def test_check_alive_times_out():
    conn, sock, clock = make()
    conn.connect()
    assert conn.check_alive(clock.now + 30) is True
    assert conn.check_alive(clock.now + 31) is False
    assert conn.enabled is False
    assert sock.closed is True
    assert conn.heartbeat(clock.now + 31) is False


def test_check_alive_false_before_connect():
    conn, _, clock = make()
    assert conn.check_alive(clock.now) is False


def test_received_data_keeps_link_alive():
    conn, _, clock = make()
    conn.connect()
    clock.now += 25
    conn.process(encode_packet(PacketType.HBT, "1\r\n"))
    assert conn.check_alive(clock.now + 25) is True