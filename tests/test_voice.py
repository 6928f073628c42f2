import socket

import pytest

from pancake_chat.voice import (
    FRAME_LEN,
    MAX_AUDIO_LEN,
    PlaybackBuffer,
    VoiceChannel,
    VoicePacket,
)


class FakeSocket:
    def __init__(self, incoming=()):
        self.incoming = list(incoming)
        self.sent = []
        self.closed = False

    def sendto(self, data, addr):
        self.sent.append((data, addr))
        return len(data)

    def recvfrom(self, size):
        if not self.incoming:
            raise BlockingIOError
        return self.incoming.pop(0)[:size], ("127.0.0.1", 4400)

    def close(self):
        self.closed = True


def test_packet_round_trip():
    packet = VoicePacket(42, b"\x01\x02\x03")
    assert VoicePacket.unpack(packet.pack()) == packet


def test_packet_has_fixed_size():
    assert len(VoicePacket(1, b"").pack()) == len(VoicePacket(1, b"x" * FRAME_LEN).pack())
    assert len(VoicePacket(1, b"ab").pack()) == 968


def test_packet_too_long_rejected():
    with pytest.raises(ValueError):
        VoicePacket(1, b"x" * (FRAME_LEN + 1))


@pytest.mark.parametrize("data", [b"", b"\x00\x00\x00", VoicePacket(1, b"abcd").pack()[:10]])
def test_unpack_malformed(data):
    with pytest.raises(ValueError):
        VoicePacket.unpack(data)


def test_buffer_hands_out_whole_frames():
    buf = PlaybackBuffer()
    audio = bytes(range(256)) * 8
    buf.append(audio[:FRAME_LEN - 1])
    assert buf.next_frame() is None
    buf.append(audio[FRAME_LEN - 1:2 * FRAME_LEN])
    assert buf.next_frame() == audio[:FRAME_LEN]
    assert buf.next_frame() == audio[FRAME_LEN:2 * FRAME_LEN]
    assert buf.next_frame() is None
    assert len(buf) == 0


def test_buffer_trimming_keeps_stream_intact():
    buf = PlaybackBuffer(frame_len=4, max_len=10)
    audio = bytes(range(40))
    buf.append(audio)
    frames = []
    while (frame := buf.next_frame()) is not None:
        frames.append(frame)
    assert b"".join(frames) == audio
    assert len(buf) == 0


def test_buffer_trim_default_limit():
    buf = PlaybackBuffer()
    total = MAX_AUDIO_LEN + 2 * FRAME_LEN
    buf.append(b"\x07" * total)
    count = 0
    while buf.next_frame() is not None:
        count += 1
    assert count * FRAME_LEN == total


def test_buffer_clear():
    buf = PlaybackBuffer()
    buf.append(b"a" * FRAME_LEN)
    buf.clear()
    assert len(buf) == 0
    assert buf.next_frame() is None


def test_channel_send_splits_into_frames():
    fake = FakeSocket()
    channel = VoiceChannel(7, ("relay.example.com", 4400), sock=fake)
    pcm = b"z" * (FRAME_LEN + 10)
    assert channel.send(pcm) == 2
    packets = [VoicePacket.unpack(data) for data, _ in fake.sent]
    assert [p.chat_id for p in packets] == [7, 7]
    assert b"".join(p.data for p in packets) == pcm
    assert {addr for _, addr in fake.sent} == {("relay.example.com", 4400)}


def test_channel_receive_into_skips_malformed():
    good = VoicePacket(3, b"hello").pack()
    fake = FakeSocket([good, b"bad", good])
    channel = VoiceChannel(3, ("relay.example.com", 4400), sock=fake)
    buf = PlaybackBuffer(frame_len=5)
    assert channel.receive_into(buf) == 2
    assert buf.next_frame() == b"hello"
    assert buf.next_frame() == b"hello"


def test_channel_closed_raises():
    fake = FakeSocket()
    channel = VoiceChannel(1, ("relay.example.com", 4400), sock=fake)
    channel.close()
    assert fake.closed
    with pytest.raises(ConnectionError):
        channel.send(b"abc")


def test_channel_over_loopback():
    receiver = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    receiver.bind(("127.0.0.1", 0))
    receiver.settimeout(2)
    try:
        with VoiceChannel(9, receiver.getsockname(), local_port=0) as channel:
            assert channel.send(b"pcm-data") == 1
            datagram, _ = receiver.recvfrom(2048)
        assert VoicePacket.unpack(datagram) == VoicePacket(9, b"pcm-data")
    finally:
        receiver.close()