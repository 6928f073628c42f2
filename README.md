# pancake-chat

The client-side core of a small instant-messaging system. It holds the parts
a chat client needs to talk to its server and to keep track of conversations.
It uses only the standard library.

## Modules

- `pancake_chat.protocol`: the text wire protocol. Each packet is a type line,
  then a `Content-Length` header, then a blank line and the body.
  `PacketType` lists the packet kinds. `DataPacket.encode()` and
  `encode_packet()` build the wire form. `parse_packet_type()` reads a type
  name, ignoring case. `PacketParser.feed()` returns the packets completed by
  each chunk of a byte stream, keeping partial data between calls; malformed
  input raises `ProtocolError` and resets the parser.
- `pancake_chat.connection`: `Connection` wraps a TCP socket (port 4399 by
  default). `process()` parses incoming bytes, queues the packets by type and
  passes them to callbacks registered with `subscribe()` (heartbeat, logout and
  server-ready packets are queued but not announced). `pending()` looks at a
  queue and `take()` empties it. `connect()` opens the socket and calls
  `relogin()`, which resends the session id when there is one.
  `heartbeat(now)` sends a heartbeat while `check_alive(now)` holds; after 30
  seconds without data the link is dropped.
- `pancake_chat.storage`: `ChatStore` keeps the message history
  (`ChatRecord`) and the conversation list (`ChatListItem`) in SQLite. It works
  as a context manager. `user_database_path()` gives the per-user database file
  location.
- `pancake_chat.timeline`: `Timeline` holds the rows of a conversation
  (`MessageEntry` of kind `EntryKind`) and puts a time separator before a
  message more than 180 seconds after the previous row.
  `format_message_time()` renders a timestamp relative to now (clock time,
  "昨天", weekday or full date, in UTC+8).
- `pancake_chat.session`: `ChatSession` handles one conversation. It loads
  history 50 messages at a time with `load_older()`, stores outgoing and
  incoming messages, sends messages through a connection with
  `send_message()`, marks them delivered with `mark_sent()` and records how a
  voice call ended with `record_call()`. `make_message_id()` and
  `call_summary()` are exposed as functions.
- `pancake_chat.call`: `VoiceCall` is the state machine of one voice call
  (`CallMode`), from request or ringing through to its end (`CloseReason`).
  `format_duration()` gives MM:SS, `parse_chat_id()` reads the call id and
  `wait_ball_frame()` gives the waiting-animation frame.
- `pancake_chat.voice`: the UDP audio transport. `VoicePacket` packs and
  unpacks fixed-size datagrams of up to 960 bytes of PCM, `PlaybackBuffer`
  hands out received audio a frame at a time, and `VoiceChannel` sends and
  receives the datagrams (local port 10086 by default).
- `pancake_chat.badge`: `badge_text()` and `badge_width()` give the label and
  pixel width of an unread-count badge; `BadgeStyle` chooses how counts above
  99 are shown.

## Installing

```
pip install .
```

With the test tools:

```
pip install ".[test]"
```

## Example

```python
from pancake_chat.protocol import DataPacket, PacketParser, PacketType

wire = DataPacket(PacketType.SMA, b"42\r\nalice\r\nhello\r\n").encode()

parser = PacketParser()
for packet in parser.feed(wire):
    print(packet.category.name, packet.content)
```

```python
from pancake_chat.storage import ChatStore

with ChatStore(":memory:") as store:
    store.add_record(1, "alice", True, 1_700_000_000_000, "hi", False)
    print(store.count_records("alice"))
```

## What it does not do

- There is no user interface and no command to run; the package is a library.
- It does not log in or register users; `Connection` only resends a session id
  it is given.
- It does not reconnect or send heartbeats on a timer by itself: the caller
  decides when to call `connect()`, `heartbeat()` and `process()`.
- It does not capture or play audio. `VoiceChannel` and `PlaybackBuffer` move
  PCM bytes; recording and playback devices are up to the caller.
- It does not store or transfer avatars or other files.