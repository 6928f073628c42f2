"""State of one voice call: who rang, what the server said, and how it ended."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Tuple, Union

from .protocol import DataPacket, PacketType

__all__ = [
    "CallMode",
    "CloseReason",
    "VoiceCall",
    "parse_chat_id",
    "format_duration",
    "wait_ball_frame",
]

_WAIT_BALL_FRAMES: Tuple[Tuple[int, int, int], ...] = ((2, 1, 0), (1, 2, 0), (0, 1, 2))


class CallMode(Enum):
    """Which stage the call is at."""

    WAITING_FOR_ACCEPT = "waiting_for_accept"
    CHOOSE_ACCEPT_OR_NOT = "choose_accept_or_not"
    CHATTING = "chatting"


class CloseReason(Enum):
    """Why a call ended."""

    NORMAL_CALL = "normal_call"
    FRIEND_OFFLINE = "friend_offline"
    FRIEND_CANCEL = "friend_cancel"
    FRIEND_REJECT = "friend_reject"
    FRIEND_BUSY = "friend_busy"
    CANCEL = "cancel"
    REJECT = "reject"


class _Sender(Protocol):
    def send(self, packet: DataPacket) -> Any: ...


def _as_text(content: Union[str, bytes]) -> str:
    if isinstance(content, (bytes, bytearray)):
        return bytes(content).decode("utf-8", errors="replace")
    return content


def parse_chat_id(content: Union[str, bytes]) -> int:
    """Return the call id carried by an accepted-call packet.

    The id is the digits before the first CRLF; raises ValueError otherwise.
    """
    head = _as_text(content).partition("\r\n")[0]
    if head and not (head.isascii() and head.isdigit()):
        raise ValueError(f"bad call id {head!r}")
    return int(head or 0)


def format_duration(seconds: int) -> str:
    """Format a call length as MM:SS."""
    if seconds < 0:
        raise ValueError("negative duration")
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


def wait_ball_frame(step: int) -> Tuple[int, int, int]:
    """Return the image index of each of the three waiting dots at ``step``."""
    return _WAIT_BALL_FRAMES[step % len(_WAIT_BALL_FRAMES)]


class VoiceCall:
    """A voice call with one contact, driven by server packets and user actions."""

    def __init__(
        self,
        target: str,
        mode: CallMode,
        connection: _Sender,
        *,
        clock: Callable[[], float] = time.time,
        voice_factory: Optional[Callable[[int], Any]] = None,
        on_close: Optional[Callable[[CloseReason, str], None]] = None,
    ) -> None:
        if mode is CallMode.CHATTING:
            raise ValueError("a call starts waiting or ringing, not chatting")
        self.target = target
        self.mode = mode
        self._connection = connection
        self._clock = clock
        self._voice_factory = voice_factory
        self._on_close = on_close
        self.voice: Any = None
        self.chat_id: Optional[int] = None
        self.ringing = True
        self.close_reason: Optional[CloseReason] = None
        self.duration = ""
        self._started_at: Optional[float] = None

    @property
    def finished(self) -> bool:
        return self.close_reason is not None

    def _require_active(self) -> None:
        if self.finished:
            raise RuntimeError("call already ended")

    def _require_mode(self, mode: CallMode) -> None:
        self._require_active()
        if self.mode is not mode:
            raise RuntimeError(f"call is {self.mode.value}, not {mode.value}")

    def _finish(self, reason: CloseReason, duration: str = "") -> CloseReason:
        self.ringing = False
        self.close_reason = reason
        self.duration = duration
        if self._on_close is not None:
            self._on_close(reason, duration)
        return reason

    def _stop_voice(self) -> None:
        if self.voice is not None:
            self.voice.stop()

    def start_request(self) -> None:
        """Ask the server to ring the target."""
        self._require_mode(CallMode.WAITING_FOR_ACCEPT)
        self._connection.send(DataPacket(PacketType.SOC, f"{self.target}\r\n"))

    def handle_accepted(self, content: Union[str, bytes]) -> None:
        """React to the server's call-started packet; raises ValueError on a bad id."""
        self._require_active()
        if not content:
            return
        chat_id = parse_chat_id(content)
        self.chat_id = chat_id
        if self._voice_factory is not None:
            self.voice = self._voice_factory(chat_id)
            self.voice.start()
        self.ringing = False
        self.mode = CallMode.CHATTING
        self._started_at = self._clock()

    def handle_start_response(self, content: Union[str, bytes]) -> Optional[CloseReason]:
        """React to the server's answer to a call request; return the reason the
        call ended, or None while it goes on."""
        self._require_active()
        text = _as_text(content)
        if text.startswith("-1"):
            return self._finish(CloseReason.FRIEND_OFFLINE)
        if text.startswith("0"):
            return self._finish(CloseReason.FRIEND_BUSY)
        return None

    def handle_ended(self) -> CloseReason:
        """React to the peer ending the call."""
        self._require_active()
        if self.mode is CallMode.WAITING_FOR_ACCEPT:
            return self._finish(CloseReason.FRIEND_REJECT)
        if self.mode is CallMode.CHOOSE_ACCEPT_OR_NOT:
            return self._finish(CloseReason.FRIEND_CANCEL)
        duration = format_duration(self.elapsed())
        self._stop_voice()
        return self._finish(CloseReason.NORMAL_CALL, duration)

    def accept(self) -> None:
        """Answer an incoming call."""
        self._require_mode(CallMode.CHOOSE_ACCEPT_OR_NOT)
        self._connection.send(DataPacket(PacketType.ROC, "1\r\n"))

    def reject(self) -> CloseReason:
        """Decline an incoming call."""
        self._require_mode(CallMode.CHOOSE_ACCEPT_OR_NOT)
        self._connection.send(DataPacket(PacketType.ROC, "0\r\n"))
        return self._finish(CloseReason.REJECT)

    def cancel(self) -> CloseReason:
        """Withdraw an outgoing call before it is answered."""
        self._require_mode(CallMode.WAITING_FOR_ACCEPT)
        self._connection.send(DataPacket(PacketType.EOC, b""))
        return self._finish(CloseReason.CANCEL)

    def hang_up(self) -> CloseReason:
        """End a call in progress."""
        self._require_mode(CallMode.CHATTING)
        duration = format_duration(self.elapsed())
        self._connection.send(DataPacket(PacketType.EOC, b""))
        self._stop_voice()
        return self._finish(CloseReason.NORMAL_CALL, duration)

    def close(self) -> CloseReason:
        """End the call in whatever way suits its stage."""
        if self.mode is CallMode.WAITING_FOR_ACCEPT:
            return self.cancel()
        if self.mode is CallMode.CHOOSE_ACCEPT_OR_NOT:
            return self.reject()
        return self.hang_up()

    def elapsed(self) -> int:
        """Whole seconds since the call was answered; 0 before that."""
        if self._started_at is None:
            return 0
        return max(0, int(self._clock() - self._started_at))