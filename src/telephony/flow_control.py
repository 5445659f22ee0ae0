"""Outbound audio flow control for one Twilio media stream.

Synthesized audio arrives in irregular chunks; Twilio wants a sequence of
``media`` messages followed by a ``mark`` it echoes back once that audio has
been played. Frames are batched here and flushed per utterance.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Protocol

from integrations.twilio_streaming import clear_message, mark_message, media_message

LOGGER = logging.getLogger(__name__)


class MediaTransport(Protocol):
    """The subset of a WebSocket connection the pipeline needs."""

    async def send_json(self, data: Any) -> None: ...

    async def receive_text(self) -> str: ...

    async def close(self, code: int = 1000) -> None: ...


class OutboundAudioFlow:
    """FIFO of mu-law frames with mark-based completion tracking.

    Clear policy: ``clear()`` always empties the queue, but only sends Twilio a
    ``clear`` message if audio was enqueued or flushed since the previous
    clear. Clearing an idle stream is a no-op on the wire.
    """

    def __init__(self, transport: MediaTransport, stream_sid: str, *, mark_prefix: str = "response-end") -> None:
        self._transport = transport
        self._stream_sid = stream_sid
        self._mark_prefix = mark_prefix
        self._pending: deque[bytes] = deque()
        self._unacked: set[str] = set()
        self._mark_counter = 0
        self._dirty = False
        self._suppressed = False
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def marks_sent(self) -> int:
        return self._mark_counter

    @property
    def suppressed(self) -> bool:
        return self._suppressed

    @property
    def playback_pending(self) -> bool:
        """Audio is queued here or delivered but not yet confirmed played."""

        return bool(self._pending or self._unacked)

    def enqueue(self, frame: bytes) -> None:
        if self._suppressed or self._closed or not frame:
            return
        self._pending.append(frame)
        self._dirty = True

    async def flush(self) -> str | None:
        """Send every pending frame in order, then one mark. Returns the mark name."""

        if not self._pending or self._closed:
            return None

        sent = 0
        while self._pending:
            frame = self._pending.popleft()
            await self._transport.send_json(media_message(self._stream_sid, frame))
            sent += 1

        self._mark_counter += 1
        name = f"{self._mark_prefix}-{self._mark_counter}"
        self._unacked.add(name)
        await self._transport.send_json(mark_message(self._stream_sid, name))
        LOGGER.debug("Sent %d audio frames to Twilio (mark %s)", sent, name)
        return name

    async def clear(self, *, suppress: bool = False) -> None:
        """Drop queued audio and tell Twilio to discard buffered playback.

        With ``suppress=True`` further frames are dropped until :meth:`resume`.
        """

        self._pending.clear()
        if suppress:
            self._suppressed = True

        if not self._dirty or self._closed:
            return
        self._dirty = False
        self._unacked.clear()
        await self._transport.send_json(clear_message(self._stream_sid))

    def resume(self) -> None:
        self._suppressed = False

    def acknowledge(self, name: str) -> bool:
        """Record Twilio's playback confirmation for a mark we sent."""

        if name not in self._unacked:
            return False
        self._unacked.discard(name)
        if name.startswith(self._mark_prefix):
            LOGGER.debug("Audio playback complete: %s", name)
        return True

    def close(self) -> None:
        self._pending.clear()
        self._unacked.clear()
        self._closed = True
