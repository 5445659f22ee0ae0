from __future__ import annotations

from typing import Final, Literal

from telephony.g711 import linear16_to_ulaw_8k

FRAME_BYTES_8K: Final[int] = 160  # 20ms of 8kHz mu-law

OutputFormat = Literal["ulaw_8000", "pcm_16000"]


class AudioFramer:
    """Re-chunk irregular synthesis output into fixed-size mu-law frames.

    ``ulaw_8000`` input is already Twilio-native and is only re-framed.
    ``pcm_16000`` input is little-endian PCM16 that gets downsampled to 8kHz
    and mu-law encoded first; sample pairs split across chunks are carried over.
    """

    def __init__(self, output_format: OutputFormat, *, frame_bytes: int = FRAME_BYTES_8K) -> None:
        if output_format not in ("ulaw_8000", "pcm_16000"):
            raise ValueError(f"Unsupported synthesis output format: {output_format}")
        self._format = output_format
        self._frame_bytes = frame_bytes
        self._pcm_carry = b""
        self._ulaw = bytearray()

    def push(self, chunk: bytes) -> list[bytes]:
        """Add synthesis bytes and return every complete frame now available."""

        if self._format == "pcm_16000":
            data = self._pcm_carry + chunk
            # 4 bytes = one 16kHz sample pair = one 8kHz output sample.
            usable = len(data) - (len(data) % 4)
            self._pcm_carry = data[usable:]
            self._ulaw.extend(linear16_to_ulaw_8k(data[:usable]))
        else:
            self._ulaw.extend(chunk)

        frames: list[bytes] = []
        while len(self._ulaw) >= self._frame_bytes:
            frames.append(bytes(self._ulaw[: self._frame_bytes]))
            del self._ulaw[: self._frame_bytes]
        return frames

    def finish(self) -> list[bytes]:
        """Return the trailing partial frame, if any, and reset."""

        tail = bytes(self._ulaw)
        self._ulaw.clear()
        self._pcm_carry = b""
        return [tail] if tail else []
