from __future__ import annotations

import numpy as np
import pytest

from telephony.framing import AudioFramer
from telephony.g711 import encode_sample, pcm16_to_bytes


def test_ulaw_input_is_reframed_without_transcoding() -> None:
    framer = AudioFramer("ulaw_8000")

    assert framer.push(b"\x01" * 100) == []
    frames = framer.push(b"\x02" * 250)
    assert [len(f) for f in frames] == [160, 160]
    assert frames[0] == b"\x01" * 100 + b"\x02" * 60

    tail = framer.finish()
    assert tail == [b"\x02" * 30]
    assert framer.finish() == []


def test_pcm_input_is_downsampled_and_encoded_across_chunk_boundaries() -> None:
    framer = AudioFramer("pcm_16000")
    pcm = pcm16_to_bytes(np.full(320, 2000, dtype=np.int16))  # 640 bytes -> 160 mu-law bytes

    # Split mid-sample so the carry-over path is exercised.
    frames = framer.push(pcm[:333]) + framer.push(pcm[333:])
    assert len(frames) == 1
    assert frames[0] == bytes([encode_sample(2000)]) * 160
    assert framer.finish() == []


def test_custom_frame_size() -> None:
    framer = AudioFramer("ulaw_8000", frame_bytes=80)
    assert len(framer.push(b"\xff" * 160)) == 2


def test_unknown_format_rejected() -> None:
    with pytest.raises(ValueError):
        AudioFramer("mp3_44100")  # type: ignore[arg-type]
