"""G.711 mu-law codec for Twilio Media Streams audio.

Twilio sends and expects 8-bit mu-law at 8kHz. Speech services may produce
16-bit linear PCM (often at 16kHz), which has to be downsampled and encoded
before it can be played back to the caller.
"""

from __future__ import annotations

import numpy as np

# Negative half of the decode table (bytes 0x00-0x7F). Bytes 0x80-0xFF decode
# to the same magnitudes with a positive sign.
_NEGATIVE_HALF: tuple[int, ...] = (
    -32124, -31100, -30076, -29052, -28028, -27004, -25980, -24956,
    -23932, -22908, -21884, -20860, -19836, -18812, -17788, -16764,
    -15996, -15484, -14972, -14460, -13948, -13436, -12924, -12412,
    -11900, -11388, -10876, -10364, -9852, -9340, -8828, -8316,
    -7932, -7676, -7420, -7164, -6908, -6652, -6396, -6140,
    -5884, -5628, -5372, -5116, -4860, -4604, -4348, -4092,
    -3900, -3772, -3644, -3516, -3388, -3260, -3132, -3004,
    -2876, -2748, -2620, -2492, -2364, -2236, -2108, -1980,
    -1884, -1820, -1756, -1692, -1628, -1564, -1500, -1436,
    -1372, -1308, -1244, -1180, -1116, -1052, -988, -924,
    -876, -844, -812, -780, -748, -716, -684, -652,
    -620, -588, -556, -524, -492, -460, -428, -396,
    -372, -356, -340, -324, -308, -292, -276, -260,
    -244, -228, -212, -196, -180, -164, -148, -132,
    -120, -112, -104, -96, -88, -80, -72, -64,
    -56, -48, -40, -32, -24, -16, -8, 0,
)

ULAW_DECODE_TABLE: np.ndarray = np.array(
    _NEGATIVE_HALF + tuple(-value for value in _NEGATIVE_HALF),
    dtype=np.int16,
)

# Encoder works on 14-bit magnitudes (sample >> 2).
ULAW_BIAS = 0x21
ULAW_CLIP = 8159
_SEGMENT_END = np.array([0x3F, 0x7F, 0xFF, 0x1FF, 0x3FF, 0x7FF, 0xFFF, 0x1FFF], dtype=np.int32)


def decode_sample(ulaw_byte: int) -> int:
    """Decode one mu-law byte to a signed 16-bit sample."""

    return int(ULAW_DECODE_TABLE[ulaw_byte & 0xFF])


def encode_sample(sample: int) -> int:
    """Encode one signed 16-bit sample to a mu-law byte.

    Exact inverse of ``ULAW_DECODE_TABLE``: every table value re-encodes to its
    own index, except amplitude 0, which always encodes as 0xFF (0x7F is the
    "negative zero" code).
    """

    sample = max(-32768, min(32767, int(sample))) >> 2
    if sample < 0:
        sample = -sample
        mask = 0x7F
    else:
        mask = 0xFF

    magnitude = min(sample, ULAW_CLIP) + ULAW_BIAS
    segment = int(np.searchsorted(_SEGMENT_END, magnitude))
    if segment >= 8:
        return 0x7F ^ mask

    mantissa = (magnitude >> (segment + 1)) & 0x0F
    return ((segment << 4) | mantissa) ^ mask


def ulaw_decode(ulaw_bytes: bytes) -> np.ndarray:
    """Decode G.711 mu-law bytes to PCM16 int16 array."""

    data = np.frombuffer(ulaw_bytes, dtype=np.uint8)
    return ULAW_DECODE_TABLE[data]


def ulaw_encode(pcm16: np.ndarray) -> bytes:
    """Encode PCM16 int16 array to G.711 mu-law bytes.

    Vectorized form of :func:`encode_sample`, suitable for realtime packetization.
    """

    if pcm16.size == 0:
        return b""

    x = pcm16.astype(np.int32) >> 2
    mask = np.where(x < 0, 0x7F, 0xFF)
    magnitude = np.minimum(np.abs(x), ULAW_CLIP) + ULAW_BIAS

    segment = np.searchsorted(_SEGMENT_END, magnitude)
    clipped = np.minimum(segment, 7)
    mantissa = (magnitude >> (clipped + 1)) & 0x0F
    ulaw = np.where(segment >= 8, 0x7F, (clipped << 4) | mantissa) ^ mask
    return ulaw.astype(np.uint8).tobytes()


def downsample_16k_to_8k(pcm16: np.ndarray) -> np.ndarray:
    """Halve the sample rate by averaging adjacent sample pairs.

    No anti-aliasing filter is applied. A trailing odd sample is dropped.
    """

    usable = pcm16.size - (pcm16.size % 2)
    if usable == 0:
        return np.zeros(0, dtype=np.int16)

    pairs = pcm16[:usable].astype(np.int32).reshape(-1, 2)
    return ((pairs[:, 0] + pairs[:, 1]) >> 1).astype(np.int16)


def pcm16_from_bytes(data: bytes) -> np.ndarray:
    """Interpret little-endian 16-bit PCM bytes; a dangling odd byte is ignored."""

    usable = len(data) - (len(data) % 2)
    return np.frombuffer(data[:usable], dtype="<i2").astype(np.int16)


def pcm16_to_bytes(pcm16: np.ndarray) -> bytes:
    return pcm16.astype("<i2").tobytes()


def linear16_to_ulaw_8k(pcm16_16k: bytes) -> bytes:
    """Convert 16kHz little-endian PCM16 bytes to Twilio-ready 8kHz mu-law."""

    return ulaw_encode(downsample_16k_to_8k(pcm16_from_bytes(pcm16_16k)))
