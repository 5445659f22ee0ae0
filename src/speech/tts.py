"""Streaming text-to-speech for the phone line."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

import httpx

from agents.errors import SynthesisFailedError
from config.settings import Settings, get_settings
from telephony.framing import OutputFormat

LOGGER = logging.getLogger(__name__)


class BaseSynthesizer(ABC):
    """Interface for all text-to-speech synthesizers.

    ``output_format`` tells the caller how to interpret the streamed bytes:
    ``ulaw_8000`` is ready for the carrier, ``pcm_16000`` is little-endian
    linear PCM that still needs downsampling and mu-law encoding.
    """

    output_format: OutputFormat

    @abstractmethod
    def stream(self, text: str) -> AsyncIterator[bytes]:
        """Yield audio chunks for ``text`` as they are produced."""


class ElevenLabsSynthesizer(BaseSynthesizer):
    """ElevenLabs streaming endpoint, low-latency turbo model by default."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        if not settings.elevenlabs_api_key:
            raise ValueError("ElevenLabs API key must be configured.")

        self._api_key = settings.elevenlabs_api_key
        self._base_url = settings.elevenlabs_base_url.rstrip("/")
        self._voice_id = settings.elevenlabs_voice_id
        self._model_id = settings.elevenlabs_model_id
        self._transport = transport
        self.output_format = settings.elevenlabs_output_format

    def _payload(self, text: str) -> dict:
        return {
            "text": text,
            "model_id": self._model_id,
            "voice_settings": {
                "stability": 0.5,
                "similarity_boost": 0.75,
                "style": 0.0,
                "use_speaker_boost": True,
            },
        }

    async def stream(self, text: str) -> AsyncIterator[bytes]:
        if not text.strip():
            return

        url = f"{self._base_url}/v1/text-to-speech/{self._voice_id}/stream"
        headers = {
            "xi-api-key": self._api_key,
            "Content-Type": "application/json",
            "Accept": "audio/*",
        }
        LOGGER.debug("Synthesizing %d chars with voice %s", len(text), self._voice_id)

        try:
            async with httpx.AsyncClient(timeout=30, transport=self._transport) as client:
                async with client.stream(
                    "POST",
                    url,
                    params={"output_format": self.output_format},
                    json=self._payload(text),
                    headers=headers,
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise SynthesisFailedError(f"ElevenLabs API error {response.status_code}: {body[:200]}")
                    async for chunk in response.aiter_bytes():
                        if chunk:
                            yield chunk
        except httpx.HTTPError as exc:
            LOGGER.error("ElevenLabs request failed: %s", exc)
            raise SynthesisFailedError(str(exc)) from exc


def build_synthesizer() -> BaseSynthesizer:
    """Factory returning the configured synthesizer."""

    return ElevenLabsSynthesizer()
