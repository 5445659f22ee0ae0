"""OpenAI (or any OpenAI-compatible endpoint) client wrapper."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable

import openai
from openai import AsyncOpenAI

from agents.errors import LLMFailedError
from config.settings import Settings, get_settings
from llm.base import BaseLLMClient

LOGGER = logging.getLogger(__name__)


class OpenAIClient(BaseLLMClient):
    """Streaming wrapper for the OpenAI Chat Completions API."""

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        if not settings.llm_api_key:
            raise ValueError("LLM API key must be configured for OpenAI client.")

        self._client = AsyncOpenAI(
            api_key=settings.llm_api_key,
            base_url=settings.llm_endpoint or None,
        )
        self._model = settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

    async def stream_chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        try:
            stream = await self._client.chat.completions.create(
                model=self._model,
                messages=list(messages),
                temperature=self._temperature if temperature is None else temperature,
                max_tokens=max_tokens or self._max_tokens,
                stream=True,
            )

            async for event in stream:
                if not event.choices:
                    continue
                chunk = getattr(event.choices[0].delta, "content", None)
                if chunk:
                    yield chunk
        except openai.OpenAIError as exc:
            LOGGER.error("OpenAI streaming request failed: %s", exc)
            raise LLMFailedError(str(exc)) from exc
