"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")
    port: int = Field(default=3001)

    # Twilio (Voice + Messaging)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_phone_number: str | None = Field(default=None, description="E.164, e.g. +4420...")
    twilio_messaging_service_sid: str | None = Field(
        default=None,
        description="Messaging Service SID; preferred over the phone number for alpha sender IDs.",
    )
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL used to build the media stream URL (e.g. https://<app>.railway.app).",
    )

    # Deepgram realtime speech-to-text
    deepgram_api_key: str | None = Field(default=None)
    deepgram_url: str = Field(default="wss://api.deepgram.com/v1/listen")
    deepgram_model: str = Field(default="nova-2")
    deepgram_language: str = Field(default="en-GB")
    deepgram_endpointing_ms: int = Field(default=300, description="Silence that ends a speech segment.")
    deepgram_utterance_end_ms: int = Field(default=1000)
    deepgram_connect_timeout_seconds: float = Field(default=10.0, gt=0)
    deepgram_max_reconnect_attempts: int = Field(default=3, ge=0)
    deepgram_reconnect_backoff_seconds: float = Field(default=1.0, ge=0)

    # LLM connectivity
    llm_provider: Literal["openai", "self_hosted_vllm"] = Field(default="openai")
    llm_endpoint: str | None = Field(
        default=None, description="Base URL for OpenAI-compatible or self-hosted inference servers."
    )
    llm_api_key: str | None = Field(default=None)
    llm_model: str = Field(default="gpt-4o-mini")
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=150, description="Keep replies short for voice.")

    # ElevenLabs text-to-speech
    elevenlabs_api_key: str | None = Field(default=None)
    elevenlabs_base_url: str = Field(default="https://api.elevenlabs.io")
    elevenlabs_voice_id: str = Field(default="EXAVITQu4vr4xnSDxMaL")
    elevenlabs_model_id: str = Field(default="eleven_turbo_v2_5")
    elevenlabs_output_format: Literal["ulaw_8000", "pcm_16000"] = Field(
        default="ulaw_8000",
        description="ulaw_8000 is Twilio-native; pcm_16000 is downsampled and encoded locally.",
    )

    # Visa requirements lookup
    visa_api_base_url: str = Field(default="https://app.diasporaai.dev/api/v1")
    visa_api_key: str | None = Field(default=None)

    # Call pipeline
    business_name: str = Field(default="Diaspora AI")
    booking_url: str = Field(default="https://diasporaai.dev")
    greeting_text: str = Field(
        default=(
            "Hello! Thank you for calling Diaspora AI, your AI-powered travel assistant. "
            "How can I help you today?"
        )
    )
    apology_text: str = Field(
        default="I'm sorry, I'm having a bit of trouble understanding. Could you repeat that?"
    )
    barge_in_min_chars: int = Field(
        default=3, ge=0, description="Interim transcripts must be longer than this to interrupt."
    )
    call_end_delay_seconds: float = Field(
        default=4.0, ge=0, description="Grace period for the goodbye audio before hanging up."
    )
    outbound_frame_bytes: int = Field(default=160, description="20ms of 8kHz mu-law.")

    @field_validator("outbound_frame_bytes")
    @classmethod
    def frame_not_empty(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("outbound_frame_bytes must be positive")
        return value

    def missing_credentials(self) -> list[str]:
        required = {
            "TWILIO_ACCOUNT_SID": self.twilio_account_sid,
            "TWILIO_AUTH_TOKEN": self.twilio_auth_token,
            "DEEPGRAM_API_KEY": self.deepgram_api_key,
            "LLM_API_KEY": self.llm_api_key if self.llm_provider == "openai" else "n/a",
            "ELEVENLABS_API_KEY": self.elevenlabs_api_key,
        }
        return [name for name, value in required.items() if not value]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
