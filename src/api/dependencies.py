"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

from telephony.session import SessionRegistry

if TYPE_CHECKING:  # pragma: no cover
    from agents.responder import ResponseGenerator
    from integrations.twilio_client import CallControl
    from speech.transcriber import BaseTranscriber
    from speech.tts import BaseSynthesizer


@dataclass(frozen=True)
class CallPipeline:
    """Collaborators every media stream connection is wired with."""

    registry: SessionRegistry
    transcriber_factory: Callable[[str], BaseTranscriber]
    synthesizer_factory: Callable[[], BaseSynthesizer]
    responder: ResponseGenerator
    call_control: CallControl


@lru_cache(maxsize=1)
def get_registry() -> SessionRegistry:
    return SessionRegistry()


@lru_cache(maxsize=1)
def _pipeline_factory() -> CallPipeline:
    # Lazy imports keep the HTTP app importable without provider credentials.
    from agents.responder import AssistantResponder
    from integrations.sms import TwilioMessenger
    from integrations.twilio_client import TwilioCallControl
    from integrations.visa_api import VisaLookupClient
    from llm.factory import build_llm_client
    from speech.transcriber import DeepgramTranscriber
    from speech.tts import build_synthesizer

    registry = get_registry()
    responder = AssistantResponder(
        registry,
        build_llm_client(),
        messenger=TwilioMessenger(),
        visa_lookup=VisaLookupClient(),
    )
    return CallPipeline(
        registry=registry,
        transcriber_factory=DeepgramTranscriber,
        synthesizer_factory=build_synthesizer,
        responder=responder,
        call_control=TwilioCallControl(),
    )


def get_pipeline() -> CallPipeline:
    return _pipeline_factory()
