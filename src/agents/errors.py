"""Domain-specific exceptions for the call pipeline.

These exceptions are safe to import from API layers without triggering heavy imports.

Only ``TranscriptionConnectError`` aborts a call, and only during setup.
Generation and synthesis errors are absorbed per turn with a spoken apology;
visa lookup and call control failures are logged and the dialogue carries on.
"""

from __future__ import annotations


class AssistantError(Exception):
    default_detail: str = "Assistant error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class TranscriptionConnectError(AssistantError):
    default_detail = "Could not connect to the transcription service."


class LLMFailedError(AssistantError):
    default_detail = "LLM request failed."


class SynthesisFailedError(AssistantError):
    default_detail = "Speech synthesis failed."


class VisaLookupError(AssistantError):
    default_detail = "Visa lookup failed."


class CallControlError(AssistantError):
    default_detail = "Could not update the call."


class InvalidTransitionError(AssistantError):
    default_detail = "Invalid call state transition."
