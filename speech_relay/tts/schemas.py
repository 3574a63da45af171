"""Request model for the speech provider and its fixed parameter domains."""

from __future__ import annotations

from typing import Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator

Voice = Literal["alloy", "echo", "fable", "onyx", "nova", "shimmer"]
SpeechModel = Literal["tts-1", "tts-1-hd"]
AudioFormat = Literal["mp3", "opus", "aac", "flac"]

VOICES: tuple[str, ...] = get_args(Voice)
MODELS: tuple[str, ...] = get_args(SpeechModel)
FORMATS: tuple[str, ...] = get_args(AudioFormat)

DEFAULT_VOICE = "alloy"
DEFAULT_MODEL = "tts-1"
DEFAULT_SPEED = 1.0
DEFAULT_FORMAT = "mp3"
MIN_SPEED = 0.25
MAX_SPEED = 4.0


class SynthesisRequest(BaseModel):
    """One text-to-speech call. Immutable once built."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    text: str
    voice: Voice = DEFAULT_VOICE
    model: SpeechModel = DEFAULT_MODEL
    speed: float = Field(default=DEFAULT_SPEED, ge=MIN_SPEED, le=MAX_SPEED)
    format: AudioFormat = DEFAULT_FORMAT

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be empty")
        return value

    def provider_payload(self) -> dict:
        """Body for the provider's ``/audio/speech`` endpoint."""
        return {
            "model": self.model,
            "voice": self.voice,
            "input": self.text,
            "speed": self.speed,
            "response_format": self.format,
        }
