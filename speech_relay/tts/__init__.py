"""Speech provider client and request schema."""

from speech_relay.tts.client import SpeechClient
from speech_relay.tts.schemas import SynthesisRequest

__all__ = ["SpeechClient", "SynthesisRequest"]
