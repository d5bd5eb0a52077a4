"""Local voice subsystem.

This package provides the speech I/O adapters for the companion:

mic -> recognizer -> speech input -> orchestrator -> speech output -> speaker

The orchestrator remains the single authority for turn-taking.
"""

from friday_companion.voice.recognizer import (
    NoSensorError,
    RecognitionEnded,
    RecognitionError,
    RecognitionErrorEvent,
    RecognitionResult,
    Recognizer,
    RecognizerConfig,
)
from friday_companion.voice.speech_input import SpeechInputAdapter, SpeechInputConfig
from friday_companion.voice.speech_output import (
    Prosody,
    SpeechOutputAdapter,
    SpeechOutputConfig,
    prosody_for,
)
from friday_companion.voice.stt import STTConfig, STTProvider, TranscriptionResult, WhisperSTT
from friday_companion.voice.tts import PiperTTS, SynthesisError, TTSConfig, TTSProvider, Voice

__all__ = [
    "NoSensorError",
    "RecognitionEnded",
    "RecognitionError",
    "RecognitionErrorEvent",
    "RecognitionResult",
    "Recognizer",
    "RecognizerConfig",
    "SpeechInputAdapter",
    "SpeechInputConfig",
    "Prosody",
    "SpeechOutputAdapter",
    "SpeechOutputConfig",
    "prosody_for",
    "STTConfig",
    "STTProvider",
    "TranscriptionResult",
    "WhisperSTT",
    "PiperTTS",
    "SynthesisError",
    "TTSConfig",
    "TTSProvider",
    "Voice",
]
