"""Streaming speech recognition boundary.

A recognizer opens continuous, interim-capable sessions. A session reports
through a single `emit` callback:

- `RecognitionResult(index, is_final, text)` for each interim or final fragment
- `RecognitionErrorEvent(error, detail)` for transient engine errors
- `RecognitionEnded(reason)` once, when the session is over

`WhisperStreamingRecognizer` implements this on top of a sounddevice mic
stream and faster-whisper: an energy gate segments the audio into
utterances, running segments are re-transcribed as interim results and a
closed segment is transcribed once more as a final result.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, Union

import numpy as np

from friday_companion.voice.audio_io import AudioIO
from friday_companion.voice.stt import STTProvider

logger = logging.getLogger(__name__)


class NoSensorError(RuntimeError):
    """No speech-input capability is available."""


class RecognitionError(RuntimeError):
    """A recognition session could not be started or failed."""


@dataclass(frozen=True)
class RecognitionResult:
    index: int
    is_final: bool
    text: str


@dataclass(frozen=True)
class RecognitionErrorEvent:
    error: str  # e.g. "no-speech", "audio-capture", "engine"
    detail: str = ""


@dataclass(frozen=True)
class RecognitionEnded:
    reason: str = "ended"


RecognitionEvent = Union[RecognitionResult, RecognitionErrorEvent, RecognitionEnded]
EmitFn = Callable[[RecognitionEvent], None]


class RecognitionSession(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...


class Recognizer(ABC):
    @abstractmethod
    def is_available(self) -> tuple[bool, str]:
        """Feature detection: (available, reason)."""
        ...

    @abstractmethod
    def open_session(self, emit: EmitFn) -> RecognitionSession:
        """Create a session that reports through `emit`. Must be called on the event loop."""
        ...


@dataclass(frozen=True)
class RecognizerConfig:
    # RMS on float32 samples in [-1, 1].
    speech_rms_threshold: float = 0.015
    # Gap that closes an utterance segment into a final result.
    endpoint_silence_s: float = 0.6
    interim_interval_s: float = 0.8
    min_speech_s: float = 0.25
    # Platform-style session timeout.
    session_timeout_s: float = 60.0


class WhisperStreamingRecognizer(Recognizer):
    """faster-whisper over a live sounddevice stream."""

    def __init__(
        self,
        *,
        audio: AudioIO,
        stt: STTProvider,
        config: RecognizerConfig | None = None,
    ) -> None:
        self._audio = audio
        self._stt = stt
        self._config = config or RecognizerConfig()

    @property
    def config(self) -> RecognizerConfig:
        return self._config

    def is_available(self) -> tuple[bool, str]:
        ok, reason = self._audio.is_available()
        if not ok:
            return False, reason
        return self._stt.is_available()

    def open_session(self, emit: EmitFn) -> RecognitionSession:
        return _WhisperSession(audio=self._audio, stt=self._stt, config=self._config, emit=emit)


class _WhisperSession:
    def __init__(
        self,
        *,
        audio: AudioIO,
        stt: STTProvider,
        config: RecognizerConfig,
        emit: EmitFn,
    ) -> None:
        self._audio = audio
        self._stt = stt
        self._config = config
        self._emit = emit
        self._blocks: asyncio.Queue[np.ndarray] = asyncio.Queue()
        self._stream = None
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    def start(self) -> None:
        loop = asyncio.get_running_loop()

        def on_block(block: np.ndarray) -> None:
            # Runs on the PortAudio thread.
            if not self._closed and not loop.is_closed():
                loop.call_soon_threadsafe(self._blocks.put_nowait, block)

        try:
            self._stream = self._audio.open_input_stream(on_block)
            self._stream.start()
        except Exception as e:
            self._close_stream()
            raise RecognitionError(f"Could not open microphone: {e}") from e

        self._task = loop.create_task(self._run())
        logger.debug("[VOICE][STT] session started")

    def stop(self) -> None:
        if self._closed:
            return
        self._close_stream()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._emit(RecognitionEnded("stopped"))
        logger.debug("[VOICE][STT] session stopped")

    def _close_stream(self) -> None:
        self._closed = True
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()

    async def _transcribe(self, segment: list[np.ndarray]) -> str:
        result = await self._stt.transcribe_samples(np.concatenate(segment))
        return (result.text or "").strip()

    async def _run(self) -> None:
        cfg = self._config
        sample_rate = self._audio.config.sample_rate
        loop = asyncio.get_running_loop()
        deadline = loop.time() + cfg.session_timeout_s

        index = 0
        heard_speech = False
        segment: list[np.ndarray] = []
        voiced_s = 0.0
        silent_s = 0.0
        last_interim = loop.time()

        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    block = await asyncio.wait_for(self._blocks.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    break

                block_s = len(block) / sample_rate
                rms = float(np.sqrt(np.mean(np.square(block)))) if len(block) else 0.0
                if rms >= cfg.speech_rms_threshold:
                    if not segment:
                        last_interim = loop.time()
                    segment.append(block)
                    voiced_s += block_s
                    silent_s = 0.0
                elif segment:
                    segment.append(block)
                    silent_s += block_s
                else:
                    continue

                if silent_s >= cfg.endpoint_silence_s:
                    if voiced_s >= cfg.min_speech_s:
                        text = await self._transcribe(segment)
                        if text:
                            heard_speech = True
                            self._emit(RecognitionResult(index=index, is_final=True, text=text))
                            index += 1
                    segment, voiced_s, silent_s = [], 0.0, 0.0
                elif voiced_s >= cfg.min_speech_s and loop.time() - last_interim >= cfg.interim_interval_s:
                    last_interim = loop.time()
                    text = await self._transcribe(segment)
                    if text:
                        heard_speech = True
                        self._emit(RecognitionResult(index=index, is_final=False, text=text))

            if segment and voiced_s >= cfg.min_speech_s:
                text = await self._transcribe(segment)
                if text:
                    heard_speech = True
                    self._emit(RecognitionResult(index=index, is_final=True, text=text))
            if not heard_speech:
                self._emit(RecognitionErrorEvent("no-speech"))
            reason = "timeout"
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[VOICE][STT] recognition failed: {e}")
            self._emit(RecognitionErrorEvent("engine", str(e)))
            reason = "error"

        self._close_stream()
        self._emit(RecognitionEnded(reason))
