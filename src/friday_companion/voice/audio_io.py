"""Audio capture + playback (LLM-agnostic).

This module is intentionally "dumb hardware I/O": it knows nothing about the
conversation, prompts, or LLMs.

It provides:
- streaming microphone capture (float32 blocks delivered to a callback)
- WAV loading
- speaker playback with a playback-speed factor
- synchronous, always-safe playback stop
"""

from __future__ import annotations

import asyncio
import logging
import wave
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from friday_companion.voice.tts import SynthesisError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioIOConfig:
    sample_rate: int = 16000
    channels: int = 1
    block_ms: int = 100
    playback_timeout_s: float = 120.0


class AudioIO:
    def __init__(self, config: AudioIOConfig | None = None) -> None:
        self._config = config or AudioIOConfig()
        self._stopped = False

    @property
    def config(self) -> AudioIOConfig:
        return self._config

    def _require_sounddevice(self):
        try:
            import sounddevice as sd  # type: ignore

            return sd
        except (ImportError, OSError) as e:
            raise RuntimeError(
                "sounddevice is required for voice mode. Install Python deps with: pip install -e '.[voice]'. "
                "If you see 'PortAudio library not found', install PortAudio (Debian/Ubuntu: sudo apt-get install portaudio19-dev)."
            ) from e

    def is_available(self) -> tuple[bool, str]:
        try:
            self._require_sounddevice()
        except RuntimeError as e:
            return False, str(e)
        return True, "ok"

    def open_input_stream(self, on_block: Callable[[np.ndarray], None]):
        """Create (but do not start) a mic stream delivering mono float32 blocks."""
        sd = self._require_sounddevice()

        def callback(indata, frames, time, status):  # noqa: ANN001
            if status:
                logger.debug(f"Input status: {status}")
            on_block(indata[:, 0].copy())

        return sd.InputStream(
            samplerate=self._config.sample_rate,
            channels=self._config.channels,
            dtype="float32",
            blocksize=int(self._config.sample_rate * self._config.block_ms / 1000),
            callback=callback,
        )

    def read_wav(self, wav_path: str | Path) -> tuple[np.ndarray, int]:
        wav_path = Path(wav_path)
        with wave.open(str(wav_path), "rb") as wf:
            sr = wf.getframerate()
            n_channels = wf.getnchannels()
            sampwidth = wf.getsampwidth()
            if sampwidth != 2:
                raise ValueError(f"Only 16-bit WAV supported, got sampwidth={sampwidth}")
            frames = wf.readframes(wf.getnframes())

        audio = np.frombuffer(frames, dtype=np.int16)
        if n_channels > 1:
            audio = audio.reshape(-1, n_channels)
        else:
            audio = audio.reshape(-1, 1)
        return audio, sr

    async def play_wav(self, wav_path: str | Path, *, speed: float = 1.0) -> bool:
        """Play a WAV file. `speed` resamples playback (pitch and tempo).

        Returns True if `stop_playback()` interrupted playback.
        """
        sd = self._require_sounddevice()

        try:
            audio, sr = self.read_wav(wav_path)
        except (OSError, ValueError, wave.Error) as e:
            raise SynthesisError(f"unreadable WAV {wav_path}: {e}") from e
        audio_f32 = (audio.astype(np.float32) / 32768.0).squeeze(-1)

        self._stopped = False
        try:
            sd.play(audio_f32, samplerate=int(sr * speed), blocking=False)
            await asyncio.wait_for(asyncio.to_thread(sd.wait), timeout=self._config.playback_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("[VOICE][AUDIO] playback timed out wav=%s", str(wav_path))
            sd.stop()
        except sd.PortAudioError as e:
            raise SynthesisError(f"playback failed: {e}") from e

        return self._stopped

    def stop_playback(self) -> None:
        """Stop any playback immediately. Safe to call when nothing is playing."""
        self._stopped = True
        try:
            import sounddevice as sd  # type: ignore
        except (ImportError, OSError):
            # Without sounddevice nothing can be playing.
            return
        sd.stop()
