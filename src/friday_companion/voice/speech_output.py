"""Speech output adapter.

Voices assistant replies with Piper and plays them back:

- any prior playback is cancelled before a new one starts
- markup is stripped before synthesis
- the voice comes from a fixed preference list, then the configured locale
- rate and pitch follow the current emotional energy level
- synthesis/playback failures are logged, never raised
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from friday_companion.orchestrator.emotional_context import EmotionalContextStore
from friday_companion.orchestrator.schemas import EnergyLevel
from friday_companion.voice.speakable import to_speakable
from friday_companion.voice.tts import TTSProvider, Voice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prosody:
    rate: float = 1.0
    pitch: float = 1.0

    @property
    def length_scale(self) -> float:
        # Piper has no pitch control; pitch is applied by resampling at
        # playback, which also speeds speech up by `pitch`.
        return self.pitch / self.rate

    @property
    def playback_speed(self) -> float:
        return self.pitch


PROSODY_BY_ENERGY: dict[str, Prosody] = {
    "high": Prosody(rate=1.1, pitch=1.1),
    "medium": Prosody(rate=1.0, pitch=1.0),
    "low": Prosody(rate=0.9, pitch=0.9),
}


def prosody_for(energy_level: EnergyLevel) -> Prosody:
    return PROSODY_BY_ENERGY.get(energy_level, PROSODY_BY_ENERGY["medium"])


@dataclass(frozen=True)
class SpeechOutputConfig:
    locale: str = "en_US"
    voice_preferences: tuple[str, ...] = field(
        default=("en_GB-jenny_dioco", "en_GB-alba", "en_US-amy", "en_US-lessac")
    )
    cache_dir: str = "data/tts_cache"


class AudioPlayer(Protocol):
    async def play_wav(self, wav_path: str | Path, *, speed: float = 1.0) -> bool: ...

    def stop_playback(self) -> None: ...


def select_voice(voices: list[Voice], preferences: tuple[str, ...], locale: str) -> Voice | None:
    """Pick the first preferred voice installed, else any voice for `locale`."""
    for preferred in preferences:
        for v in voices:
            if preferred in v.name:
                return v
    wanted = locale.replace("-", "_").lower()
    for v in voices:
        if v.locale and v.locale.replace("-", "_").lower() == wanted:
            return v
    return None


class SpeechOutputAdapter:
    def __init__(
        self,
        *,
        tts: TTSProvider,
        player: AudioPlayer,
        context_store: EmotionalContextStore,
        config: SpeechOutputConfig | None = None,
    ) -> None:
        self._tts = tts
        self._player = player
        self._context_store = context_store
        self._config = config or SpeechOutputConfig()
        self._is_speaking = False
        # Bumped by every stop(); a speak() whose generation is stale must not play.
        self._generation = 0
        self._voice: Voice | None = None
        self._voice_resolved = False

    @property
    def config(self) -> SpeechOutputConfig:
        return self._config

    @property
    def is_speaking(self) -> bool:
        return self._is_speaking

    def is_available(self) -> tuple[bool, str]:
        return self._tts.is_available()

    def current_voice(self) -> Voice | None:
        if not self._voice_resolved:
            self._voice = select_voice(
                self._tts.list_voices(),
                self._config.voice_preferences,
                self._config.locale,
            )
            self._voice_resolved = True
            logger.info(f"[VOICE][TTS] voice={self._voice.name if self._voice else '<default model>'}")
        return self._voice

    def stop(self) -> None:
        """Cancel any playback immediately. Always safe to call."""
        self._generation += 1
        self._player.stop_playback()
        self._is_speaking = False

    async def speak(self, text: str) -> None:
        self.stop()
        generation = self._generation

        speakable = to_speakable(text)
        if not speakable:
            logger.info("[VOICE][TTS] skipped reason=empty_after_filter")
            return

        try:
            energy = self._context_store.current.energy_level
            prosody = prosody_for(energy)
            voice = self.current_voice()
            cache_key = hashlib.sha1(
                f"{speakable}\n{voice.name if voice else ''}\n{prosody.length_scale:.3f}".encode("utf-8")
            ).hexdigest()[:16]

            t0 = time.perf_counter()
            wavs = await self._tts.synthesize_to_wavs(
                speakable,
                out_dir=self._config.cache_dir,
                base_name=cache_key,
                voice=voice,
                length_scale=prosody.length_scale,
            )
            dur = time.perf_counter() - t0
            excerpt = speakable[:80]
            logger.info(
                f"[VOICE][TTS] speak len={len(speakable)} energy={energy} chunks={len(wavs)} "
                f"dur={dur:.2f}s text=\"{excerpt}\""
            )

            if generation != self._generation or not wavs:
                return

            self._is_speaking = True
            for wav in wavs:
                if generation != self._generation:
                    break
                interrupted = await self._player.play_wav(wav, speed=prosody.playback_speed)
                if interrupted:
                    logger.info("[VOICE][AUDIO] playback interrupted wav=%s", str(wav))
                    break
        except (RuntimeError, OSError) as e:
            logger.warning(f"[VOICE][TTS] could not voice reply: {e}")
        finally:
            if generation == self._generation:
                self._is_speaking = False
