"""Speech input adapter.

Turns one recognition session into one transcript:

- final fragments accumulate, the latest interim fragment is tracked separately
- every new fragment re-arms a silence timer; when it elapses the session is
  stopped and the call returns `final + interim`
- a session that ends on its own returns the final transcript so far
- a hard ceiling bounds the whole session

Events flow through a single-consumer queue, so the call resolves exactly
once and anything arriving afterwards is ignored.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from friday_companion.voice.recognizer import (
    NoSensorError,
    RecognitionEnded,
    RecognitionError,
    RecognitionErrorEvent,
    RecognitionEvent,
    RecognitionResult,
    Recognizer,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpeechInputConfig:
    silence_threshold_s: float = 1.5
    # Hard ceiling on one listening session; None disables it.
    max_listen_s: float | None = 30.0


class SpeechInputAdapter:
    def __init__(self, recognizer: Recognizer | None, config: SpeechInputConfig | None = None) -> None:
        self._recognizer = recognizer
        self._config = config or SpeechInputConfig()
        self._active = False
        self._is_listening = False

        if recognizer is None:
            self._available, self._unavailable_reason = False, "no recognizer configured"
        else:
            self._available, self._unavailable_reason = recognizer.is_available()
        if not self._available:
            logger.warning(f"[VOICE][STT] speech input unavailable: {self._unavailable_reason}")

    @property
    def config(self) -> SpeechInputConfig:
        return self._config

    @property
    def is_available(self) -> bool:
        return self._available

    @property
    def is_listening(self) -> bool:
        return self._is_listening

    async def start_listening(self) -> str:
        """Listen for one user turn and return its transcript ("" on silence)."""
        if not self._available or self._recognizer is None:
            raise NoSensorError(f"No speech input available: {self._unavailable_reason}")

        if self._active:
            logger.debug("[VOICE][STT] already listening; ignoring re-entrant start")
            return ""
        self._active = True

        events: asyncio.Queue[RecognitionEvent] = asyncio.Queue()
        session = self._recognizer.open_session(events.put_nowait)
        try:
            session.start()
        except RecognitionError:
            self._active = False
            raise

        self._is_listening = True
        try:
            return await self._collect(events)
        finally:
            session.stop()
            self._is_listening = False
            self._active = False

    async def _collect(self, events: asyncio.Queue[RecognitionEvent]) -> str:
        loop = asyncio.get_running_loop()
        ceiling = self._config.max_listen_s
        deadline = loop.time() + ceiling if ceiling is not None else None

        finals: dict[int, str] = {}
        interim = ""
        silence_deadline: float | None = None

        def transcript() -> str:
            return "".join(finals[i] for i in sorted(finals))

        while True:
            waits = [d for d in (silence_deadline, deadline) if d is not None]
            timeout = max(0.0, min(waits) - loop.time()) if waits else None
            try:
                event = await asyncio.wait_for(events.get(), timeout=timeout)
            except asyncio.TimeoutError:
                text = transcript() + interim
                if silence_deadline is not None and loop.time() >= silence_deadline:
                    logger.debug(f"[VOICE][STT] silence timeout chars={len(text)}")
                else:
                    logger.info(f"[VOICE][STT] listening ceiling reached chars={len(text)}")
                return text

            if isinstance(event, RecognitionResult):
                if event.is_final:
                    finals.setdefault(event.index, event.text)
                    interim = ""
                else:
                    interim = event.text
                if transcript() or interim:
                    silence_deadline = loop.time() + self._config.silence_threshold_s
            elif isinstance(event, RecognitionErrorEvent):
                if event.error == "no-speech":
                    logger.debug("[VOICE][STT] no speech detected")
                else:
                    logger.warning(f"[VOICE][STT] recognition error: {event.error} {event.detail}".rstrip())
            elif isinstance(event, RecognitionEnded):
                logger.debug(f"[VOICE][STT] session ended reason={event.reason}")
                return transcript()
