"""
Turn-taking orchestrator.

Coordinates listening, model invocation and speech output as an explicit
state machine, and feeds each reply's emotional context back into the next
model call.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from friday_companion.models.llm_client import ModelCallError
from friday_companion.orchestrator.conversation_state import ConversationState
from friday_companion.orchestrator.emotional_context import EmotionalContextStore
from friday_companion.orchestrator.schemas import (
    ConversationSnapshot,
    EmotionalContext,
    Message,
    MessageRole,
    OrchestratorState,
)
from friday_companion.voice.recognizer import NoSensorError, RecognitionError

if TYPE_CHECKING:
    from friday_companion.models.llm_client import ConversationModelClient
    from friday_companion.orchestrator.diagnostics import DiagnosticsSequencer
    from friday_companion.voice.speech_input import SpeechInputAdapter
    from friday_companion.voice.speech_output import SpeechOutputAdapter

GREETING = "System engaged. Hello. I am Friday. How are you feeling right now?"
FALLBACK_REPLY = "I'm having trouble processing that thought. Could you say it again?"

_IDLE = OrchestratorState.IDLE
_LISTENING = OrchestratorState.LISTENING
_THINKING = OrchestratorState.THINKING
_SPEAKING = OrchestratorState.SPEAKING

ALLOWED_TRANSITIONS: dict[OrchestratorState, frozenset[OrchestratorState]] = {
    _IDLE: frozenset({_LISTENING, _SPEAKING}),
    _LISTENING: frozenset({_THINKING, _IDLE}),
    # THINKING -> IDLE only happens on shutdown.
    _THINKING: frozenset({_SPEAKING, _LISTENING, _IDLE}),
    _SPEAKING: frozenset({_LISTENING, _IDLE}),
}

SnapshotCallback = Callable[[ConversationSnapshot], None]


class InvalidTransitionError(RuntimeError):
    """Raised when the state machine is asked to make an illegal move."""


@dataclass(frozen=True)
class OrchestratorConfig:
    """Turn-taking policy."""

    greeting: str | None = GREETING
    fallback_reply: str = FALLBACK_REPLY
    relisten_delay_s: float = 0.2
    speech_enabled: bool = True


class TurnOrchestrator:
    """
    Drives the listen -> think -> speak -> listen loop.

    One external entry point, `activate()`, stands for a user tap. Everything
    after that runs as a single driver task whose steps are explicit state
    transitions. Barge-in stops speech output and replaces the driver.
    """

    def __init__(
        self,
        *,
        model_client: ConversationModelClient,
        speech_input: SpeechInputAdapter,
        speech_output: SpeechOutputAdapter,
        context_store: EmotionalContextStore | None = None,
        diagnostics: DiagnosticsSequencer | None = None,
        config: OrchestratorConfig | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            model_client: Client for the remote conversation model.
            speech_input: Adapter that returns one transcript per listen.
            speech_output: Adapter that voices replies.
            context_store: Emotional context slot (creates a default one if None).
            diagnostics: Optional boot checklist gating activation.
            config: Turn-taking policy.
        """
        self._logger = logging.getLogger(__name__)
        self._model_client = model_client
        self._speech_input = speech_input
        self._speech_output = speech_output
        self._context_store = context_store or EmotionalContextStore()
        self._diagnostics = diagnostics
        self._config = config or OrchestratorConfig()

        self._state: OrchestratorState = _IDLE
        self._conversation = ConversationState()
        self._speech_enabled = self._config.speech_enabled
        self._pending_utterance: str | None = None
        self._driver: asyncio.Task[None] | None = None
        self._listeners: list[SnapshotCallback] = []

        if self._diagnostics is not None:
            self._diagnostics.subscribe(self._notify)

    # ------------------------------------------------------------------
    # Read-only projections
    # ------------------------------------------------------------------

    @property
    def state(self) -> OrchestratorState:
        """Get the current turn-taking state."""
        return self._state

    @property
    def messages(self) -> tuple[Message, ...]:
        """Get the conversation so far, oldest first."""
        return self._conversation.messages

    @property
    def emotional_context(self) -> EmotionalContext:
        """Get the latest emotional context."""
        return self._context_store.current

    @property
    def booting(self) -> bool:
        """Check if boot diagnostics are still running."""
        return self._diagnostics is not None and self._diagnostics.booting

    @property
    def speech_enabled(self) -> bool:
        """Check if replies are spoken aloud."""
        return self._speech_enabled

    @speech_enabled.setter
    def speech_enabled(self, enabled: bool) -> None:
        self._speech_enabled = enabled
        if not enabled:
            self._speech_output.stop()
        self._notify()

    def snapshot(self) -> ConversationSnapshot:
        """Build a read-only view for presentation layers."""
        return ConversationSnapshot(
            state=self._state,
            messages=self._conversation.messages,
            speech_enabled=self._speech_enabled,
            booting=self.booting,
            diagnostic_logs=self._diagnostics.logs if self._diagnostics else (),
            emotional_context=self._context_store.current,
        )

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Register a callback fired with a fresh snapshot on every change.

        Args:
            callback: Receives a ConversationSnapshot.

        Returns:
            A function that removes the callback.
        """
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for callback in list(self._listeners):
            callback(snap)

    # ------------------------------------------------------------------
    # External entry points
    # ------------------------------------------------------------------

    async def run_diagnostics(self) -> bool:
        """
        Run the boot checklist, if one is configured.

        Returns:
            True if every check passed (or there is no checklist).
        """
        if self._diagnostics is None:
            return True
        return await self._diagnostics.run()

    async def activate(self) -> None:
        """
        Handle a user activation (tap/click/Enter).

        Returns once the transition has been made; the conversation continues
        in the background driver task.
        """
        if self.booting:
            self._logger.debug("Activation ignored: still booting")
            return

        if self._state is _THINKING:
            self._logger.debug("Activation ignored: model call in flight")
            return

        if not self._conversation.is_started:
            self._conversation.mark_started()
            self._logger.info("Conversation started")
            if self._config.greeting:
                self._append(MessageRole.ASSISTANT, self._config.greeting, mode="greeting")
                if self._speech_enabled:
                    self._pending_utterance = self._config.greeting
                    self._launch(_SPEAKING)
                    return
            self._launch(_LISTENING)
            return

        if self._state is _SPEAKING:
            self._logger.info("Barge-in: cutting speech output")
            self._speech_output.stop()
            self._transition(_LISTENING)
            await self._cancel_driver()
            self._pending_utterance = None
            self._start_driver(_LISTENING)
            return

        if self._state is _IDLE:
            self._launch(_LISTENING)
            return

        self._logger.debug("Activation ignored: already listening")

    async def wait_until_idle(self) -> None:
        """Wait for the current driver (and any replacement) to finish."""
        while self._driver is not None:
            driver = self._driver
            await asyncio.wait({driver})
            if driver is self._driver:
                if not driver.cancelled() and driver.exception() is not None:
                    raise driver.exception()
                return

    async def shutdown(self) -> None:
        """Stop everything and return to IDLE."""
        self._speech_output.stop()
        await self._cancel_driver()
        if self._state is not _IDLE:
            self._transition(_IDLE)
        close = getattr(self._model_client, "close", None)
        if close is not None:
            await close()

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def _launch(self, first: OrchestratorState) -> None:
        self._transition(first)
        self._start_driver(first)

    def _start_driver(self, first: OrchestratorState) -> None:
        self._driver = asyncio.get_running_loop().create_task(self._drive(first))

    async def _cancel_driver(self) -> None:
        driver, self._driver = self._driver, None
        if driver is None or driver.done() or driver is asyncio.current_task():
            return
        driver.cancel()
        # The driver's own CancelledError comes back as a result, not raised here.
        (outcome,) = await asyncio.gather(driver, return_exceptions=True)
        if isinstance(outcome, Exception):
            self._logger.error(f"Driver failed while being cancelled: {outcome!r}")

    async def _drive(self, state: OrchestratorState) -> None:
        steps: dict[OrchestratorState, Callable[[], Awaitable[OrchestratorState]]] = {
            _LISTENING: self._listen_step,
            _THINKING: self._think_step,
            _SPEAKING: self._speak_step,
        }
        try:
            while state is not _IDLE:
                self._transition(state)
                state = await steps[state]()
        except Exception as e:
            self._logger.error(f"Turn failed in state {self._state.value}, going idle: {e!r}", exc_info=True)
            self._pending_utterance = None
        self._transition(_IDLE)

    async def _listen_step(self) -> OrchestratorState:
        try:
            transcript = await self._speech_input.start_listening()
        except NoSensorError as e:
            self._logger.error(f"Cannot listen: {e}")
            return _IDLE
        except RecognitionError as e:
            self._logger.warning(f"Listening failed: {e}")
            return _IDLE

        text = (transcript or "").strip()
        if not text:
            self._logger.info("Heard nothing; going idle")
            return _IDLE

        self._append(MessageRole.USER, text)
        return _THINKING

    async def _think_step(self) -> OrchestratorState:
        history = self._conversation.messages
        try:
            reply = await self._model_client.request_reply(history, self._context_store.current)
        except ModelCallError as e:
            self._logger.error(f"Model call failed, using fallback: {e}")
            text, mode = self._config.fallback_reply, "fallback"
        else:
            self._context_store.replace(reply.updated_context)
            text, mode = reply.reply_text, None

        self._append(MessageRole.ASSISTANT, text, mode=mode)

        if self._speech_enabled:
            self._pending_utterance = text
            return _SPEAKING
        return _LISTENING

    async def _speak_step(self) -> OrchestratorState:
        text, self._pending_utterance = self._pending_utterance, None
        if text:
            await self._speech_output.speak(text)
        await asyncio.sleep(self._config.relisten_delay_s)
        return _LISTENING

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _transition(self, new_state: OrchestratorState) -> None:
        if new_state is self._state:
            return
        if new_state not in ALLOWED_TRANSITIONS[self._state]:
            raise InvalidTransitionError(f"{self._state.value} -> {new_state.value}")
        self._logger.debug(f"State: {self._state.value} -> {new_state.value}")
        self._state = new_state
        self._notify()

    def _append(self, role: MessageRole, content: str, mode: str | None = None) -> Message:
        message = self._conversation.append(role, content, mode=mode)
        self._notify()
        return message
