import asyncio

import pytest
from pydantic import ValidationError

from friday_companion.models.llm_client import ModelCallError, ModelReply
from friday_companion.orchestrator.diagnostics import DiagnosticCheck, DiagnosticsSequencer
from friday_companion.orchestrator.emotional_context import EmotionalContextStore
from friday_companion.orchestrator.schemas import EmotionalContext, MessageRole, OrchestratorState
from friday_companion.orchestrator.turn_orchestrator import (
    ALLOWED_TRANSITIONS,
    FALLBACK_REPLY,
    GREETING,
    OrchestratorConfig,
    TurnOrchestrator,
)
from friday_companion.voice.recognizer import NoSensorError

IDLE = OrchestratorState.IDLE
LISTENING = OrchestratorState.LISTENING
THINKING = OrchestratorState.THINKING
SPEAKING = OrchestratorState.SPEAKING

EXCITED = EmotionalContext(
    dominant_emotion="joy",
    energy_level="high",
    conversation_depth="shallow",
    user_state="buzzing",
)
REFLECTIVE = EmotionalContext(
    dominant_emotion="nostalgia",
    energy_level="low",
    conversation_depth="deep",
    user_state="thoughtful",
)


class FakeSpeechInput:
    """Hands out queued transcripts (or raises queued exceptions) one listen at a time."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self.calls = 0

    def feed(self, item) -> None:
        self._queue.put_nowait(item)

    async def start_listening(self) -> str:
        self.calls += 1
        item = await self._queue.get()
        if isinstance(item, Exception):
            raise item
        return item


class FakeSpeechOutput:
    def __init__(self, *, block: bool = False) -> None:
        self.block = block
        self.spoken: list[str] = []
        self.stops = 0
        self._gate: asyncio.Event | None = None

    async def speak(self, text: str) -> None:
        self.spoken.append(text)
        if self.block:
            self._gate = asyncio.Event()
            await self._gate.wait()

    def stop(self) -> None:
        self.stops += 1
        if self._gate is not None:
            self._gate.set()


class FakeModel:
    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[tuple] = []
        self.gate: asyncio.Event | None = None

    async def request_reply(self, history, context) -> ModelReply:
        self.calls.append((tuple(history), context))
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _reply(text: str, context: EmotionalContext) -> ModelReply:
    return ModelReply(reply_text=text, updated_context=context)


def _orchestrator(model, speech_input, speech_output, **config) -> TurnOrchestrator:
    config.setdefault("relisten_delay_s", 0.0)
    return TurnOrchestrator(
        model_client=model,
        speech_input=speech_input,
        speech_output=speech_output,
        context_store=EmotionalContextStore(),
        config=OrchestratorConfig(**config),
    )


async def eventually(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.005)


async def listening(orch: TurnOrchestrator, speech_input: FakeSpeechInput, calls: int) -> None:
    await eventually(lambda: orch.state is LISTENING and speech_input.calls == calls)


@pytest.mark.asyncio
async def test_first_activation_greets_then_listens() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    orch = _orchestrator(FakeModel(), speech_input, speech_output)

    assert orch.state is IDLE
    await orch.activate()

    await listening(orch, speech_input, 1)
    assert speech_output.spoken == [GREETING]
    assert len(orch.messages) == 1
    greeting = orch.messages[0]
    assert greeting.role is MessageRole.ASSISTANT
    assert greeting.content == GREETING
    assert greeting.mode == "greeting"

    await orch.shutdown()
    assert orch.state is IDLE


@pytest.mark.asyncio
async def test_full_turn_updates_context_and_speaks_reply() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    model = FakeModel(_reply("That's wonderful!", EXCITED))
    orch = _orchestrator(model, speech_input, speech_output)

    await orch.activate()
    await listening(orch, speech_input, 1)
    speech_input.feed("I got the job!")

    await listening(orch, speech_input, 2)

    history, context = model.calls[0]
    assert [m.content for m in history] == [GREETING, "I got the job!"]
    assert context == EmotionalContext()

    assert orch.emotional_context == EXCITED
    assert [m.role for m in orch.messages] == [
        MessageRole.ASSISTANT,
        MessageRole.USER,
        MessageRole.ASSISTANT,
    ]
    assert orch.messages[-1].content == "That's wonderful!"
    assert orch.messages[-1].mode is None
    assert speech_output.spoken == [GREETING, "That's wonderful!"]

    await orch.shutdown()


@pytest.mark.asyncio
async def test_first_user_turn_without_greeting_sends_one_message() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    model = FakeModel(_reply("Glad to hear it!", EXCITED))
    orch = _orchestrator(model, speech_input, speech_output, greeting=None)

    await orch.activate()
    await listening(orch, speech_input, 1)
    assert orch.messages == ()
    assert speech_output.spoken == []

    speech_input.feed("I feel great today")
    await listening(orch, speech_input, 2)

    history, _ = model.calls[0]
    assert len(history) == 1
    assert history[0].role is MessageRole.USER
    assert history[0].content == "I feel great today"
    assert [m.role for m in orch.messages] == [MessageRole.USER, MessageRole.ASSISTANT]
    assert orch.emotional_context == EXCITED

    await orch.shutdown()


@pytest.mark.asyncio
async def test_next_call_sees_previous_reply_context() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    model = FakeModel(_reply("Tell me more.", EXCITED), _reply("I see.", REFLECTIVE))
    orch = _orchestrator(model, speech_input, speech_output)

    await orch.activate()
    speech_input.feed("Guess what")
    speech_input.feed("I was thinking about my grandmother")
    await listening(orch, speech_input, 3)

    assert model.calls[0][1] == EmotionalContext()
    assert model.calls[1][1] == EXCITED
    assert orch.emotional_context == REFLECTIVE

    await orch.shutdown()


@pytest.mark.asyncio
async def test_model_failure_uses_fallback_and_keeps_context() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    model = FakeModel(
        _reply("Tell me more.", EXCITED),
        ModelCallError("malformed reply"),
    )
    orch = _orchestrator(model, speech_input, speech_output)

    await orch.activate()
    speech_input.feed("Guess what")
    speech_input.feed("Are you there?")
    await listening(orch, speech_input, 3)

    last = orch.messages[-1]
    assert last.role is MessageRole.ASSISTANT
    assert last.content == FALLBACK_REPLY
    assert last.mode == "fallback"
    assert speech_output.spoken[-1] == FALLBACK_REPLY
    assert orch.emotional_context == EXCITED

    await orch.shutdown()


@pytest.mark.asyncio
async def test_barge_in_stops_speech_and_listens_again() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput(block=True)
    model = FakeModel(_reply("A long and winding answer.", REFLECTIVE), _reply("Sure.", EXCITED))
    orch = _orchestrator(model, speech_input, speech_output)

    await orch.activate()
    await eventually(lambda: orch.state is SPEAKING and speech_output.spoken == [GREETING])

    await orch.activate()
    assert orch.state is LISTENING
    assert speech_output.stops == 1
    await listening(orch, speech_input, 1)

    speech_input.feed("Actually, one question")
    await eventually(lambda: orch.state is SPEAKING and len(speech_output.spoken) == 2)

    await orch.activate()
    await listening(orch, speech_input, 2)
    assert speech_output.stops == 2
    # The interrupted reply stays in the history.
    assert orch.messages[-1].content == "A long and winding answer."

    speech_input.feed("Never mind")
    await eventually(lambda: len(model.calls) == 2)
    assert [m.content for m in model.calls[1][0]][-2:] == ["A long and winding answer.", "Never mind"]

    await orch.shutdown()


@pytest.mark.asyncio
async def test_activation_while_thinking_is_ignored() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    model = FakeModel(_reply("Done thinking.", EXCITED))
    model.gate = asyncio.Event()
    orch = _orchestrator(model, speech_input, speech_output)

    await orch.activate()
    speech_input.feed("Hard question")
    await eventually(lambda: orch.state is THINKING and len(model.calls) == 1)

    await orch.activate()
    assert orch.state is THINKING
    assert speech_input.calls == 1
    assert len(model.calls) == 1

    model.gate.set()
    await listening(orch, speech_input, 2)
    assert orch.messages[-1].content == "Done thinking."

    await orch.shutdown()


@pytest.mark.asyncio
async def test_activation_while_listening_is_ignored() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    orch = _orchestrator(FakeModel(), speech_input, speech_output)

    await orch.activate()
    await listening(orch, speech_input, 1)
    await orch.activate()
    await asyncio.sleep(0.01)

    assert orch.state is LISTENING
    assert speech_input.calls == 1
    assert speech_output.stops == 0

    await orch.shutdown()


@pytest.mark.asyncio
async def test_speech_disabled_skips_speaking() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    orch = _orchestrator(
        FakeModel(_reply("Printed, not spoken.", EXCITED)),
        speech_input,
        speech_output,
        speech_enabled=False,
    )
    states: list[OrchestratorState] = []
    orch.subscribe(lambda snap: states.append(snap.state))

    await orch.activate()
    await listening(orch, speech_input, 1)
    assert orch.messages[0].mode == "greeting"

    speech_input.feed("Hello")
    await listening(orch, speech_input, 2)

    assert speech_output.spoken == []
    assert orch.messages[-1].content == "Printed, not spoken."
    assert SPEAKING not in states

    await orch.shutdown()


@pytest.mark.asyncio
async def test_disabling_speech_cuts_current_output() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput(block=True)
    orch = _orchestrator(FakeModel(), speech_input, speech_output)

    await orch.activate()
    await eventually(lambda: orch.state is SPEAKING)

    orch.speech_enabled = False
    assert speech_output.stops == 1
    await listening(orch, speech_input, 1)
    assert orch.snapshot().speech_enabled is False

    await orch.shutdown()


@pytest.mark.asyncio
async def test_empty_transcript_returns_to_idle_until_next_tap() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    model = FakeModel(_reply("Welcome back.", EXCITED))
    orch = _orchestrator(model, speech_input, speech_output)

    await orch.activate()
    speech_input.feed("   ")
    await eventually(lambda: orch.state is IDLE and speech_input.calls == 1)
    assert model.calls == []
    assert len(orch.messages) == 1

    await orch.activate()
    await listening(orch, speech_input, 2)
    assert speech_output.spoken == [GREETING]

    speech_input.feed("I'm back")
    await listening(orch, speech_input, 3)
    assert orch.messages[-1].content == "Welcome back."

    await orch.shutdown()


@pytest.mark.asyncio
async def test_missing_microphone_goes_idle() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    orch = _orchestrator(FakeModel(), speech_input, speech_output)

    await orch.activate()
    speech_input.feed(NoSensorError("no microphone"))
    await orch.wait_until_idle()

    assert orch.state is IDLE
    assert len(orch.messages) == 1


@pytest.mark.asyncio
async def test_unexpected_model_error_goes_idle_and_recovers() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    model = FakeModel(RuntimeError("client bug"), _reply("Back again.", EXCITED))
    orch = _orchestrator(model, speech_input, speech_output)

    await orch.activate()
    speech_input.feed("Hello?")
    await orch.wait_until_idle()
    assert orch.state is IDLE
    assert orch.emotional_context == EmotionalContext()

    await orch.activate()
    await listening(orch, speech_input, 2)
    speech_input.feed("Hello again")
    await listening(orch, speech_input, 3)
    assert orch.messages[-1].content == "Back again."

    await orch.shutdown()


class BrokenSpeechOutput(FakeSpeechOutput):
    async def speak(self, text: str) -> None:
        raise PermissionError("voices dir not readable")


@pytest.mark.asyncio
async def test_unexpected_speech_error_goes_idle() -> None:
    speech_input, speech_output = FakeSpeechInput(), BrokenSpeechOutput()
    orch = _orchestrator(FakeModel(), speech_input, speech_output)

    await orch.activate()
    await orch.wait_until_idle()

    assert orch.state is IDLE
    assert speech_input.calls == 0

    await orch.activate()
    await listening(orch, speech_input, 1)

    await orch.shutdown()


@pytest.mark.asyncio
async def test_activation_is_ignored_while_booting() -> None:
    release = asyncio.Event()

    async def slow_check() -> bool:
        await release.wait()
        return True

    diagnostics = DiagnosticsSequencer(
        [DiagnosticCheck("MODEL_ENDPOINT", slow_check)],
        step_delay_s=0,
        settle_s=0,
    )
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    orch = TurnOrchestrator(
        model_client=FakeModel(),
        speech_input=speech_input,
        speech_output=speech_output,
        diagnostics=diagnostics,
        config=OrchestratorConfig(relisten_delay_s=0.0),
    )

    boot = asyncio.create_task(orch.run_diagnostics())
    await eventually(lambda: orch.booting)

    await orch.activate()
    assert orch.state is IDLE
    assert orch.messages == ()

    release.set()
    assert await boot is True
    assert orch.booting is False

    await orch.activate()
    await listening(orch, speech_input, 1)

    await orch.shutdown()


@pytest.mark.asyncio
async def test_observed_transitions_are_all_allowed() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    model = FakeModel(_reply("One.", EXCITED), ModelCallError("down"))
    orch = _orchestrator(model, speech_input, speech_output)
    states = [orch.state]

    def record(snap) -> None:
        if snap.state is not states[-1]:
            states.append(snap.state)

    orch.subscribe(record)

    await orch.activate()
    speech_input.feed("first")
    speech_input.feed("second")
    speech_input.feed("")
    await orch.wait_until_idle()

    assert states == [
        IDLE, SPEAKING, LISTENING, THINKING, SPEAKING,
        LISTENING, THINKING, SPEAKING, LISTENING, IDLE,
    ]
    for before, after in zip(states, states[1:]):
        assert after in ALLOWED_TRANSITIONS[before]


@pytest.mark.asyncio
async def test_snapshot_flags_follow_state() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput(block=True)
    orch = _orchestrator(FakeModel(), speech_input, speech_output)

    await orch.activate()
    await eventually(lambda: orch.state is SPEAKING)

    snap = orch.snapshot()
    assert snap.is_speaking is True
    assert snap.is_listening is False
    assert snap.is_typing is False

    await orch.shutdown()
    assert orch.snapshot().is_speaking is False


@pytest.mark.asyncio
async def test_history_is_immutable() -> None:
    speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
    orch = _orchestrator(FakeModel(), speech_input, speech_output)

    await orch.activate()
    await listening(orch, speech_input, 1)

    assert isinstance(orch.messages, tuple)
    with pytest.raises(ValidationError):
        orch.messages[0].content = "rewritten"

    await orch.shutdown()
