"""Terminal front-end.

This file stays intentionally thin: it renders orchestrator snapshots and
forwards key presses as activations. The orchestrator remains the single
authority for turn-taking.

Keys: Enter = activate (start / interrupt / listen), s = toggle speech, q = quit.
"""

from __future__ import annotations

import asyncio
import logging

from friday_companion.orchestrator.schemas import (
    ConversationSnapshot,
    DiagnosticStatus,
    MessageRole,
    OrchestratorState,
)
from friday_companion.orchestrator.turn_orchestrator import TurnOrchestrator

logger = logging.getLogger(__name__)

_STATE_LABELS = {
    OrchestratorState.IDLE: "idle (press Enter to talk)",
    OrchestratorState.LISTENING: "listening...",
    OrchestratorState.THINKING: "thinking...",
    OrchestratorState.SPEAKING: "speaking (press Enter to interrupt)",
}

_STATUS_MARKS = {
    DiagnosticStatus.PENDING: "..",
    DiagnosticStatus.SUCCESS: "OK",
    DiagnosticStatus.ERROR: "!!",
}


class TerminalInterface:
    def __init__(self, orchestrator: TurnOrchestrator, *, run_diagnostics: bool = True) -> None:
        self._orchestrator = orchestrator
        self._run_diagnostics = run_diagnostics
        self._shown_messages = 0
        self._shown_logs: list[tuple[str, DiagnosticStatus]] = []
        self._last_state: OrchestratorState | None = None

    def render(self, snap: ConversationSnapshot) -> None:
        for i, log in enumerate(snap.diagnostic_logs):
            entry = (log.message, log.status)
            if i < len(self._shown_logs) and self._shown_logs[i] == entry:
                continue
            if log.status is not DiagnosticStatus.PENDING:
                print(f"  [{_STATUS_MARKS[log.status]}] {log.message}", flush=True)
        self._shown_logs = [(log.message, log.status) for log in snap.diagnostic_logs]

        for msg in snap.messages[self._shown_messages:]:
            label = "You" if msg.role is MessageRole.USER else "Friday"
            mode = f" ({msg.mode})" if msg.mode else ""
            print(f"\n[{label}]{mode} {msg.content}\n", flush=True)
        self._shown_messages = len(snap.messages)

        if snap.state is not self._last_state and not snap.booting:
            self._last_state = snap.state
            ctx = snap.emotional_context
            print(
                f"[Voice] {_STATE_LABELS[snap.state]}  "
                f"(mood: {ctx.dominant_emotion}/{ctx.energy_level}/{ctx.conversation_depth})",
                flush=True,
            )

    async def run(self) -> None:
        print("\n" + "=" * 60)
        print("Friday - Voice Companion")
        print("=" * 60 + "\n")

        unsubscribe = self._orchestrator.subscribe(self.render)
        try:
            if self._run_diagnostics:
                print("Running diagnostics...", flush=True)
                ok = await self._orchestrator.run_diagnostics()
                if not ok:
                    print("Some systems are offline; the conversation may be degraded.", flush=True)

            print("\nEnter = talk / interrupt, s = toggle speech, q = quit\n", flush=True)
            while True:
                command = (await self._get_input()).strip().lower()
                if command in {"q", "quit", "exit"}:
                    break
                if command == "s":
                    self._orchestrator.speech_enabled = not self._orchestrator.speech_enabled
                    print(f"[Voice] speech output {'on' if self._orchestrator.speech_enabled else 'off'}")
                    continue
                await self._orchestrator.activate()
        finally:
            await self._orchestrator.shutdown()
            unsubscribe()

    async def _get_input(self) -> str:
        try:
            return await asyncio.to_thread(input)
        except EOFError:
            return "q"
