"""
Boot diagnostics.

Runs a fixed, ordered checklist before the companion accepts activations.
Purely observational: the only effect on turn-taking is the `booting` gate.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from friday_companion.orchestrator.schemas import DiagnosticLog, DiagnosticStatus

logger = logging.getLogger(__name__)

CheckFn = Callable[[], Awaitable[bool]]


@dataclass(frozen=True)
class DiagnosticCheck:
    """A named boot check."""

    label: str
    check: CheckFn


class DiagnosticsSequencer:
    """
    Sequential boot checklist.

    Each check is logged as pending, then rewritten as ONLINE or OFFLINE.
    `booting` stays true from the start of `run()` until the last check and
    the settle delay are done.
    """

    def __init__(
        self,
        checks: Sequence[DiagnosticCheck],
        step_delay_s: float = 0.3,
        settle_s: float = 0.5,
    ) -> None:
        """
        Initialize the sequencer.

        Args:
            checks: Checks to run, in order.
            step_delay_s: Pause before each check.
            settle_s: Pause after the last check.
        """
        self._checks = list(checks)
        self._step_delay_s = step_delay_s
        self._settle_s = settle_s
        self._logs: list[DiagnosticLog] = []
        self._booting = False
        self._listeners: list[Callable[[], None]] = []

    @property
    def booting(self) -> bool:
        """Check if the checklist is still running."""
        return self._booting

    @property
    def logs(self) -> tuple[DiagnosticLog, ...]:
        """Get the checklist entries in order."""
        return tuple(self._logs)

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Register a callback fired on every checklist change.

        Returns:
            A function that removes the callback.
        """
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)

    def _changed(self) -> None:
        for callback in list(self._listeners):
            callback()

    async def run(self) -> bool:
        """
        Run every check in order.

        Returns:
            True if all checks passed.
        """
        self._booting = True
        self._logs = []
        self._changed()
        all_ok = True

        try:
            for step in self._checks:
                self._logs.append(DiagnosticLog(message=f"INITIALIZING {step.label}..."))
                self._changed()
                await asyncio.sleep(self._step_delay_s)

                try:
                    ok = bool(await step.check())
                except Exception as e:
                    logger.warning(f"Diagnostic check {step.label} raised: {e!r}")
                    ok = False

                all_ok = all_ok and ok
                self._logs[-1] = DiagnosticLog(
                    message=f"{step.label}: {'ONLINE' if ok else 'OFFLINE'}",
                    status=DiagnosticStatus.SUCCESS if ok else DiagnosticStatus.ERROR,
                )
                logger.info(self._logs[-1].message)
                self._changed()

            await asyncio.sleep(self._settle_s)
        finally:
            self._booting = False
            self._changed()

        return all_ok


def build_default_checks(
    *,
    ping_model: CheckFn,
    synthesis_available: Callable[[], bool],
    recognition_available: Callable[[], bool],
    sync_delay_s: float = 0.6,
) -> list[DiagnosticCheck]:
    """
    Build the standard boot checklist.

    Args:
        ping_model: Async endpoint reachability check.
        synthesis_available: Whether speech output can be produced.
        recognition_available: Whether speech input can be captured.
        sync_delay_s: Fixed delay of the final context-sync step.

    Returns:
        Ordered list of checks.
    """

    async def _synthesis() -> bool:
        return synthesis_available()

    async def _recognition() -> bool:
        return recognition_available()

    async def _sync() -> bool:
        await asyncio.sleep(sync_delay_s)
        return True

    return [
        DiagnosticCheck("MODEL_ENDPOINT", ping_model),
        DiagnosticCheck("SPEECH_SYNTHESIS", _synthesis),
        DiagnosticCheck("SPEECH_RECOGNITION", _recognition),
        DiagnosticCheck("EMOTIONAL_CONTEXT_SYNC", _sync),
    ]
