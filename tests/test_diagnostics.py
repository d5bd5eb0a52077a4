import asyncio

import pytest

from friday_companion.orchestrator.diagnostics import (
    DiagnosticCheck,
    DiagnosticsSequencer,
    build_default_checks,
)
from friday_companion.orchestrator.schemas import DiagnosticStatus


def _check(result):
    async def run() -> bool:
        if isinstance(result, Exception):
            raise result
        return result

    return run


@pytest.mark.asyncio
async def test_all_checks_pass() -> None:
    sequencer = DiagnosticsSequencer(
        [DiagnosticCheck("MODEL_ENDPOINT", _check(True)), DiagnosticCheck("SPEECH_SYNTHESIS", _check(True))],
        step_delay_s=0,
        settle_s=0,
    )

    assert await sequencer.run() is True
    assert [log.message for log in sequencer.logs] == [
        "MODEL_ENDPOINT: ONLINE",
        "SPEECH_SYNTHESIS: ONLINE",
    ]
    assert all(log.status is DiagnosticStatus.SUCCESS for log in sequencer.logs)
    assert sequencer.booting is False


@pytest.mark.asyncio
async def test_failing_and_raising_checks_are_reported_offline() -> None:
    sequencer = DiagnosticsSequencer(
        [
            DiagnosticCheck("MODEL_ENDPOINT", _check(False)),
            DiagnosticCheck("SPEECH_RECOGNITION", _check(RuntimeError("no mic"))),
            DiagnosticCheck("EMOTIONAL_CONTEXT_SYNC", _check(True)),
        ],
        step_delay_s=0,
        settle_s=0,
    )

    assert await sequencer.run() is False
    statuses = [(log.message, log.status) for log in sequencer.logs]
    assert statuses == [
        ("MODEL_ENDPOINT: OFFLINE", DiagnosticStatus.ERROR),
        ("SPEECH_RECOGNITION: OFFLINE", DiagnosticStatus.ERROR),
        ("EMOTIONAL_CONTEXT_SYNC: ONLINE", DiagnosticStatus.SUCCESS),
    ]
    assert sequencer.booting is False


@pytest.mark.asyncio
async def test_pending_entry_and_booting_flag_during_a_check() -> None:
    release = asyncio.Event()

    async def slow() -> bool:
        await release.wait()
        return True

    sequencer = DiagnosticsSequencer([DiagnosticCheck("MODEL_ENDPOINT", slow)], step_delay_s=0, settle_s=0)
    changes = []
    unsubscribe = sequencer.subscribe(lambda: changes.append(len(sequencer.logs)))

    task = asyncio.create_task(sequencer.run())
    for _ in range(10):
        await asyncio.sleep(0)

    assert sequencer.booting is True
    (pending,) = sequencer.logs
    assert pending.message == "INITIALIZING MODEL_ENDPOINT..."
    assert pending.status is DiagnosticStatus.PENDING

    release.set()
    assert await task is True
    assert sequencer.booting is False
    assert changes

    unsubscribe()
    seen = len(changes)
    await sequencer.run()
    assert len(changes) == seen


@pytest.mark.asyncio
async def test_default_checklist_order_and_labels() -> None:
    async def ping() -> bool:
        return True

    checks = build_default_checks(
        ping_model=ping,
        synthesis_available=lambda: True,
        recognition_available=lambda: False,
        sync_delay_s=0,
    )

    assert [c.label for c in checks] == [
        "MODEL_ENDPOINT",
        "SPEECH_SYNTHESIS",
        "SPEECH_RECOGNITION",
        "EMOTIONAL_CONTEXT_SYNC",
    ]
    results = [await c.check() for c in checks]
    assert results == [True, True, False, True]
