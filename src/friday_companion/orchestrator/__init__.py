"""
Orchestrator module for turn-taking, conversation state and diagnostics.

`TurnOrchestrator` lives in `friday_companion.orchestrator.turn_orchestrator`;
it is not re-exported here because it depends on the model client, which in
turn depends on these schemas.
"""

from friday_companion.orchestrator.conversation_state import ConversationState
from friday_companion.orchestrator.diagnostics import (
    DiagnosticCheck,
    DiagnosticsSequencer,
    build_default_checks,
)
from friday_companion.orchestrator.emotional_context import EmotionalContextStore
from friday_companion.orchestrator.schemas import (
    ConversationSnapshot,
    DiagnosticLog,
    DiagnosticStatus,
    EmotionalContext,
    Message,
    MessageRole,
    OrchestratorState,
)

__all__ = [
    "ConversationState",
    "ConversationSnapshot",
    "DiagnosticCheck",
    "DiagnosticLog",
    "DiagnosticStatus",
    "DiagnosticsSequencer",
    "EmotionalContext",
    "EmotionalContextStore",
    "Message",
    "MessageRole",
    "OrchestratorState",
    "build_default_checks",
]
