"""
Pydantic schemas for the orchestrator module.

Defines the conversation data model: messages, emotional context,
orchestrator states, diagnostics entries and the read-only UI snapshot.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

EnergyLevel = Literal["low", "medium", "high"]
ConversationDepth = Literal["shallow", "deep", "profound"]


class MessageRole(str, Enum):
    """Role of the speaker in a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"


class OrchestratorState(str, Enum):
    """Turn-taking states. Exactly one is active at a time."""

    IDLE = "idle"
    LISTENING = "listening"
    THINKING = "thinking"
    SPEAKING = "speaking"


class DiagnosticStatus(str, Enum):
    """Outcome of a boot check."""

    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class Message(BaseModel):
    """A single conversation message. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole = Field(..., description="Who produced the message")
    content: str = Field(..., description="Message text")
    mode: str | None = Field(
        default=None,
        description="How an assistant line was produced (greeting, fallback)",
    )


class EmotionalContext(BaseModel):
    """
    Snapshot of the user's emotional state as estimated by the model.

    Field names are snake_case in Python and camelCase on the wire.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    dominant_emotion: str = Field(
        default="neutral",
        alias="dominantEmotion",
        description="The detected emotion of the user",
    )
    energy_level: EnergyLevel = Field(
        default="medium",
        alias="energyLevel",
        description="Overall energy of the user",
    )
    conversation_depth: ConversationDepth = Field(
        default="shallow",
        alias="conversationDepth",
        description="How personal or reflective the conversation has become",
    )
    user_state: str = Field(
        default="calm",
        alias="userState",
        description="Brief description of the user's current vibe",
    )


class DiagnosticLog(BaseModel):
    """One line of the boot checklist."""

    model_config = ConfigDict(frozen=True)

    message: str
    status: DiagnosticStatus = DiagnosticStatus.PENDING


class ConversationSnapshot(BaseModel):
    """
    Read-only projection of the orchestrator for presentation layers.

    Consumers render from this and never mutate orchestrator state directly.
    """

    model_config = ConfigDict(frozen=True)

    state: OrchestratorState
    messages: tuple[Message, ...] = ()
    speech_enabled: bool = True
    booting: bool = False
    diagnostic_logs: tuple[DiagnosticLog, ...] = ()
    emotional_context: EmotionalContext = Field(default_factory=EmotionalContext)

    @property
    def is_listening(self) -> bool:
        return self.state is OrchestratorState.LISTENING

    @property
    def is_typing(self) -> bool:
        return self.state is OrchestratorState.THINKING

    @property
    def is_speaking(self) -> bool:
        return self.state is OrchestratorState.SPEAKING
