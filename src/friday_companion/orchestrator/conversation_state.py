"""
Conversation state management.

Tracks the append-only message history of a conversation session.
"""

from datetime import datetime, timezone

from friday_companion.orchestrator.schemas import Message, MessageRole


class ConversationState:
    """
    Manages the message history of a conversation session.

    Messages are appended in conversational order and never reordered,
    edited or removed. Callers only ever receive tuples.
    """

    def __init__(self) -> None:
        """Initialize an empty conversation."""
        self._messages: list[Message] = []
        self._started_at: datetime | None = None

    @property
    def messages(self) -> tuple[Message, ...]:
        """Get all messages in insertion order."""
        return tuple(self._messages)

    @property
    def is_started(self) -> bool:
        """Check if the conversation has been started."""
        return self._started_at is not None

    def mark_started(self) -> None:
        """Mark the conversation as started."""
        if self._started_at is None:
            self._started_at = datetime.now(timezone.utc)

    def append(
        self,
        role: MessageRole,
        content: str,
        mode: str | None = None,
    ) -> Message:
        """
        Append a new message.

        Args:
            role: Role of the speaker.
            content: Message text.
            mode: Optional label for how the message was produced.

        Returns:
            The created Message.
        """
        message = Message(role=role, content=content, mode=mode)
        self._messages.append(message)
        return message
