"""
Emotional context store.

Holds the latest emotional snapshot returned by the conversation model.
"""

import logging

from friday_companion.orchestrator.schemas import EmotionalContext

logger = logging.getLogger(__name__)


class EmotionalContextStore:
    """
    Single mutable slot holding the latest EmotionalContext.

    The record is replaced as a whole or not at all; there is no partial merge.
    """

    def __init__(self, initial: EmotionalContext | None = None) -> None:
        """
        Initialize the store.

        Args:
            initial: Starting context (defaults to neutral/medium/shallow/calm).
        """
        self._current = initial or EmotionalContext()

    @property
    def current(self) -> EmotionalContext:
        """Get the latest emotional context."""
        return self._current

    def replace(self, context: EmotionalContext) -> None:
        """
        Replace the stored context with a complete new record.

        Args:
            context: The new emotional context.
        """
        if not isinstance(context, EmotionalContext):
            raise TypeError(f"Expected EmotionalContext, got {type(context).__name__}")
        logger.debug(
            "Emotional context: %s/%s/%s -> %s/%s/%s",
            self._current.dominant_emotion,
            self._current.energy_level,
            self._current.conversation_depth,
            context.dominant_emotion,
            context.energy_level,
            context.conversation_depth,
        )
        self._current = context
