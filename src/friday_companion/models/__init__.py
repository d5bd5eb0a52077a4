"""
Models module for the conversation model client.

Provides structured reply + emotional-context calls against an Ollama-compatible endpoint.
"""

from friday_companion.models.llm_client import (
    DEFAULT_MODEL,
    ConversationModelClient,
    ModelCallError,
    ModelReply,
    ReplyPayload,
    build_system_instruction,
)

__all__ = [
    "ConversationModelClient",
    "ModelCallError",
    "ModelReply",
    "ReplyPayload",
    "DEFAULT_MODEL",
    "build_system_instruction",
]
