"""
Friday: a voice-driven conversational companion.

mic -> STT -> language model (reply + emotional context) -> TTS -> speaker,
with automatic turn-taking and barge-in.
"""

__version__ = "0.1.0"
