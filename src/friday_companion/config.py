"""
Application configuration using pydantic-settings.

Loads configuration from environment variables (prefixed ``FRIDAY_``) and .env files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FRIDAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_parse_none_str="None",
    )

    # Conversation model (Ollama-compatible chat endpoint)
    model_endpoint: str = Field(
        default="http://localhost:11434",
        description="Base URL of the chat endpoint",
    )
    llm_model_name: str = Field(
        default="gpt-oss:20b",
        description="Model name to request (e.g., gpt-oss:20b)",
    )
    llm_api_key: str | None = Field(
        default=None,
        description="Optional bearer token sent to the endpoint",
    )
    llm_timeout: float = Field(
        default=60.0,
        description="Timeout in seconds for model requests",
    )
    llm_temperature: float = Field(
        default=1.0,
        description="Sampling temperature; high for varied, human-like replies",
    )
    history_window: int = Field(
        default=10,
        description="Maximum number of past messages sent with each request",
    )

    # Turn-taking
    silence_threshold_s: float = Field(
        default=1.5,
        description="Silence after the last recognized fragment that ends a user turn",
    )
    max_listen_s: float | None = Field(
        default=30.0,
        description="Hard ceiling on a single listening session (None disables it)",
    )
    relisten_delay_s: float = Field(
        default=0.2,
        description="Pause between the end of playback and re-opening the microphone",
    )
    speech_enabled: bool = Field(
        default=True,
        description="Speak replies aloud",
    )

    # Speech output (Piper)
    voice_locale: str = Field(
        default="en_US",
        description="Locale used when no preferred voice is installed",
    )
    voice_preferences: list[str] = Field(
        default=["en_GB-jenny_dioco", "en_GB-alba", "en_US-amy", "en_US-lessac"],
        description="Voice names tried in order before falling back to the locale",
    )
    voices_dir: str = Field(
        default="./voices",
        description="Directory holding Piper *.onnx voices and their *.onnx.json metadata",
    )
    piper_bin: str = Field(default="piper", description="Path/name of the Piper TTS binary")
    piper_model: str | None = Field(
        default=None,
        description="Default Piper .onnx model, used when no installed voice matches",
    )
    piper_timeout_s: float = Field(default=60.0, description="Timeout per Piper synthesis chunk")
    tts_cache_dir: str = Field(
        default="data/tts_cache",
        description="Where synthesized WAV chunks are written",
    )

    # Speech input (faster-whisper)
    stt_model: str = Field(default="small", description="faster-whisper model size")
    stt_device: Literal["cpu", "cuda", "auto"] = Field(default="cpu", description="STT device")
    stt_language: str | None = Field(default="en", description="Recognition language")
    sample_rate: int = Field(default=16000, description="Microphone sample rate")

    # Diagnostics
    diagnostics_step_delay_s: float = Field(
        default=0.3,
        description="Pause before each boot check",
    )
    diagnostics_settle_s: float = Field(
        default=0.5,
        description="Pause after the last boot check before accepting activations",
    )

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
