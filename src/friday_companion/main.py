"""
Main entry point for the Friday voice companion.
"""

import argparse
import asyncio
import logging
import sys

from friday_companion.config import Settings, get_settings
from friday_companion.io.terminal_interface import TerminalInterface
from friday_companion.models.llm_client import ConversationModelClient
from friday_companion.orchestrator.diagnostics import DiagnosticsSequencer, build_default_checks
from friday_companion.orchestrator.emotional_context import EmotionalContextStore
from friday_companion.orchestrator.turn_orchestrator import OrchestratorConfig, TurnOrchestrator
from friday_companion.voice.audio_io import AudioIO, AudioIOConfig
from friday_companion.voice.recognizer import WhisperStreamingRecognizer
from friday_companion.voice.speech_input import SpeechInputAdapter, SpeechInputConfig
from friday_companion.voice.speech_output import SpeechOutputAdapter, SpeechOutputConfig
from friday_companion.voice.stt import STTConfig, WhisperSTT
from friday_companion.voice.tts import PiperTTS, TTSConfig


def setup_logging() -> None:
    """Configure application logging."""
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_parser(settings: Settings | None = None) -> argparse.ArgumentParser:
    """Build the CLI parser; every default comes from settings (FRIDAY_* env vars)."""
    settings = settings or get_settings()

    p = argparse.ArgumentParser(prog="friday-companion", description="Talk to Friday")
    p.add_argument(
        "--no-speech",
        dest="speech_enabled",
        action="store_false",
        default=settings.speech_enabled,
        help="Print replies instead of speaking them",
    )
    p.add_argument("--endpoint", default=settings.model_endpoint, help="Chat endpoint base URL")
    p.add_argument("--model", default=settings.llm_model_name, help="Model name")
    p.add_argument("--voices-dir", default=settings.voices_dir, help="Directory of Piper voices")
    p.add_argument("--piper-bin", default=settings.piper_bin, help="Path/name of the Piper TTS binary")
    p.add_argument("--piper-model", default=settings.piper_model, help="Default Piper .onnx model")
    p.add_argument("--stt-model", default=settings.stt_model, help="faster-whisper model size")
    p.add_argument(
        "--stt-device",
        default=settings.stt_device,
        choices=["cpu", "cuda", "auto"],
        help="STT device",
    )
    p.add_argument(
        "--skip-diagnostics",
        action="store_true",
        help="Do not run the boot checklist",
    )
    return p


def build_orchestrator(args: argparse.Namespace, settings: Settings) -> TurnOrchestrator:
    """Wire adapters, model client and diagnostics into an orchestrator."""
    context_store = EmotionalContextStore()

    model_client = ConversationModelClient(
        endpoint=args.endpoint,
        model=args.model,
        timeout=settings.llm_timeout,
        temperature=settings.llm_temperature,
        history_window=settings.history_window,
    )

    audio = AudioIO(AudioIOConfig(sample_rate=settings.sample_rate))
    stt = WhisperSTT(
        STTConfig(model_size=args.stt_model, device=args.stt_device, language=settings.stt_language)
    )
    recognizer = WhisperStreamingRecognizer(audio=audio, stt=stt)
    speech_input = SpeechInputAdapter(
        recognizer,
        SpeechInputConfig(
            silence_threshold_s=settings.silence_threshold_s,
            max_listen_s=settings.max_listen_s,
        ),
    )

    tts = PiperTTS(
        TTSConfig(
            piper_bin=args.piper_bin,
            model_path=args.piper_model,
            voices_dir=args.voices_dir,
            timeout_s=settings.piper_timeout_s,
        )
    )
    speech_output = SpeechOutputAdapter(
        tts=tts,
        player=audio,
        context_store=context_store,
        config=SpeechOutputConfig(
            locale=settings.voice_locale,
            voice_preferences=tuple(settings.voice_preferences),
            cache_dir=settings.tts_cache_dir,
        ),
    )

    diagnostics = DiagnosticsSequencer(
        build_default_checks(
            ping_model=model_client.ping,
            synthesis_available=lambda: speech_output.is_available()[0],
            recognition_available=lambda: speech_input.is_available,
        ),
        step_delay_s=settings.diagnostics_step_delay_s,
        settle_s=settings.diagnostics_settle_s,
    )

    return TurnOrchestrator(
        model_client=model_client,
        speech_input=speech_input,
        speech_output=speech_output,
        context_store=context_store,
        diagnostics=diagnostics,
        config=OrchestratorConfig(
            relisten_delay_s=settings.relisten_delay_s,
            speech_enabled=args.speech_enabled,
        ),
    )


async def run_companion(argv: list[str] | None = None) -> None:
    """
    Run an interactive conversation session.

    This is the main async entry point that initializes all components
    and runs the terminal front-end.
    """
    settings = get_settings()
    logger = logging.getLogger(__name__)
    args = build_parser(settings).parse_args(argv)

    logger.info("Initializing Friday...")
    logger.debug(f"Using model: {args.model} at {args.endpoint}")

    orchestrator = build_orchestrator(args, settings)
    interface = TerminalInterface(orchestrator, run_diagnostics=not args.skip_diagnostics)
    await interface.run()


def main() -> None:
    """Main entry point for the application."""
    setup_logging()

    try:
        asyncio.run(run_companion(sys.argv[1:]))
    except KeyboardInterrupt:
        print("\nSession terminated by user.")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
