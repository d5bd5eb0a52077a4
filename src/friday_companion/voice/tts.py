"""Text-to-speech (offline).

Default implementation uses `piper` via subprocess if available.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_LOCALE_PREFIX_RE = re.compile(r"^([a-z]{2,3}_[A-Z]{2})[-_]")


class SynthesisError(RuntimeError):
    """Speech synthesis or playback failed."""


@dataclass(frozen=True)
class Voice:
    name: str
    locale: str | None
    model_path: Path


@dataclass(frozen=True)
class TTSConfig:
    piper_bin: str = "piper"
    model_path: str | None = None  # default *.onnx when no installed voice matches
    voices_dir: str | None = None  # directory scanned for *.onnx voices
    speaker_id: int | None = None
    max_chars_per_chunk: int = 350
    timeout_s: float = 60.0


class TTSProvider:
    def is_available(self) -> tuple[bool, str]:
        raise NotImplementedError

    def list_voices(self) -> list[Voice]:
        raise NotImplementedError

    async def synthesize_to_wavs(
        self,
        text: str,
        out_dir: str | Path,
        base_name: str,
        *,
        voice: Voice | None = None,
        length_scale: float = 1.0,
    ) -> list[Path]:
        raise NotImplementedError


class PiperTTS(TTSProvider):
    def __init__(self, config: TTSConfig | None = None) -> None:
        self._config = config or TTSConfig()
        self._validated_piper_path: str | None = None

    @property
    def config(self) -> TTSConfig:
        return self._config

    def is_available(self) -> tuple[bool, str]:
        try:
            _ = self._require_piper()
        except SynthesisError as e:
            return False, str(e)
        if not self._config.model_path and not self.list_voices():
            return False, "no Piper voice installed and no default model configured"
        return True, "ok"

    def list_voices(self) -> list[Voice]:
        if not self._config.voices_dir:
            return []
        voices_dir = Path(self._config.voices_dir).expanduser()
        if not voices_dir.is_dir():
            return []

        voices: list[Voice] = []
        for model_path in sorted(voices_dir.glob("*.onnx")):
            name = model_path.name[: -len(".onnx")]
            voices.append(Voice(name=name, locale=self._read_locale(model_path, name), model_path=model_path))
        return voices

    def _read_locale(self, model_path: Path, name: str) -> str | None:
        # Piper ships `<voice>.onnx.json` next to each model.
        meta_path = model_path.with_name(model_path.name + ".json")
        if meta_path.is_file():
            try:
                meta = json.loads(meta_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.debug(f"[VOICE][TTS] unreadable voice metadata {meta_path}: {e}")
            else:
                code = (meta.get("language") or {}).get("code")
                if isinstance(code, str) and code:
                    return code

        m = _LOCALE_PREFIX_RE.match(name)
        return m.group(1) if m else None

    def _looks_like_piper_tts(self, piper_path: str) -> bool:
        try:
            r = subprocess.run(
                [piper_path, "--help"],
                check=False,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=5,
            )
        except (OSError, subprocess.SubprocessError):
            return False

        out = (r.stdout or "").lower()
        # Piper TTS CLI typically supports these flags.
        return ("--model" in out or "--output_file" in out) and "application options" not in out

    def _require_piper(self) -> str:
        if self._validated_piper_path:
            return self._validated_piper_path

        p = shutil.which(self._config.piper_bin)
        if not p:
            raise SynthesisError(
                "piper CLI not found. Install piper (binary) and ensure it's on PATH, "
                "or set FRIDAY_PIPER_BIN."
            )
        if not self._looks_like_piper_tts(p):
            raise SynthesisError(
                "Found a `piper` binary, but it does not look like the Piper TTS CLI (common on Linux: /usr/bin/piper is a GTK app). "
                "Install Piper TTS and set FRIDAY_PIPER_BIN to that binary path (e.g., ~/piper/piper), then retry."
            )

        self._validated_piper_path = p
        return p

    def _chunk_text(self, text: str) -> list[str]:
        t = (text or "").strip()
        if not t:
            return []

        # Split on sentence-ish boundaries, then re-pack into chunks.
        parts = [p.strip() for p in re.split(r"(?<=[.!?])\s+", t) if p.strip()]
        chunks: list[str] = []
        current = ""
        for p in parts:
            if not current:
                current = p
                continue
            if len(current) + 1 + len(p) <= self._config.max_chars_per_chunk:
                current = current + " " + p
            else:
                chunks.append(current)
                current = p
        if current:
            chunks.append(current)

        # Hard-split anything still too long (no sentence boundaries).
        out: list[str] = []
        limit = self._config.max_chars_per_chunk
        for c in chunks:
            out.extend(c[i : i + limit] for i in range(0, len(c), limit))
        return out

    async def synthesize_to_wavs(
        self,
        text: str,
        out_dir: str | Path,
        base_name: str,
        *,
        voice: Voice | None = None,
        length_scale: float = 1.0,
    ) -> list[Path]:
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        piper_bin = self._require_piper()
        model_path = str(voice.model_path) if voice else self._config.model_path
        if not model_path:
            raise SynthesisError(
                "No Piper voice available. Put voices in FRIDAY_VOICES_DIR or set FRIDAY_PIPER_MODEL=/path/to/voice.onnx."
            )

        chunks = self._chunk_text(text)
        if not chunks:
            return []

        cmd_base = [piper_bin, "--model", model_path, "--length_scale", f"{length_scale:.3f}"]
        if self._config.speaker_id is not None:
            cmd_base += ["--speaker", str(self._config.speaker_id)]

        def _call(chunk: str, wav_path: Path) -> None:
            try:
                subprocess.run(
                    cmd_base + ["--output_file", str(wav_path)],
                    input=chunk,
                    text=True,
                    check=True,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                    timeout=self._config.timeout_s,
                )
            except subprocess.TimeoutExpired as e:
                raise SynthesisError(
                    f"piper timed out after {self._config.timeout_s:.1f}s. "
                    f"model={model_path}. "
                    "Consider reducing max_chars_per_chunk or increasing timeout_s."
                ) from e
            except subprocess.CalledProcessError as e:
                stderr = (e.stderr or "").strip()
                raise SynthesisError(
                    f"piper failed (exit={e.returncode}). "
                    f"model={model_path}. "
                    f"stderr={stderr or '<empty>'}"
                ) from e
            except OSError as e:
                raise SynthesisError(f"piper could not be started: {e}") from e

        wavs: list[Path] = []
        for idx, chunk in enumerate(chunks):
            wav_path = out_dir / f"{base_name}_{idx:02d}.wav"
            await asyncio.to_thread(_call, chunk, wav_path)
            wavs.append(wav_path)

        return wavs
