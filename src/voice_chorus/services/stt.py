"""Speech-to-text.

Two providers: the hosted Whisper API (default) and a local `faster-whisper`
model for offline use.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path

import httpx

from voice_chorus.errors import CollaboratorError
from voice_chorus.timing import log_elapsed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranscriptionResult:
    text: str


class STTProvider:
    async def transcribe_file(self, wav_path: str | Path) -> TranscriptionResult:
        raise NotImplementedError


class OpenAIWhisperSTT(STTProvider):
    """Hosted Whisper transcription (`POST /audio/transcriptions`)."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.openai.com/v1",
        model: str = "whisper-1",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._transport = transport

    async def transcribe_file(self, wav_path: str | Path) -> TranscriptionResult:
        wav_path = Path(wav_path)
        start = time.perf_counter()
        logger.info("Starting Whisper transcription...")

        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    "/audio/transcriptions",
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    data={"model": self._model},
                    files={"file": (wav_path.name, wav_path.read_bytes(), "audio/wav")},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Whisper API error: {e.response.status_code} {e.response.text[:200]}")
            raise CollaboratorError(
                "Transcription failed",
                stage="transcribe",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, OSError, ValueError) as e:
            logger.error(f"Whisper API error: {e}")
            raise CollaboratorError("Transcription failed", stage="transcribe") from e

        log_elapsed("Whisper transcription complete", start, logger)
        return TranscriptionResult(text=str(data.get("text", "")).strip())


class WhisperSTT(STTProvider):
    """Local faster-whisper model on the CPU, loaded on first use."""

    def __init__(self, model_size: str = "small", language: str | None = None) -> None:
        self.model_size = model_size
        self.language = language
        self._model = None

    def _transcribe_sync(self, wav_path: Path) -> str:
        if self._model is None:
            try:
                from faster_whisper import WhisperModel
            except ImportError as e:
                raise CollaboratorError(
                    "Local transcription needs the voice extra: pip install -e '.[voice]'",
                    stage="transcribe",
                ) from e
            logger.info(f"Loading faster-whisper model '{self.model_size}'...")
            self._model = WhisperModel(self.model_size, device="cpu")

        segments, _ = self._model.transcribe(str(wav_path), language=self.language, vad_filter=True)
        return " ".join(s.text.strip() for s in segments if s.text.strip())

    async def transcribe_file(self, wav_path: str | Path) -> TranscriptionResult:
        start = time.perf_counter()
        try:
            text = await asyncio.to_thread(self._transcribe_sync, Path(wav_path))
        except CollaboratorError:
            raise
        except Exception as e:
            logger.error(f"Local transcription failed: {e}")
            raise CollaboratorError("Transcription failed", stage="transcribe") from e

        log_elapsed("Local transcription complete", start, logger)
        return TranscriptionResult(text=text)
