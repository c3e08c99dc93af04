"""Text-to-speech.

Default implementation uses the ElevenLabs HTTP API, one voice per personality.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import httpx

from voice_chorus.errors import CollaboratorError, InputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TTSConfig:
    api_key: str = ""
    model_id: str = "eleven_monolingual_v1"
    base_url: str = "https://api.elevenlabs.io/v1"
    output_format: str = "audio/mpeg"
    timeout_s: float = 60.0


class TTSProvider:
    media_type: str = "audio/mpeg"

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        raise NotImplementedError


class ElevenLabsTTS(TTSProvider):
    def __init__(
        self,
        config: TTSConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or TTSConfig()
        self._transport = transport
        self.media_type = self._config.output_format

    @property
    def config(self) -> TTSConfig:
        return self._config

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        t = (text or "").strip()
        if not t:
            raise InputError("No text received")
        if not voice_id:
            raise CollaboratorError("No synthesis voice configured", stage="synthesize")

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=self._config.timeout_s,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    f"/text-to-speech/{voice_id}",
                    json={"text": t, "model_id": self._config.model_id},
                    headers={
                        "xi-api-key": self._config.api_key,
                        "Accept": self._config.output_format,
                    },
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"ElevenLabs error: {e.response.status_code} {e.response.text[:200]}")
            raise CollaboratorError(
                f"Speech synthesis failed ({e.response.status_code})",
                stage="synthesize",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"ElevenLabs request failed: {e}")
            raise CollaboratorError(f"Speech synthesis failed: {e}", stage="synthesize") from e

        audio = response.content
        if not audio:
            raise CollaboratorError("Speech synthesis returned no audio", stage="synthesize")

        excerpt = t[:80].replace("\n", " ")
        logger.info(
            f"[TTS] synthesized voice={voice_id} bytes={len(audio)} "
            f"dur={time.perf_counter() - start:.2f}s text=\"{excerpt}\""
        )
        return audio
