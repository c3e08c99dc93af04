"""
Response pipeline.

Turns one captured utterance into a playable audio unit:
transcribe -> schedule/generate -> synthesize.

The pipeline is transport-agnostic. The backend is either the in-process
ChorusService or the HTTP RemoteBackend used by the voice client.
"""

import logging
import time
from typing import Protocol

from voice_chorus.conversation.schemas import AudioUnit, Dispatched, Queued
from voice_chorus.errors import ChorusError, PipelineError
from voice_chorus.timing import log_elapsed

logger = logging.getLogger(__name__)


class PipelineBackend(Protocol):
    async def transcribe(self, audio: bytes) -> str: ...

    async def submit(self, text: str) -> Dispatched | Queued: ...

    async def synthesize(self, text: str, participant_id: str) -> bytes: ...


class ResponsePipeline:
    """
    Orchestrates one request/response cycle.

    Outcomes of `handle`:
    - AudioUnit: a reply was generated and synthesized.
    - Queued: the chosen personality was busy; the input will be folded into
      its next generation and nothing is returned for it now.
    - None: the transcription was empty; no downstream work happened.

    Any stage failure raises PipelineError; a partial unit is never returned.
    """

    def __init__(self, backend: PipelineBackend) -> None:
        self._backend = backend

    async def handle(self, raw_audio: bytes) -> AudioUnit | Queued | None:
        start = time.perf_counter()

        text = await self._stage("transcribe", self._backend.transcribe(raw_audio))
        mark = log_elapsed("[PIPELINE] Transcription complete", start, logger)
        if not text or not text.strip():
            logger.info("[PIPELINE] Empty transcription, skipping processing")
            return None
        logger.info(f"[PIPELINE] You: {text}")

        outcome = await self._stage("generate", self._backend.submit(text))
        if isinstance(outcome, Queued):
            logger.info(f"[PIPELINE] Transcription queued on {outcome.participant_id}")
            return outcome
        mark = log_elapsed(f"[PIPELINE] {outcome.participant_id}: {outcome.reply}", mark, logger)

        if not outcome.reply.strip():
            logger.info(f"[PIPELINE] {outcome.participant_id} produced an empty reply, nothing to play")
            return None

        audio = await self._stage(
            "synthesize",
            self._backend.synthesize(outcome.reply, outcome.participant_id),
        )
        log_elapsed("[PIPELINE] Synthesis complete", mark, logger)
        unit = AudioUnit(
            audio=audio,
            participant_id=outcome.participant_id,
            position=outcome.position,
        )
        log_elapsed("[PIPELINE] Full end-to-end processing complete", start, logger)
        return unit

    async def _stage(self, name: str, awaitable):
        try:
            return await awaitable
        except ChorusError as e:
            logger.error(f"[PIPELINE] {name} failed: {e}")
            raise PipelineError(str(e), stage=name) from e
