"""
Conversation service.

Server-side implementation of the three pipeline stages: transcription of an
uploaded utterance, scheduling a reply, and synthesizing a personality's
reply. The HTTP routes delegate here, and the voice client can use it
in-process as its pipeline backend.
"""

import logging
from pathlib import Path

from voice_chorus.config import Settings
from voice_chorus.conversation.personalities import default_personalities
from voice_chorus.conversation.scheduler import SelectionMode, TurnScheduler
from voice_chorus.conversation.schemas import Dispatched, Queued
from voice_chorus.errors import InputError
from voice_chorus.services.llm_client import LLMClientBase, OllamaClient
from voice_chorus.services.stt import OpenAIWhisperSTT, STTProvider, WhisperSTT
from voice_chorus.services.tts import ElevenLabsTTS, TTSConfig, TTSProvider
from voice_chorus.storage import AudioStore

logger = logging.getLogger(__name__)


class ChorusService:
    """Transcribe, schedule and synthesize for the configured personalities."""

    def __init__(
        self,
        *,
        scheduler: TurnScheduler,
        transcriber: STTProvider,
        synthesizer: TTSProvider,
        store: AudioStore,
        llm_client: LLMClientBase | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._llm_client = llm_client
        self._transcriber = transcriber
        self._synthesizer = synthesizer
        self._store = store

    @property
    def scheduler(self) -> TurnScheduler:
        return self._scheduler

    @property
    def store(self) -> AudioStore:
        return self._store

    @property
    def media_type(self) -> str:
        return getattr(self._synthesizer, "media_type", "audio/mpeg")

    async def transcribe(self, audio: bytes) -> str:
        """
        Transcribe one WAV utterance.

        The upload is written to a temporary file that is always deleted.

        Raises:
            InputError: If no audio was provided.
            CollaboratorError: If transcription failed.
        """
        if not audio:
            raise InputError("No audio data received")

        path = self._store.save_upload(audio)
        try:
            result = await self._transcriber.transcribe_file(path)
        finally:
            self._store.discard(path)

        logger.info(f"Transcription result: \"{result.text}\"")
        return result.text

    async def submit(self, text: str) -> Dispatched | Queued:
        """Hand a transcription to the turn scheduler."""
        if not text or not text.strip():
            raise InputError("No transcription received")
        return await self._scheduler.submit(text)

    async def synthesize(self, text: str, participant_id: str) -> bytes:
        """
        Synthesize reply text with the personality's voice and persist it.

        Raises:
            InputError: If text is empty or the personality is unknown.
            CollaboratorError: If synthesis failed.
        """
        if not text or not text.strip():
            raise InputError("No text received")
        participant = self._scheduler.get(participant_id)

        audio = await self._synthesizer.synthesize(text, participant.voice_id)
        self._store.save_response(audio)
        return audio

    async def store_deferred_reply(self, reply: Dispatched) -> None:
        """Synthesize a reply nobody is waiting for; it becomes the last audio."""
        if not reply.reply.strip():
            return
        await self.synthesize(reply.reply, reply.participant_id)
        logger.info(f"Stored deferred reply from {reply.participant_id} as last audio")

    def last_audio(self) -> Path | None:
        return self._store.last_audio()

    async def close(self) -> None:
        """Wait for background drains, then close the LLM client."""
        await self._scheduler.wait_idle()
        if self._llm_client is not None:
            await self._llm_client.close()


def build_transcriber(settings: Settings) -> STTProvider:
    if settings.stt_backend == "local":
        return WhisperSTT(settings.stt_model_size)
    return OpenAIWhisperSTT(
        settings.openai_api_key,
        base_url=settings.openai_base_url,
        model=settings.transcription_model,
        timeout=settings.stt_timeout,
    )


def build_service(
    settings: Settings,
    *,
    llm_client: LLMClientBase | None = None,
    transcriber: STTProvider | None = None,
    synthesizer: TTSProvider | None = None,
    store: AudioStore | None = None,
) -> ChorusService:
    """
    Wire a ChorusService from settings; any collaborator can be overridden.
    """
    llm = llm_client or OllamaClient(
        base_url=settings.ollama_url,
        model=settings.llm_model_name,
        timeout=settings.llm_timeout,
    )
    store = store or AudioStore(settings.audio_dir, retention=settings.response_retention)
    synthesizer = synthesizer or ElevenLabsTTS(
        TTSConfig(
            api_key=settings.elevenlabs_api_key,
            model_id=settings.elevenlabs_model_id,
            timeout_s=settings.tts_timeout,
        )
    )

    scheduler = TurnScheduler(
        default_personalities(settings),
        llm.generate,
        mode=SelectionMode(settings.selection_mode),
        active_id=settings.active_personality,
        auto_drain=settings.scheduler_auto_drain,
    )
    service = ChorusService(
        scheduler=scheduler,
        transcriber=transcriber or build_transcriber(settings),
        synthesizer=synthesizer,
        store=store,
        llm_client=llm,
    )
    scheduler.on_deferred_reply = service.store_deferred_reply
    return service
