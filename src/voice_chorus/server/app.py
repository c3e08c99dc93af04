"""
HTTP surface.

| Route           | Method | Request                          | Response                                  |
|-----------------|--------|----------------------------------|-------------------------------------------|
| /transcribe     | POST   | {audio: base64 WAV}              | {transcription}                           |
| /query-llama    | POST   | {transcription}                  | {response, personalityId, position} or    |
|                 |        |                                  | {queued: true, personalityId}             |
| /process-text   | POST   | {text, personalityId}            | audio bytes                               |
| /last-audio     | GET    |                                  | audio bytes or 404                        |
"""

import base64
import binascii
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

from voice_chorus.config import Settings, get_settings
from voice_chorus.conversation.schemas import Queued
from voice_chorus.conversation.service import ChorusService, build_service
from voice_chorus.errors import ChorusError, InputError
from voice_chorus.timing import log_elapsed

logger = logging.getLogger(__name__)


class TranscribeRequest(BaseModel):
    audio: str | None = Field(default=None, description="Base64-encoded WAV")


class QueryRequest(BaseModel):
    transcription: str | None = Field(default=None, description="Transcribed user speech")


class ProcessTextRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str | None = Field(default=None, description="Reply text to synthesize")
    personality_id: str | None = Field(default=None, alias="personalityId")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    settings: Settings | None = None,
    *,
    service: ChorusService | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (cached settings when omitted).
        service: Pre-built service; tests inject one with fake collaborators.
    """
    settings = settings or get_settings()
    service = service or build_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service.store.initialize()
        logger.info(f"Audio directory: {service.store.root.resolve()}")
        yield
        await service.close()

    app = FastAPI(title="voice-chorus", lifespan=lifespan)
    app.state.service = service

    @app.post("/transcribe")
    async def transcribe(body: TranscribeRequest):
        start = time.perf_counter()
        if not body.audio:
            return _error(400, "No audio data received")
        try:
            audio = base64.b64decode(body.audio, validate=True)
        except (binascii.Error, ValueError):
            return _error(400, "Audio is not valid base64")

        try:
            transcription = await service.transcribe(audio)
        except InputError as e:
            return _error(400, str(e))
        except ChorusError as e:
            logger.error(f"Error in transcription: {e}")
            return _error(500, str(e))

        log_elapsed("Transcription request complete", start, logger)
        return {"transcription": transcription}

    @app.post("/query-llama")
    async def query_llama(body: QueryRequest):
        start = time.perf_counter()
        if body.transcription is None:
            logger.info("Missing transcription received")
            return _error(400, "No transcription received")
        if not body.transcription.strip():
            logger.info("Empty transcription, skipping processing")
            return {"response": ""}

        try:
            outcome = await service.submit(body.transcription)
        except InputError as e:
            return _error(400, str(e))
        except ChorusError as e:
            logger.error(f"Error in Llama query: {e}")
            return _error(500, str(e))

        if isinstance(outcome, Queued):
            return {"queued": True, "personalityId": outcome.participant_id}

        log_elapsed("Llama query complete", start, logger)
        return {
            "response": outcome.reply,
            "personalityId": outcome.participant_id,
            "position": outcome.position.as_dict(),
        }

    @app.post("/process-text")
    async def process_text(body: ProcessTextRequest):
        start = time.perf_counter()
        try:
            audio = await service.synthesize(body.text or "", body.personality_id or "")
        except ChorusError as e:
            logger.error(f"Error in text processing: {e}")
            return _error(500, str(e))

        log_elapsed("Text processing complete", start, logger)
        return Response(content=audio, media_type=service.media_type)

    @app.get("/last-audio")
    async def last_audio():
        path = service.last_audio()
        if path is None:
            return PlainTextResponse("No audio available yet.", status_code=404)
        return Response(content=path.read_bytes(), media_type="audio/mpeg")

    static_dir = Path(settings.static_dir)
    if static_dir.is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")

    return app
