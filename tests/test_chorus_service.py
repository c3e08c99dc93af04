import asyncio

import pytest

from voice_chorus.config import Settings
from voice_chorus.conversation.pipeline import ResponsePipeline
from voice_chorus.conversation.personalities import default_personalities
from voice_chorus.conversation.schemas import AudioUnit, Position, Queued
from voice_chorus.conversation.service import build_service
from voice_chorus.errors import CollaboratorError, InputError, PipelineError, UnknownParticipantError
from voice_chorus.services.llm_client import LLMClientBase, LLMResponse
from voice_chorus.services.stt import STTProvider, TranscriptionResult
from voice_chorus.services.tts import TTSProvider
from voice_chorus.storage import AudioStore


class FakeLLM(LLMClientBase):
    def __init__(self, replies: list[str] | None = None) -> None:
        self.replies = list(replies or [])
        self.prompts: list[str] = []

    async def complete(self, prompt, temperature=None, **kwargs):
        self.prompts.append(prompt)
        content = self.replies.pop(0) if self.replies else "ok"
        return LLMResponse(content=content)


class FakeSTT(STTProvider):
    def __init__(self, texts: list[str]) -> None:
        self._texts = list(texts)
        self.fail = False

    async def transcribe_file(self, wav_path):
        if self.fail:
            raise CollaboratorError("Transcription failed", stage="transcribe")
        return TranscriptionResult(text=self._texts.pop(0))


class FakeTTS(TTSProvider):
    def __init__(self) -> None:
        self.spoken: list[tuple[str, str]] = []

    async def synthesize(self, text, voice_id):
        self.spoken.append((text, voice_id))
        return b"mp3:" + text.encode()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        elevenlabs_voice_id_1="v1",
        elevenlabs_voice_id_2="v2",
        elevenlabs_voice_id_3="v3",
        audio_dir=str(tmp_path / "audio"),
    )


def make_service(settings, texts=(), replies=(), **overrides):
    llm, stt, tts = FakeLLM(list(replies)), FakeSTT(list(texts)), FakeTTS()
    settings = settings.model_copy(update=overrides)
    service = build_service(
        settings,
        llm_client=llm,
        transcriber=stt,
        synthesizer=tts,
        store=AudioStore(settings.audio_dir),
    )
    service.store.initialize()
    return service, llm, stt, tts


def test_default_personalities(settings):
    roster = default_personalities(settings)

    assert [p.id for p in roster] == ["advisor", "critic", "supporter"]
    assert [p.voice_id for p in roster] == ["v1", "v2", "v3"]
    assert roster[0].position == Position(x=0, y=0, z=1)
    assert roster[1].position == Position(x=-1, y=0, z=0.5)
    assert roster[2].position == Position(x=1, y=0, z=0.5)
    assert all("5 WORDS" in p.system_prompt for p in roster)


@pytest.mark.asyncio
async def test_transcribe_rejects_empty_audio(settings):
    service, *_ = make_service(settings)

    with pytest.raises(InputError):
        await service.transcribe(b"")


@pytest.mark.asyncio
async def test_transcribe_failure_still_deletes_upload(settings):
    service, _, stt, _ = make_service(settings)
    stt.fail = True

    with pytest.raises(CollaboratorError):
        await service.transcribe(b"RIFF")

    assert list(service.store.uploads_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_submit_rejects_blank(settings):
    service, *_ = make_service(settings)

    with pytest.raises(InputError):
        await service.submit("  ")


@pytest.mark.asyncio
async def test_synthesize_unknown_personality(settings):
    service, _, _, tts = make_service(settings)

    with pytest.raises(UnknownParticipantError):
        await service.synthesize("hi", "narrator")
    assert tts.spoken == []


@pytest.mark.asyncio
async def test_in_process_pipeline_end_to_end(settings):
    service, llm, _, tts = make_service(settings, texts=["what should I say"], replies=["Ask about budget"])
    pipeline = ResponsePipeline(service)

    unit = await pipeline.handle(b"RIFF")

    assert isinstance(unit, AudioUnit)
    assert unit.audio == b"mp3:Ask about budget"
    assert unit.participant_id == "advisor"
    assert unit.position == Position(x=0, y=0, z=1)
    assert tts.spoken == [("Ask about budget", "v1")]
    assert llm.prompts[0].endswith("Current conversation:\nwhat should I say")
    assert service.last_audio().read_bytes() == b"mp3:Ask about budget"


@pytest.mark.asyncio
async def test_pipeline_empty_transcription_does_nothing(settings):
    service, llm, _, tts = make_service(settings, texts=["   "])

    assert await ResponsePipeline(service).handle(b"RIFF") is None
    assert llm.prompts == []
    assert tts.spoken == []


@pytest.mark.asyncio
async def test_pipeline_stage_failure(settings):
    service, _, stt, tts = make_service(settings)
    stt.fail = True

    with pytest.raises(PipelineError) as exc:
        await ResponsePipeline(service).handle(b"RIFF")

    assert exc.value.stage == "transcribe"
    assert tts.spoken == []


@pytest.mark.asyncio
async def test_pipeline_queued_skips_synthesis(settings):
    service, _, _, tts = make_service(settings, texts=["later"], selection_mode="single")
    advisor = service.scheduler.get("advisor")

    await advisor.lock.acquire()
    try:
        outcome = await ResponsePipeline(service).handle(b"RIFF")
    finally:
        advisor.lock.release()

    assert outcome == Queued(participant_id="advisor")
    assert advisor.pending_inputs == ["later"]
    assert tts.spoken == []


@pytest.mark.asyncio
async def test_deferred_reply_becomes_last_audio(settings):
    service, llm, _, tts = make_service(
        settings,
        replies=["first", "deferred"],
        selection_mode="single",
        scheduler_auto_drain=True,
    )
    gate = asyncio.Event()
    complete = llm.complete

    async def gated(prompt, temperature=None, **kwargs):
        await gate.wait()
        return await complete(prompt, temperature, **kwargs)

    llm.complete = gated

    first = asyncio.create_task(service.submit("hello"))
    await asyncio.sleep(0)
    assert await service.submit("world") == Queued(participant_id="advisor")
    gate.set()

    reply = await first
    await service.scheduler.wait_idle()

    assert reply.reply == "first"
    assert tts.spoken == [("deferred", "v1")]
    assert service.last_audio().read_bytes() == b"mp3:deferred"
    assert service.scheduler.get("advisor").history == ["hello", "first", "world", "deferred"]
