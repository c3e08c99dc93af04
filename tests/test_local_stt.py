import sys

import pytest

from voice_chorus.config import Settings
from voice_chorus.conversation.service import build_transcriber
from voice_chorus.errors import CollaboratorError
from voice_chorus.services.stt import OpenAIWhisperSTT, WhisperSTT


class FakeSegment:
    def __init__(self, text: str) -> None:
        self.text = text


class FakeWhisperModel:
    def __init__(self, segments: list[str], fail: bool = False) -> None:
        self._segments = segments
        self._fail = fail
        self.calls = []

    def transcribe(self, path, language=None, vad_filter=True):
        self.calls.append((path, language, vad_filter))
        if self._fail:
            raise RuntimeError("CUDA driver missing")
        return (FakeSegment(t) for t in self._segments), None


@pytest.mark.asyncio
async def test_local_transcription_joins_segments(tmp_path):
    stt = WhisperSTT(language="en")
    stt._model = FakeWhisperModel([" Hello ", "", " there. "])
    wav = tmp_path / "audio_1.wav"

    result = await stt.transcribe_file(wav)

    assert result.text == "Hello there."
    assert stt._model.calls == [(str(wav), "en", True)]


@pytest.mark.asyncio
async def test_local_transcription_failure_is_collaborator_error(tmp_path):
    stt = WhisperSTT()
    stt._model = FakeWhisperModel([], fail=True)

    with pytest.raises(CollaboratorError) as exc:
        await stt.transcribe_file(tmp_path / "audio_1.wav")

    assert exc.value.stage == "transcribe"


@pytest.mark.asyncio
async def test_missing_faster_whisper_names_voice_extra(tmp_path, monkeypatch):
    monkeypatch.setitem(sys.modules, "faster_whisper", None)

    with pytest.raises(CollaboratorError) as exc:
        await WhisperSTT().transcribe_file(tmp_path / "audio_1.wav")

    assert "voice" in str(exc.value)
    assert exc.value.stage == "transcribe"

def test_build_transcriber_follows_backend_setting():
    hosted = build_transcriber(Settings(_env_file=None, openai_api_key="sk-test"))
    local = build_transcriber(Settings(_env_file=None, stt_backend="local", stt_model_size="tiny"))

    assert isinstance(hosted, OpenAIWhisperSTT)
    assert isinstance(local, WhisperSTT)
    assert local.model_size == "tiny"
