import time

import numpy as np
import pytest

from voice_chorus.client.session import VoiceLoop, VoiceLoopConfig
from voice_chorus.client.speech_gate import GateEvent, SpeechGate, VADConfig
from voice_chorus.conversation.pipeline import ResponsePipeline
from voice_chorus.conversation.schemas import Dispatched, Position, Queued
from voice_chorus.errors import CollaboratorError


class FramesExhausted(Exception):
    pass


class ScriptedDetector:
    def speech_probability(self, frame: np.ndarray) -> float:
        return float(frame[0])


class FakeFrames:
    def __init__(self, probs: list[float]) -> None:
        self._frames = [np.full(10, p, dtype=np.float32) for p in probs]
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def read(self) -> np.ndarray:
        if not self._frames:
            raise FramesExhausted()
        return self._frames.pop(0)

    async def stop(self) -> None:
        self.stopped = True


class FakePlayback:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.enqueued = []

    def on_speech_start(self):
        self.calls.append("start")
        return None

    def on_speech_end(self) -> None:
        self.calls.append("end")

    def enqueue(self, unit) -> bool:
        self.enqueued.append(unit)
        return True

    async def wait_idle(self) -> None:
        return None


class TickClock:
    """Advances one second per reading."""

    def __init__(self) -> None:
        self.now = -1.0

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


class FakeBackend:
    def __init__(self, text: str = "hello", queued: bool = False, fail: bool = False) -> None:
        self.text = text
        self.queued = queued
        self.fail = fail
        self.transcribed: list[bytes] = []

    async def transcribe(self, audio: bytes) -> str:
        self.transcribed.append(audio)
        return self.text

    async def submit(self, text: str):
        if self.fail:
            raise CollaboratorError("model offline", stage="generate")
        if self.queued:
            return Queued(participant_id="advisor")
        return Dispatched(reply="hi", participant_id="critic", position=Position(x=-1, y=0, z=0.5), prompt=text)

    async def synthesize(self, text: str, participant_id: str) -> bytes:
        return b"mp3"


def make_loop(backend: FakeBackend, playback: FakePlayback, idle_pause_s: float = 300.0, clock=time.monotonic) -> VoiceLoop:
    config = VADConfig(
        min_speech_frames=2,
        pre_speech_pad_frames=1,
        redemption_frames=2,
        sample_rate=100,
        frame_samples=10,
    )
    gate = SpeechGate(ScriptedDetector(), config)
    return VoiceLoop(
        gate=gate,
        playback=playback,
        pipeline=ResponsePipeline(backend),
        config=VoiceLoopConfig(sample_rate=100, min_utterance_s=0.2, idle_pause_s=idle_pause_s),
        clock=clock,
    )


@pytest.mark.asyncio
async def test_voice_loop_smoke_queues_reply_for_playback():
    backend = FakeBackend()
    playback = FakePlayback()
    loop = make_loop(backend, playback)
    frames = FakeFrames([0.0, 0.9, 0.9, 0.9, 0.0, 0.0])

    with pytest.raises(FramesExhausted):
        await loop.run(frames)
    await loop.wait_idle()

    assert frames.started and frames.stopped
    assert playback.calls == ["start", "end"]
    assert len(backend.transcribed) == 1
    assert backend.transcribed[0][:4] == b"RIFF"
    assert len(playback.enqueued) == 1
    unit = playback.enqueued[0]
    assert unit.audio == b"mp3"
    assert unit.participant_id == "critic"
    assert unit.position == Position(x=-1, y=0, z=0.5)


@pytest.mark.asyncio
async def test_short_utterance_not_sent():
    backend = FakeBackend()
    playback = FakePlayback()
    loop = make_loop(backend, playback)

    loop.handle_event(GateEvent.start())
    loop.handle_event(GateEvent.end(np.zeros(5, dtype=np.float32)))
    await loop.wait_idle()

    assert playback.calls == ["start", "end"]
    assert backend.transcribed == []


@pytest.mark.asyncio
async def test_queued_outcome_enqueues_nothing():
    playback = FakePlayback()
    loop = make_loop(FakeBackend(queued=True), playback)

    outcome = await loop.respond(np.zeros(50, dtype=np.float32))

    assert isinstance(outcome, Queued)
    assert playback.enqueued == []


@pytest.mark.asyncio
async def test_pipeline_failure_is_logged_not_raised():
    playback = FakePlayback()
    loop = make_loop(FakeBackend(fail=True), playback)

    assert await loop.respond(np.zeros(50, dtype=np.float32)) is None
    assert playback.enqueued == []


@pytest.mark.asyncio
async def test_flush_on_stop_ends_speech():
    playback = FakePlayback()
    loop = make_loop(FakeBackend(), playback)
    frames = FakeFrames([0.9, 0.9, 0.9])

    with pytest.raises(FramesExhausted):
        await loop.run(frames)

    assert playback.calls == ["start", "end"]


@pytest.mark.asyncio
async def test_capture_pauses_after_inactivity():
    playback = FakePlayback()
    loop = make_loop(FakeBackend(), playback, idle_pause_s=3, clock=TickClock())
    frames = FakeFrames([0.0] * 10)

    await loop.run(frames)

    assert frames.stopped
    assert len(frames._frames) == 7
    assert playback.calls == []


@pytest.mark.asyncio
async def test_speech_keeps_capture_running():
    loop = make_loop(FakeBackend(), FakePlayback(), idle_pause_s=4, clock=TickClock())
    frames = FakeFrames([0.0, 0.0, 0.9, 0.9, 0.9, 0.9, 0.9, 0.0])

    with pytest.raises(FramesExhausted):
        await loop.run(frames)

    assert frames.stopped


@pytest.mark.asyncio
async def test_zero_idle_pause_never_stops():
    loop = make_loop(FakeBackend(), FakePlayback(), idle_pause_s=0, clock=TickClock())
    frames = FakeFrames([0.0] * 20)

    with pytest.raises(FramesExhausted):
        await loop.run(frames)
