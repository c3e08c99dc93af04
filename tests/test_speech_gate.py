import numpy as np
import pytest

from voice_chorus.client.speech_gate import GateEventKind, SpeechGate, VADConfig


class ScriptedDetector:
    """Reads the speech probability from the first sample of each frame."""

    def speech_probability(self, frame: np.ndarray) -> float:
        return float(frame[0])


def frame(prob: float, n: int = 10) -> np.ndarray:
    return np.full(n, prob, dtype=np.float32)


@pytest.fixture
def gate() -> SpeechGate:
    config = VADConfig(
        positive_speech_threshold=0.5,
        negative_speech_threshold=0.35,
        min_speech_frames=2,
        pre_speech_pad_frames=1,
        redemption_frames=2,
        sample_rate=100,
        frame_samples=10,
    )
    return SpeechGate(ScriptedDetector(), config)


def feed(gate: SpeechGate, probs: list[float]):
    return [e for e in (gate.process_frame(frame(p)) for p in probs) if e is not None]


def test_start_requires_consecutive_speech_frames(gate):
    assert feed(gate, [0.9, 0.0, 0.9, 0.0]) == []
    assert gate.listening is False

    events = feed(gate, [0.9, 0.9])
    assert [e.kind for e in events] == [GateEventKind.START]
    assert gate.listening is True


def test_repeated_speech_does_not_restart(gate):
    events = feed(gate, [0.9] * 10)

    assert [e.kind for e in events] == [GateEventKind.START]


def test_end_carries_padded_utterance(gate):
    events = feed(gate, [0.0, 0.9, 0.9, 0.9, 0.0, 0.0])

    assert [e.kind for e in events] == [GateEventKind.START, GateEventKind.END]
    audio = events[1].audio
    # One pad frame + two start frames + one speech frame + two silent frames.
    assert audio.shape == (60,)
    assert audio[0] == 0.0
    assert audio[10] == pytest.approx(0.9)
    assert gate.listening is False


def test_ambiguous_frames_do_not_reset_redemption(gate):
    events = feed(gate, [0.9, 0.9, 0.0, 0.4, 0.0])

    assert [e.kind for e in events] == [GateEventKind.START, GateEventKind.END]


def test_speech_resets_redemption(gate):
    events = feed(gate, [0.9, 0.9, 0.0, 0.9, 0.0])

    assert [e.kind for e in events] == [GateEventKind.START]


def test_starts_and_ends_alternate(gate):
    events = feed(gate, [0.9, 0.9, 0.0, 0.0, 0.9, 0.9, 0.9, 0.0, 0.0, 0.0, 0.0])

    assert [e.kind for e in events] == [
        GateEventKind.START,
        GateEventKind.END,
        GateEventKind.START,
        GateEventKind.END,
    ]


def test_flush_ends_open_utterance(gate):
    assert gate.flush() is None

    feed(gate, [0.9, 0.9, 0.9])
    event = gate.flush()

    assert event.kind == GateEventKind.END
    assert event.audio.shape == (30,)
    assert gate.flush() is None


def test_presets():
    desktop = VADConfig.for_profile("desktop")
    constrained = VADConfig.for_profile("constrained")

    assert (desktop.positive_speech_threshold, desktop.negative_speech_threshold) == (0.5, 0.35)
    assert desktop.min_speech_frames == 3
    assert (constrained.positive_speech_threshold, constrained.negative_speech_threshold) == (0.8, 0.5)
    assert constrained.min_speech_frames == 7
    assert constrained.pre_speech_pad_frames == 7
    assert constrained.sample_rate == 16000

    with pytest.raises(ValueError):
        VADConfig.for_profile("loud")
