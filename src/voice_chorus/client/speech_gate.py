"""Speech gate.

Turns per-frame voice probabilities into exactly two logical signals:
SpeechStart (once per utterance, however often the detector re-fires) and
SpeechEnd carrying the utterance samples (once per utterance). Starts and
ends strictly alternate. The gate holds no playback or conversation state.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VADConfig:
    positive_speech_threshold: float = 0.5
    negative_speech_threshold: float = 0.35
    # Consecutive speech frames needed before an utterance counts as started.
    min_speech_frames: int = 3
    pre_speech_pad_frames: int = 5
    # Consecutive non-speech frames that end an utterance.
    redemption_frames: int = 8
    sample_rate: int = 48000
    frame_samples: int = 1024

    @classmethod
    def desktop(cls) -> "VADConfig":
        return cls()

    @classmethod
    def constrained(cls) -> "VADConfig":
        """Stricter thresholds and smaller frames for phones and small boards."""
        return cls(
            positive_speech_threshold=0.8,
            negative_speech_threshold=0.5,
            min_speech_frames=7,
            pre_speech_pad_frames=7,
            sample_rate=16000,
            frame_samples=512,
        )

    @classmethod
    def for_profile(cls, profile: str) -> "VADConfig":
        if profile == "constrained":
            return cls.constrained()
        if profile == "desktop":
            return cls.desktop()
        raise ValueError(f"Unknown VAD profile: {profile!r}")


class VoiceDetector(Protocol):
    def speech_probability(self, frame: np.ndarray) -> float: ...


class WebRTCVoiceDetector:
    """
    `webrtcvad` adapter.

    webrtcvad only classifies 10/20/30 ms int16 windows at 8/16/32/48 kHz, so
    each frame is cut into 10 ms windows and the probability is the voiced
    fraction.
    """

    SUPPORTED_RATES = (8000, 16000, 32000, 48000)

    def __init__(self, sample_rate: int, aggressiveness: int = 2) -> None:
        if sample_rate not in self.SUPPORTED_RATES:
            raise ValueError(f"webrtcvad does not support sample_rate={sample_rate}")
        try:
            import webrtcvad  # type: ignore
        except Exception as e:  # pragma: no cover
            raise RuntimeError(
                "webrtcvad is required for speech detection. Install with: pip install -e '.[voice]'"
            ) from e

        self._vad = webrtcvad.Vad(aggressiveness)
        self._sample_rate = sample_rate
        self._window = sample_rate // 100

    def speech_probability(self, frame: np.ndarray) -> float:
        pcm = _to_int16(frame)
        n_windows = pcm.shape[0] // self._window
        if n_windows == 0:
            return 0.0
        voiced = 0
        for i in range(n_windows):
            window = pcm[i * self._window : (i + 1) * self._window]
            if self._vad.is_speech(window.tobytes(), self._sample_rate):
                voiced += 1
        return voiced / n_windows


class GateEventKind(str, Enum):
    START = "start"
    END = "end"


@dataclass(frozen=True)
class GateEvent:
    kind: GateEventKind
    audio: np.ndarray | None = field(default=None, compare=False)

    @classmethod
    def start(cls) -> "GateEvent":
        return cls(GateEventKind.START)

    @classmethod
    def end(cls, audio: np.ndarray) -> "GateEvent":
        return cls(GateEventKind.END, audio)


class SpeechGate:
    """Two-state (idle/listening) gate over a voice detector."""

    def __init__(self, detector: VoiceDetector, config: VADConfig | None = None) -> None:
        self._detector = detector
        self._config = config or VADConfig()
        self._listening = False
        self._pre_pad: deque[np.ndarray] = deque(maxlen=max(self._config.pre_speech_pad_frames, 1))
        self._candidate: list[np.ndarray] = []
        self._utterance: list[np.ndarray] = []
        self._redemption = 0

    @property
    def config(self) -> VADConfig:
        return self._config

    @property
    def listening(self) -> bool:
        return self._listening

    def process_frame(self, frame: np.ndarray) -> GateEvent | None:
        """Feed one frame of mono float32 samples."""
        frame = np.asarray(frame, dtype=np.float32).reshape(-1)
        prob = self._detector.speech_probability(frame)

        if not self._listening:
            return self._process_idle(frame, prob)
        return self._process_listening(frame, prob)

    def flush(self) -> GateEvent | None:
        """End an in-progress utterance (e.g. when the microphone stops)."""
        if not self._listening:
            self._reset()
            return None
        return self._finish()

    def _process_idle(self, frame: np.ndarray, prob: float) -> GateEvent | None:
        cfg = self._config
        if prob >= cfg.positive_speech_threshold:
            self._candidate.append(frame)
            if len(self._candidate) >= cfg.min_speech_frames:
                pad = list(self._pre_pad) if cfg.pre_speech_pad_frames > 0 else []
                self._utterance = pad + self._candidate
                self._candidate = []
                self._pre_pad.clear()
                self._redemption = 0
                self._listening = True
                logger.info(f"[GATE] Speech detected (p={prob:.2f})")
                return GateEvent.start()
            return None

        # Not enough consecutive speech yet; candidate frames become padding.
        for f in self._candidate:
            self._pre_pad.append(f)
        self._candidate = []
        self._pre_pad.append(frame)
        return None

    def _process_listening(self, frame: np.ndarray, prob: float) -> GateEvent | None:
        cfg = self._config
        self._utterance.append(frame)
        if prob >= cfg.positive_speech_threshold:
            self._redemption = 0
        elif prob < cfg.negative_speech_threshold:
            self._redemption += 1
            if self._redemption >= cfg.redemption_frames:
                return self._finish()
        return None

    def _finish(self) -> GateEvent:
        audio = np.concatenate(self._utterance) if self._utterance else np.zeros(0, dtype=np.float32)
        duration = audio.shape[0] / float(self._config.sample_rate)
        logger.info(f"[GATE] Speech ended ({duration:.2f}s)")
        self._reset()
        return GateEvent.end(audio)

    def _reset(self) -> None:
        self._listening = False
        self._utterance = []
        self._candidate = []
        self._pre_pad.clear()
        self._redemption = 0


def _to_int16(frame: np.ndarray) -> np.ndarray:
    if frame.dtype == np.int16:
        return frame
    clipped = np.clip(frame.astype(np.float32), -1.0, 1.0)
    return (clipped * 32767.0).astype(np.int16)
