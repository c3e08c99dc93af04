"""Spatial audio output (LLM-agnostic).

This module is "dumb hardware I/O": it decodes reply audio, renders it
through a per-personality stereo panner and plays it on the default output
device. It knows nothing about queues or speech.
"""

from __future__ import annotations

import asyncio
import io
import logging
import math
import threading
from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from voice_chorus.conversation.schemas import Position
from voice_chorus.errors import PlaybackError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioOutputConfig:
    device: str | int | None = None
    blocksize: int = 1024
    ref_distance: float = 1.0
    rolloff_factor: float = 1.0


@dataclass(frozen=True)
class DecodedAudio:
    samples: np.ndarray  # float32 [frames, channels]
    sample_rate: int

    @property
    def duration(self) -> float:
        return self.samples.shape[0] / float(self.sample_rate)


class StereoPanner:
    """
    Fixed stereo placement for one personality.

    Equal-power panning on the azimuth of the position (x to the right, z in
    front) with inverse-distance attenuation. The position is fixed at
    creation.
    """

    def __init__(
        self,
        participant_id: str,
        position: Position,
        *,
        ref_distance: float = 1.0,
        rolloff_factor: float = 1.0,
    ) -> None:
        self._participant_id = participant_id
        self._position = position

        azimuth = math.atan2(position.x, position.z)
        pan = max(-1.0, min(1.0, math.sin(azimuth)))
        angle = (pan + 1.0) * math.pi / 4.0

        distance = math.sqrt(position.x**2 + position.y**2 + position.z**2)
        distance = max(distance, ref_distance)
        gain = ref_distance / (ref_distance + rolloff_factor * (distance - ref_distance))

        self._gains = np.array([math.cos(angle) * gain, math.sin(angle) * gain], dtype=np.float32)

    @property
    def participant_id(self) -> str:
        return self._participant_id

    @property
    def position(self) -> Position:
        return self._position

    @property
    def gains(self) -> tuple[float, float]:
        return float(self._gains[0]), float(self._gains[1])

    def render(self, samples: np.ndarray) -> np.ndarray:
        """Downmix to mono and place in the stereo field."""
        mono = samples.mean(axis=1) if samples.ndim == 2 else samples
        return (mono[:, None] * self._gains[None, :]).astype(np.float32, copy=False)


class OutputSource:
    """A single playback of a decoded buffer, started at an offset."""

    def __init__(self, stream, sample_rate: int, start_frame: int) -> None:
        self._stream = stream
        self._sample_rate = sample_rate
        self._start_frame = start_frame
        self._frames_played = 0
        self._lock = threading.Lock()
        self._stopped = False

    @property
    def position(self) -> float:
        with self._lock:
            return (self._start_frame + self._frames_played) / float(self._sample_rate)

    @property
    def stopped(self) -> bool:
        return self._stopped

    def _advance(self, frames: int) -> None:
        with self._lock:
            self._frames_played += frames

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        try:
            self._stream.abort()
            self._stream.close()
        except Exception as e:
            raise PlaybackError(f"Could not stop output stream: {e}") from e


class SpatialAudioOutput:
    def __init__(self, config: AudioOutputConfig | None = None) -> None:
        self._config = config or AudioOutputConfig()

    @property
    def config(self) -> AudioOutputConfig:
        return self._config

    def _require_sounddevice(self):
        try:
            import sounddevice as sd  # type: ignore

            return sd
        except Exception as e:  # pragma: no cover
            raise PlaybackError(
                "sounddevice is required for playback. Install Python deps with: pip install -e '.[voice]'. "
                "If you see 'PortAudio library not found', install PortAudio (Debian/Ubuntu: sudo apt-get install portaudio19-dev)."
            ) from e

    def _require_soundfile(self):
        try:
            import soundfile as sf  # type: ignore

            return sf
        except Exception as e:  # pragma: no cover
            raise PlaybackError(
                "soundfile is required to decode replies. Install with: pip install -e '.[voice]'"
            ) from e

    async def decode(self, audio: bytes) -> DecodedAudio:
        """Decode MP3/WAV/OGG bytes to float32 frames."""
        sf = self._require_soundfile()

        def _run() -> DecodedAudio:
            samples, sr = sf.read(io.BytesIO(audio), dtype="float32", always_2d=True)
            return DecodedAudio(samples=samples, sample_rate=int(sr))

        try:
            return await asyncio.to_thread(_run)
        except Exception as e:
            raise PlaybackError(f"Could not decode audio ({len(audio)} bytes): {e}") from e

    def create_panner(self, participant_id: str, position: Position) -> StereoPanner:
        return StereoPanner(
            participant_id,
            position,
            ref_distance=self._config.ref_distance,
            rolloff_factor=self._config.rolloff_factor,
        )

    def play(
        self,
        buffer: DecodedAudio,
        panner: StereoPanner,
        offset: float,
        on_ended: Callable[[], None],
    ) -> OutputSource:
        """
        Start playing `buffer` from `offset` seconds.

        `on_ended` is scheduled on the calling event loop when the buffer runs
        out; it is not called after `stop()`.
        """
        sd = self._require_sounddevice()
        loop = asyncio.get_running_loop()

        rendered = panner.render(buffer.samples)
        start_frame = min(max(int(offset * buffer.sample_rate), 0), rendered.shape[0])
        source: OutputSource | None = None
        cursor = start_frame

        def callback(outdata, frames, time, status):  # noqa: ANN001
            nonlocal cursor
            if status:
                logger.debug(f"Output status: {status}")
            chunk = rendered[cursor : cursor + frames]
            n = chunk.shape[0]
            outdata[:n] = chunk
            if n < frames:
                outdata[n:] = 0
            cursor += n
            source._advance(n)
            if n < frames:
                raise sd.CallbackStop

        def finished() -> None:
            if source is not None and not source.stopped:
                loop.call_soon_threadsafe(on_ended)

        try:
            stream = sd.OutputStream(
                samplerate=buffer.sample_rate,
                channels=2,
                dtype="float32",
                blocksize=self._config.blocksize,
                device=self._config.device,
                callback=callback,
                finished_callback=finished,
            )
            source = OutputSource(stream, buffer.sample_rate, start_frame)
            stream.start()
        except Exception as e:
            raise PlaybackError(f"Could not open output for {panner.participant_id}: {e}") from e

        return source
