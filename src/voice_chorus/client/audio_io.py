"""Microphone capture + WAV helpers.

Capture runs in the PortAudio callback thread; frames are handed to the
asyncio loop through a queue so the gate and playback stay single-threaded.
"""

from __future__ import annotations

import asyncio
import io
import logging
import wave
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MicrophoneConfig:
    sample_rate: int = 48000
    frame_samples: int = 1024
    channels: int = 1
    device: str | int | None = None
    max_pending_frames: int = 256


def encode_wav(audio: np.ndarray, sample_rate: int) -> bytes:
    """Encode mono float32 [-1, 1] (or int16) samples as 16-bit PCM WAV."""
    audio = np.asarray(audio)
    if audio.ndim == 2:
        audio = audio.mean(axis=1)

    if audio.dtype == np.int16:
        audio_i16 = audio
    else:
        audio_i16 = (np.clip(audio.astype(np.float32), -1.0, 1.0) * 32767.0).astype(np.int16)

    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)  # int16
        wf.setframerate(sample_rate)
        wf.writeframes(audio_i16.tobytes())
    return buf.getvalue()


class MicrophoneStream:
    """Fixed-size mono float32 frames from the input device."""

    def __init__(self, config: MicrophoneConfig | None = None) -> None:
        self._config = config or MicrophoneConfig()
        self._stream = None
        self._queue: asyncio.Queue[np.ndarray] | None = None
        self._dropped = 0

    @property
    def config(self) -> MicrophoneConfig:
        return self._config

    def _require_sounddevice(self):
        try:
            import sounddevice as sd  # type: ignore

            return sd
        except Exception as e:  # pragma: no cover
            raise RuntimeError(
                "sounddevice is required for voice mode. Install Python deps with: pip install -e '.[voice]'. "
                "If you see 'PortAudio library not found', install PortAudio (Debian/Ubuntu: sudo apt-get install portaudio19-dev)."
            ) from e

    async def start(self) -> None:
        sd = self._require_sounddevice()
        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self._config.max_pending_frames)
        queue = self._queue

        def _put(frame: np.ndarray) -> None:
            try:
                queue.put_nowait(frame)
            except asyncio.QueueFull:
                self._dropped += 1
                if self._dropped % 50 == 1:
                    logger.warning(f"Microphone frames dropped: {self._dropped}")

        def callback(indata, frames, time, status):  # noqa: ANN001
            if status:
                logger.debug(f"Input status: {status}")
            frame = indata[:, 0].copy() if indata.ndim == 2 else indata.copy()
            loop.call_soon_threadsafe(_put, frame)

        self._stream = sd.InputStream(
            samplerate=self._config.sample_rate,
            channels=self._config.channels,
            dtype="float32",
            blocksize=self._config.frame_samples,
            device=self._config.device,
            callback=callback,
        )
        await asyncio.to_thread(self._stream.start)
        logger.info(
            f"Microphone started (rate={self._config.sample_rate}, frame={self._config.frame_samples})"
        )

    async def read(self) -> np.ndarray:
        if self._queue is None:
            raise RuntimeError("Microphone stream is not started")
        return await self._queue.get()

    async def stop(self) -> None:
        if self._stream is None:
            return
        stream = self._stream
        self._stream = None
        await asyncio.to_thread(stream.stop)
        await asyncio.to_thread(stream.close)
        logger.info("Microphone stopped")
