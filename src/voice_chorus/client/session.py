"""Voice loop (glue layer).

This module orchestrates:
mic -> speech gate -> playback (start/end) + response pipeline -> playback queue

It intentionally does NOT re-implement playback or scheduling logic.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import numpy as np

from voice_chorus.client.audio_io import encode_wav
from voice_chorus.client.playback import PlaybackController
from voice_chorus.client.speech_gate import GateEvent, GateEventKind, SpeechGate
from voice_chorus.conversation.pipeline import ResponsePipeline
from voice_chorus.conversation.schemas import AudioUnit, Queued
from voice_chorus.errors import PipelineError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoiceLoopConfig:
    sample_rate: int = 48000
    # Utterances shorter than this are not sent for transcription.
    min_utterance_s: float = 0.2
    # Capture stops after this long without speech or in-flight replies; 0 disables.
    idle_pause_s: float = 300.0


class FrameSource(Protocol):
    async def start(self) -> None: ...

    async def read(self) -> np.ndarray: ...

    async def stop(self) -> None: ...


class VoiceLoop:
    def __init__(
        self,
        *,
        gate: SpeechGate,
        playback: PlaybackController,
        pipeline: ResponsePipeline,
        config: VoiceLoopConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gate = gate
        self._playback = playback
        self._pipeline = pipeline
        self._config = config or VoiceLoopConfig(sample_rate=gate.config.sample_rate)
        self._responses: set[asyncio.Task] = set()
        self._clock = clock

    @property
    def config(self) -> VoiceLoopConfig:
        return self._config

    @property
    def pending_responses(self) -> int:
        return len(self._responses)

    def handle_event(self, event: GateEvent) -> None:
        """Dispatch one gate event. Never blocks on network or decode work."""
        if event.kind == GateEventKind.START:
            self._playback.on_speech_start()
            return

        self._playback.on_speech_end()
        audio = event.audio if event.audio is not None else np.zeros(0, dtype=np.float32)
        duration = audio.shape[0] / float(self._config.sample_rate)
        if duration < self._config.min_utterance_s:
            logger.info(f"[VOICE] Ignoring short utterance ({duration:.2f}s)")
            return

        task = asyncio.ensure_future(self.respond(audio))
        self._responses.add(task)
        task.add_done_callback(self._responses.discard)

    def process_frame(self, frame: np.ndarray) -> None:
        event = self._gate.process_frame(frame)
        if event is not None:
            self.handle_event(event)

    async def respond(self, audio: np.ndarray) -> AudioUnit | Queued | None:
        """Run one utterance through the pipeline and queue any reply for playback."""
        start = time.perf_counter()
        wav = encode_wav(audio, self._config.sample_rate)
        try:
            outcome = await self._pipeline.handle(wav)
        except PipelineError as e:
            logger.error(f"[VOICE] Error processing speech ({e.stage}): {e}")
            return None

        if isinstance(outcome, AudioUnit):
            self._playback.enqueue(outcome)
        logger.info(f"[VOICE] Speech handling complete ({time.perf_counter() - start:.2f}s)")
        return outcome

    async def run(self, frames: FrameSource) -> None:
        """Read frames until cancelled or paused for inactivity."""
        idle_pause = self._config.idle_pause_s
        await frames.start()
        logger.info("[VOICE] Ready! Start speaking...")
        last_activity = self._clock()
        try:
            while True:
                self.process_frame(await frames.read())
                now = self._clock()
                if self._gate.listening or self._responses:
                    last_activity = now
                elif idle_pause > 0 and now - last_activity >= idle_pause:
                    logger.info(f"[VOICE] Stopped due to inactivity ({idle_pause:.0f}s without speech)")
                    return
        finally:
            event = self._gate.flush()
            if event is not None:
                self._playback.on_speech_end()
            await frames.stop()

    async def wait_idle(self) -> None:
        """Wait for in-flight pipeline calls and playback tasks."""
        while self._responses:
            await asyncio.gather(*list(self._responses), return_exceptions=True)
        await self._playback.wait_idle()
