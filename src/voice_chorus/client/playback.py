"""Speech-gated playback.

Replies are only audible while the user is talking. Speech start picks what
to play (a fresh queued reply first, otherwise the paused one, otherwise the
server's default audio on the very first utterance); speech end pauses and
remembers the offset so the same buffer can be resumed later.

All methods run on the asyncio event loop. The output backend reports natural
end-of-playback back onto the loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from voice_chorus.conversation.schemas import AudioUnit, Position
from voice_chorus.errors import PlaybackError

logger = logging.getLogger(__name__)


class PlayingSource(Protocol):
    @property
    def position(self) -> float:
        """Seconds into the buffer (start offset + elapsed)."""
        ...

    def stop(self) -> None: ...


class AudioOutput(Protocol):
    async def decode(self, audio: bytes) -> Any: ...

    def create_panner(self, participant_id: str, position: Position) -> Any: ...

    def play(
        self,
        buffer: Any,
        panner: Any,
        offset: float,
        on_ended: Callable[[], None],
    ) -> PlayingSource: ...


@dataclass
class PlaybackState:
    """Session-scoped playback state; one instance per voice client."""

    queue: deque[AudioUnit] = field(default_factory=deque)
    current: AudioUnit | None = None
    is_speaking: bool = False
    playback_offset: float = 0.0
    panner_by_participant: dict[str, Any] = field(default_factory=dict)
    first_speech: bool = True


class PlaybackController:
    """
    Owns the reply queue and decides what plays on each speech boundary.

    Invariant: a source is only ever running while `state.is_speaking` is
    true. `on_speech_end` stops it synchronously.
    """

    def __init__(
        self,
        output: AudioOutput,
        *,
        state: PlaybackState | None = None,
        fetch_default_audio: Callable[[], Awaitable[bytes | None]] | None = None,
        bootstrap_participant_id: str = "advisor",
        bootstrap_position: Position | None = None,
    ) -> None:
        self._output = output
        self._state = state or PlaybackState()
        self._fetch_default_audio = fetch_default_audio
        self._bootstrap_participant_id = bootstrap_participant_id
        self._bootstrap_position = bootstrap_position or Position(x=0, y=0, z=1)

        self._source: PlayingSource | None = None
        self._decoded_unit: AudioUnit | None = None
        self._decoded_buffer: Any = None
        # Bumped whenever a different play request supersedes earlier ones.
        self._play_token = 0
        self._tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._source is not None

    def enqueue(self, unit: AudioUnit) -> bool:
        """
        Append a reply to the queue. Never starts playback by itself.

        Returns:
            False if the unit was rejected (no spatial position).
        """
        if unit.position is None:
            logger.error(f"[PLAYBACK] Dropping unit from {unit.participant_id}: no position data")
            return False
        self._state.queue.append(unit)
        logger.info(
            f"[PLAYBACK] Queued reply from {unit.participant_id} (queue={len(self._state.queue)})"
        )
        return True

    def on_speech_start(self) -> asyncio.Task | None:
        """
        Handle the start of a user utterance.

        Returns:
            The task decoding/starting the selected audio, or None when
            nothing is selected.
        """
        state = self._state
        state.is_speaking = True
        first = state.first_speech
        state.first_speech = False

        if state.queue:
            unit = state.queue.popleft()
            logger.info(f"[PLAYBACK] Playing new queued audio from {unit.participant_id}")
            state.current = None
            state.playback_offset = 0.0
            return self._start(unit, 0.0)

        if state.current is not None:
            logger.info(
                f"[PLAYBACK] Resuming {state.current.participant_id} at {state.playback_offset:.2f}s"
            )
            return self._start(state.current, state.playback_offset)

        if first and self._fetch_default_audio is not None:
            logger.info("[PLAYBACK] Playing initial response")
            return self._spawn(self._bootstrap(self._play_token))

        logger.debug("[PLAYBACK] Nothing to play")
        return None

    def on_speech_end(self) -> None:
        """Handle the end of a user utterance: pause and keep the offset."""
        self._state.is_speaking = False

        source = self._source
        if source is None:
            return
        self._source = None
        self._state.playback_offset = source.position
        logger.info(f"[PLAYBACK] Saving playback position: {self._state.playback_offset:.2f}s")
        try:
            source.stop()
        except PlaybackError as e:
            logger.error(f"[PLAYBACK] Error stopping audio: {e}")

    async def wait_idle(self) -> None:
        """Wait for pending decode/start tasks (used at shutdown and in tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _start(self, unit: AudioUnit, offset: float) -> asyncio.Task | None:
        self._stop_source()
        if unit.position is None:
            logger.error(f"[PLAYBACK] No position data for personality: {unit.participant_id}")
            if self._state.current is unit:
                self._state.current = None
            return None

        self._play_token += 1
        self._state.current = unit
        self._state.playback_offset = offset
        return self._spawn(self._play(unit, offset, self._play_token))

    async def _play(self, unit: AudioUnit, offset: float, token: int) -> None:
        started = time.perf_counter()
        try:
            panner = self._panner_for(unit)
            buffer = await self._decode(unit)
        except PlaybackError as e:
            self._abandon(unit, token, e)
            return

        if token != self._play_token:
            return  # superseded while decoding
        if not self._state.is_speaking:
            # Speech ended while decoding; stays current for the next start.
            return

        try:
            self._source = self._output.play(
                buffer,
                panner,
                offset,
                on_ended=lambda: self._on_ended(token),
            )
        except PlaybackError as e:
            self._abandon(unit, token, e)
            return
        logger.info(
            f"[PLAYBACK] Audio playback started for {unit.participant_id} at {offset:.2f}s "
            f"({time.perf_counter() - started:.2f}s)"
        )

    async def _bootstrap(self, token: int) -> None:
        assert self._fetch_default_audio is not None
        try:
            audio = await self._fetch_default_audio()
        except PlaybackError as e:
            logger.error(f"[PLAYBACK] Error fetching initial audio: {e}")
            return
        if not audio:
            logger.info("[PLAYBACK] No initial audio available")
            return
        if token != self._play_token or self._state.current is not None:
            return  # something else was selected while fetching

        unit = AudioUnit(
            audio=audio,
            participant_id=self._bootstrap_participant_id,
            position=self._bootstrap_position,
        )
        task = self._start(unit, 0.0)
        if task is not None:
            await task

    def _on_ended(self, token: int) -> None:
        if token != self._play_token or self._source is None:
            return  # stopped or superseded; not a natural end
        finished = self._state.current
        self._source = None
        self._state.current = None
        self._state.playback_offset = 0.0
        logger.info(
            f"[PLAYBACK] Audio playback ended ({finished.participant_id if finished else 'unknown'})"
        )

        if self._state.is_speaking and self._state.queue:
            logger.info("[PLAYBACK] Playing next queued audio")
            self._start(self._state.queue.popleft(), 0.0)

    def _panner_for(self, unit: AudioUnit) -> Any:
        panner = self._state.panner_by_participant.get(unit.participant_id)
        if panner is None:
            assert unit.position is not None
            panner = self._output.create_panner(unit.participant_id, unit.position)
            self._state.panner_by_participant[unit.participant_id] = panner
            p = unit.position
            logger.info(
                f"[PLAYBACK] Created new panner for {unit.participant_id} at position ({p.x}, {p.y}, {p.z})"
            )
        return panner

    async def _decode(self, unit: AudioUnit) -> Any:
        if self._decoded_unit is unit:
            return self._decoded_buffer
        buffer = await self._output.decode(unit.audio)
        self._decoded_unit = unit
        self._decoded_buffer = buffer
        return buffer

    def _abandon(self, unit: AudioUnit, token: int, error: Exception) -> None:
        logger.error(f"[PLAYBACK] Error playing spatial audio for personality {unit.participant_id}: {error}")
        if token == self._play_token and self._state.current is unit:
            self._state.current = None
            self._state.playback_offset = 0.0

    def _stop_source(self) -> None:
        source = self._source
        self._source = None
        if source is not None:
            try:
                source.stop()
            except PlaybackError as e:
                logger.error(f"[PLAYBACK] Error stopping previous audio: {e}")

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
