"""
Turn scheduling across personalities.

Chooses which personality answers a new input and serializes generations per
personality: while one is in flight, further inputs for that personality are
queued and coalesced into its next prompt.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum

from voice_chorus.conversation.participant import Participant
from voice_chorus.conversation.schemas import Dispatched, ParticipantConfig, Queued
from voice_chorus.errors import ChorusError, UnknownParticipantError

logger = logging.getLogger(__name__)

GenerateFn = Callable[[str], Awaitable[str]]
DeferredReplyFn = Callable[[Dispatched], Awaitable[None]]


class SelectionMode(str, Enum):
    """How the responding personality is chosen."""

    SINGLE = "single"
    ROUND_ROBIN = "round_robin"


class TurnScheduler:
    """
    Per-personality idle/busy state machine.

    A personality is busy exactly while its lock is held. `submit` checks and
    acquires the lock without yielding to the event loop, so the check-then-
    dispatch step is atomic with respect to other submissions.
    """

    def __init__(
        self,
        participants: Sequence[Participant | ParticipantConfig],
        generate: GenerateFn,
        *,
        mode: SelectionMode | str = SelectionMode.ROUND_ROBIN,
        active_id: str | None = None,
        auto_drain: bool = False,
        on_deferred_reply: DeferredReplyFn | None = None,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            participants: Personalities in round-robin order.
            generate: Coroutine turning a full prompt into reply text.
            mode: Single fixed personality or round-robin.
            active_id: Personality used in single mode (defaults to the first).
            auto_drain: Keep generating while inputs queued mid-flight remain.
            on_deferred_reply: Receives replies produced by auto-drain, which
                have no waiting caller.
        """
        if not participants:
            raise ValueError("At least one participant is required")

        self._participants = [p if isinstance(p, Participant) else Participant(p) for p in participants]
        self._by_id = {p.id: p for p in self._participants}
        if len(self._by_id) != len(self._participants):
            raise ValueError("Participant ids must be unique")

        self._generate = generate
        self._mode = SelectionMode(mode)
        self._active_id = active_id or self._participants[0].id
        if self._active_id not in self._by_id:
            raise UnknownParticipantError(self._active_id)

        self._auto_drain = auto_drain
        self._on_deferred_reply = on_deferred_reply
        self._cursor = 0
        self._background: set[asyncio.Task] = set()

    @property
    def mode(self) -> SelectionMode:
        return self._mode

    @property
    def on_deferred_reply(self) -> DeferredReplyFn | None:
        return self._on_deferred_reply

    @on_deferred_reply.setter
    def on_deferred_reply(self, fn: DeferredReplyFn | None) -> None:
        self._on_deferred_reply = fn

    @property
    def participants(self) -> list[Participant]:
        """Get participants in round-robin order."""
        return self._participants.copy()

    def get(self, participant_id: str | None) -> Participant:
        """
        Look up a participant.

        Raises:
            UnknownParticipantError: If no participant has this id.
        """
        participant = self._by_id.get(participant_id or "")
        if participant is None:
            raise UnknownParticipantError(participant_id)
        return participant

    def peek(self) -> Participant:
        """Return the participant the next submission would target."""
        if self._mode == SelectionMode.SINGLE:
            return self._by_id[self._active_id]
        return self._participants[self._cursor]

    async def submit(self, text: str) -> Dispatched | Queued:
        """
        Route one transcribed input to the next personality.

        The input is always appended to the target's pending inputs. A busy
        target keeps it queued; an idle target drains everything pending into
        one prompt and generates a reply.

        Args:
            text: Transcribed user speech.

        Returns:
            Dispatched with the reply, or Queued if the target was busy.

        Raises:
            CollaboratorError: If generation failed. The participant is idle again.
        """
        participant = self.peek()

        if participant.add_pending(text):
            logger.info(
                f"[SCHEDULER] {participant.id} busy, queued input "
                f"(pending={len(participant.pending_inputs)})"
            )
            return Queued(participant_id=participant.id)

        if self._mode == SelectionMode.ROUND_ROBIN:
            self._cursor = (self._cursor + 1) % len(self._participants)

        return await self._dispatch(participant)

    async def _dispatch(self, participant: Participant) -> Dispatched:
        # The lock is free (checked above without an await in between), so
        # acquire() returns without suspending.
        await participant.lock.acquire()
        handed_off = False
        try:
            result = await self._generate_turn(participant)
            if self._auto_drain and participant.pending_inputs:
                self._spawn(self._drain(participant))
                handed_off = True
            return result
        finally:
            if not handed_off:
                participant.lock.release()

    async def _drain(self, participant: Participant) -> None:
        """Generate for inputs queued mid-flight; runs while still holding the lock."""
        try:
            while participant.pending_inputs:
                try:
                    result = await self._generate_turn(participant)
                except ChorusError as e:
                    logger.error(f"[SCHEDULER] deferred generation for {participant.id} failed: {e}")
                    continue
                if self._on_deferred_reply is None:
                    logger.info(f"[SCHEDULER] deferred reply for {participant.id} has no consumer")
                    continue
                try:
                    await self._on_deferred_reply(result)
                except ChorusError as e:
                    logger.error(f"[SCHEDULER] deferred reply delivery for {participant.id} failed: {e}")
        finally:
            participant.lock.release()

    async def _generate_turn(self, participant: Participant) -> Dispatched:
        combined = participant.drain_pending()
        participant.update_history(combined)

        start = time.perf_counter()
        logger.info(f"[SCHEDULER] Generating for {participant.id}: {combined!r}")
        reply = await self._generate(participant.full_prompt())
        participant.update_history(reply)
        logger.info(f"[SCHEDULER] {participant.id} replied ({time.perf_counter() - start:.2f}s): {reply!r}")

        return Dispatched(
            reply=reply,
            participant_id=participant.id,
            position=participant.position,
            prompt=combined,
        )

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_idle(self) -> None:
        """Wait for background drains to finish (used at shutdown and in tests)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
