"""
Conversation participant state.

Tracks one personality's bounded conversation history, the inputs waiting for
its next generation, and the mutex that keeps its generations serialized.
"""

import asyncio
import logging

from voice_chorus.conversation.schemas import ParticipantConfig, Position

logger = logging.getLogger(__name__)


class Participant:
    """
    Mutable per-personality state.

    The history alternates user and assistant turns. It is bounded both by
    entry count (2 * max_history_length) and by the length of the joined text
    (max_total_chars); trimming always removes the oldest pair and stops once
    only one pair is left.
    """

    def __init__(self, config: ParticipantConfig) -> None:
        """
        Initialize participant state.

        Args:
            config: Static personality configuration.
        """
        self._config = config
        self._history: list[str] = []
        self._pending_inputs: list[str] = []
        self._lock = asyncio.Lock()

    @property
    def config(self) -> ParticipantConfig:
        """Get the static configuration."""
        return self._config

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def display_name(self) -> str:
        return self._config.display_name

    @property
    def voice_id(self) -> str:
        return self._config.voice_id

    @property
    def position(self) -> Position:
        return self._config.position

    @property
    def system_prompt(self) -> str:
        return self._config.system_prompt

    @property
    def history(self) -> list[str]:
        """Get the conversation history (oldest first)."""
        return self._history.copy()

    @property
    def pending_inputs(self) -> list[str]:
        """Get inputs not yet folded into a dispatched prompt."""
        return self._pending_inputs.copy()

    @property
    def lock(self) -> asyncio.Lock:
        """Mutex held for the whole duration of a generation."""
        return self._lock

    @property
    def busy(self) -> bool:
        """True while a generation for this participant is in flight."""
        return self._lock.locked()

    def update_history(self, message: str) -> None:
        """
        Append a turn and enforce both history bounds.

        Args:
            message: User prompt or assistant reply.
        """
        self._history.append(message)

        max_entries = self._config.max_history_length * 2
        while len(self._history) > max_entries and len(self._history) > 2:
            logger.debug(f"[{self.id}] Trimming history from {len(self._history)} entries")
            del self._history[:2]

        total = len("\n".join(self._history))
        while total > self._config.max_total_chars and len(self._history) > 2:
            logger.debug(f"[{self.id}] Trimming history from {total} characters")
            del self._history[:2]
            total = len("\n".join(self._history))

    def full_prompt(self) -> str:
        """Build the generation prompt from the system prompt and history."""
        return self._config.system_prompt + "\n\nCurrent conversation:\n" + "\n".join(self._history)

    def add_pending(self, text: str) -> bool:
        """
        Queue an input for the next generation.

        Returns:
            True if the participant is currently busy.
        """
        self._pending_inputs.append(text)
        return self.busy

    def drain_pending(self) -> str:
        """Remove every pending input and return them joined by single spaces."""
        drained = self._pending_inputs
        self._pending_inputs = []
        return " ".join(drained)

    def __repr__(self) -> str:
        return (
            f"Participant(id={self.id!r}, history={len(self._history)}, "
            f"pending={len(self._pending_inputs)}, busy={self.busy})"
        )
