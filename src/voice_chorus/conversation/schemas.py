"""
Pydantic schemas for the conversation module.

Defines spatial positions, personality configuration, scheduler outcomes and
the playable audio unit handed from the response pipeline to playback.
"""

import time

from pydantic import BaseModel, ConfigDict, Field


class Position(BaseModel):
    """A point in the listener's 3-D audio space."""

    model_config = ConfigDict(frozen=True)

    x: float = Field(..., description="Left (-) / right (+)")
    y: float = Field(..., description="Down (-) / up (+)")
    z: float = Field(..., description="Behind (-) / in front (+)")

    def as_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}


class ParticipantConfig(BaseModel):
    """Static configuration of one personality, loaded once at startup."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable unique identifier")
    display_name: str = Field(..., description="Human readable name")
    voice_id: str = Field(default="", description="External synthesis voice reference")
    position: Position = Field(..., description="Spatial position of this voice")
    system_prompt: str = Field(..., description="Fixed instruction text")
    max_history_length: int = Field(default=10, ge=1, description="Max user/assistant exchanges kept")
    max_total_chars: int = Field(default=2000, ge=1, description="Max characters of joined history")


class Dispatched(BaseModel):
    """A generation ran for this submission and produced a reply."""

    reply: str = Field(..., description="Generated reply text")
    participant_id: str = Field(..., description="Personality that replied")
    position: Position = Field(..., description="Position of the replying personality")
    prompt: str = Field(default="", description="Combined user input that was dispatched")


class Queued(BaseModel):
    """The submission was accepted but its personality is mid-generation."""

    participant_id: str = Field(..., description="Personality the input was queued on")


class AudioUnit(BaseModel):
    """
    One synthesized reply ready for playback.

    The position is copied from the personality when the unit is created and
    never follows later configuration changes. A unit without a position is
    rejected by playback.
    """

    model_config = ConfigDict(frozen=True)

    audio: bytes = Field(..., description="Encoded audio payload")
    participant_id: str = Field(..., description="Owning personality")
    position: Position | None = Field(default=None, description="Spatial position at creation time")
    created_at: float = Field(default_factory=time.monotonic, description="Monotonic creation time")
