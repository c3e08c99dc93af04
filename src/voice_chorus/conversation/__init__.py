"""
Conversation module: personalities, turn scheduling and the response pipeline.
"""

from voice_chorus.conversation.participant import Participant
from voice_chorus.conversation.pipeline import PipelineBackend, ResponsePipeline
from voice_chorus.conversation.scheduler import SelectionMode, TurnScheduler
from voice_chorus.conversation.schemas import (
    AudioUnit,
    Dispatched,
    ParticipantConfig,
    Position,
    Queued,
)

__all__ = [
    "AudioUnit",
    "Dispatched",
    "Participant",
    "ParticipantConfig",
    "PipelineBackend",
    "Position",
    "Queued",
    "ResponsePipeline",
    "SelectionMode",
    "TurnScheduler",
]
