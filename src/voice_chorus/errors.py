"""
Error taxonomy shared by the server and the voice client.

InputError: a required field is missing or empty; nothing was mutated.
CollaboratorError: an external service (transcription, generation, synthesis)
failed; the request is terminal and nothing partial is produced.
PlaybackError: a unit could not be decoded or routed on the client.
"""


class ChorusError(Exception):
    """Base class for all voice-chorus errors."""


class InputError(ChorusError):
    """A required request field is missing or empty."""


class UnknownParticipantError(InputError):
    """A request referenced a personality that is not configured."""

    def __init__(self, participant_id: str | None) -> None:
        super().__init__(f"Unknown personality: {participant_id!r}")
        self.participant_id = participant_id


class CollaboratorError(ChorusError):
    """Exception raised when an external service call fails."""

    def __init__(self, message: str, stage: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.status_code = status_code


class PipelineError(ChorusError):
    """A response pipeline stage failed; no audio unit was produced."""

    def __init__(self, message: str, stage: str) -> None:
        super().__init__(message)
        self.stage = stage


class PlaybackError(ChorusError):
    """Audio could not be decoded or routed to an output."""
