"""Voice client.

mic -> speech gate -> playback controller + response pipeline

Playback is speech-gated: replies are heard only while the user is talking.
"""

from voice_chorus.client.audio_out import SpatialAudioOutput, StereoPanner
from voice_chorus.client.playback import AudioOutput, PlaybackController, PlaybackState
from voice_chorus.client.remote import RemoteBackend
from voice_chorus.client.session import VoiceLoop, VoiceLoopConfig
from voice_chorus.client.speech_gate import (
    GateEvent,
    GateEventKind,
    SpeechGate,
    VADConfig,
    WebRTCVoiceDetector,
)

__all__ = [
    "AudioOutput",
    "GateEvent",
    "GateEventKind",
    "PlaybackController",
    "PlaybackState",
    "RemoteBackend",
    "SpatialAudioOutput",
    "SpeechGate",
    "StereoPanner",
    "VADConfig",
    "VoiceLoop",
    "VoiceLoopConfig",
    "WebRTCVoiceDetector",
]

