"""
External collaborators: transcription, generation and speech synthesis.
"""

from voice_chorus.services.llm_client import (
    DEFAULT_OLLAMA_MODEL,
    LLMClientBase,
    LLMResponse,
    OllamaClient,
)
from voice_chorus.services.stt import (
    OpenAIWhisperSTT,
    STTProvider,
    TranscriptionResult,
    WhisperSTT,
)
from voice_chorus.services.tts import ElevenLabsTTS, TTSConfig, TTSProvider

__all__ = [
    "DEFAULT_OLLAMA_MODEL",
    "LLMClientBase",
    "LLMResponse",
    "OllamaClient",
    "OpenAIWhisperSTT",
    "STTProvider",
    "TranscriptionResult",
    "WhisperSTT",
    "ElevenLabsTTS",
    "TTSConfig",
    "TTSProvider",
]
