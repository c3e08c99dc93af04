"""
Application configuration using pydantic-settings.

Loads configuration from environment variables and .env files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Transcription (OpenAI Whisper API or local faster-whisper)
    stt_backend: Literal["openai", "local"] = Field(
        default="openai",
        description="Transcription backend: hosted Whisper API or local faster-whisper",
    )
    openai_api_key: str = Field(default="", description="API key for the transcription service")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the OpenAI-compatible transcription API",
    )
    transcription_model: str = Field(default="whisper-1", description="Hosted transcription model")
    stt_model_size: str = Field(default="small", description="faster-whisper model size for local STT")
    stt_timeout: int = Field(default=60, description="Timeout in seconds for transcription requests")

    # LLM Configuration (Ollama)
    ollama_host: str = Field(
        default="localhost",
        validation_alias=AliasChoices("ollama_host", "remote_desktop_ip"),
        description="Host running the Ollama server (REMOTE_DESKTOP_IP is accepted as well)",
    )
    ollama_port: int = Field(default=11434, description="Ollama server port")
    llm_model_name: str = Field(default="llama3.1:8b", description="Ollama model name")
    llm_timeout: int = Field(default=120, description="Timeout in seconds for LLM requests")

    # Speech synthesis (ElevenLabs)
    elevenlabs_api_key: str = Field(default="", description="ElevenLabs API key")
    elevenlabs_model_id: str = Field(default="eleven_monolingual_v1", description="ElevenLabs model id")
    elevenlabs_voice_id_1: str = Field(default="", description="Voice for the advisor personality")
    elevenlabs_voice_id_2: str = Field(default="", description="Voice for the critic personality")
    elevenlabs_voice_id_3: str = Field(default="", description="Voice for the supporter personality")
    tts_timeout: int = Field(default=60, description="Timeout in seconds for synthesis requests")

    # Conversation
    selection_mode: Literal["round_robin", "single"] = Field(
        default="round_robin",
        description="How the responding personality is chosen",
    )
    active_personality: str = Field(
        default="advisor",
        description="Personality used when selection_mode is 'single'",
    )
    max_history_length: int = Field(default=10, description="Max user/assistant exchanges kept per personality")
    max_total_chars: int = Field(default=2000, description="Max characters of history kept per personality")
    scheduler_auto_drain: bool = Field(
        default=False,
        description="Generate for inputs queued mid-flight as soon as the personality becomes idle",
    )

    # Persisted audio
    audio_dir: str = Field(default="./audio", description="Root of uploads/responses/initial audio")
    response_retention: int = Field(default=5, description="Number of synthesized responses kept on disk")

    # Server
    server_host: str = Field(default="0.0.0.0", description="Bind address for the HTTP server")
    server_port: int = Field(default=3000, description="Port for the HTTP server")
    static_dir: str = Field(default="public", description="Directory served at / when it exists")

    # Client
    server_url: str = Field(default="http://localhost:3000", description="Base URL the voice client talks to")
    client_timeout: int = Field(default=180, description="Timeout in seconds for client HTTP requests")
    vad_profile: Literal["desktop", "constrained"] = Field(
        default="desktop",
        description="Voice activity detector sensitivity preset",
    )
    input_device: str | None = Field(default=None, description="sounddevice input device name or index")
    bootstrap_personality: str = Field(
        default="advisor",
        description="Personality the server's default audio is attributed to on first speech",
    )
    idle_pause_seconds: float = Field(
        default=300.0,
        description="Stop listening after this many seconds without speech (0 disables)",
    )

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    @property
    def ollama_url(self) -> str:
        """Base URL of the Ollama HTTP API."""
        return f"http://{self.ollama_host}:{self.ollama_port}"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
