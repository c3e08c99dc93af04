"""
LLM client abstraction.

Provides a unified interface for text generation against an Ollama server
reached over its HTTP API.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import BaseModel, Field

from voice_chorus.errors import CollaboratorError
from voice_chorus.timing import log_elapsed

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_MODEL = "llama3.1:8b"


class LLMResponse(BaseModel):
    """Response from an LLM."""

    content: str = Field(..., description="Generated text content")
    finish_reason: str = Field(default="stop", description="Reason for completion")
    usage: dict[str, int] = Field(
        default_factory=dict,
        description="Token usage information",
    )
    model: str = Field(default="", description="Model used for generation")
    raw_response: dict[str, Any] = Field(
        default_factory=dict,
        description="Raw response from the API",
    )


class LLMClientBase(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a text completion.

        Args:
            prompt: Input prompt.
            temperature: Sampling temperature (model default when None).
            **kwargs: Additional model-specific options.

        Returns:
            Generated response.

        Raises:
            CollaboratorError: If the model could not be reached or failed.
        """
        ...

    async def generate(self, prompt: str) -> str:
        """Generate reply text for a full prompt."""
        response = await self.complete(prompt)
        return response.content.strip()

    async def close(self) -> None:
        """Release any connections held by the client."""


class OllamaClient(LLMClientBase):
    """
    Ollama-based LLM client.

    Calls `POST /api/generate` with streaming disabled. Failures are not
    retried; the caller treats them as terminal for the request.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str | None = None,
        timeout: int = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the Ollama LLM client.

        Args:
            base_url: Ollama server URL.
            model: Model name (defaults to llama3.1:8b).
            timeout: Timeout in seconds for generation requests.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._base_url = base_url.rstrip("/")
        self._model = model or DEFAULT_OLLAMA_MODEL
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        logger.info(f"Initialized Ollama LLM client with model: {self._model} at {self._base_url}")

    @property
    def model(self) -> str:
        """Get the model name."""
        return self._model

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def complete(
        self,
        prompt: str,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        payload: dict[str, Any] = {"model": self._model, "prompt": prompt, "stream": False}
        options = {k: v for k, v in kwargs.items() if v is not None}
        if temperature is not None:
            options["temperature"] = temperature
        if options:
            payload["options"] = options

        client = await self._get_client()
        start = time.perf_counter()
        logger.debug(f"Querying Ollama model={self._model} prompt_chars={len(prompt)}")
        try:
            response = await client.post("/api/generate", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama API error: {e.response.status_code} {e.response.text[:200]}")
            raise CollaboratorError(
                f"Ollama returned {e.response.status_code}",
                stage="generate",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Ollama request failed: {e}")
            raise CollaboratorError(f"Ollama request failed: {e}", stage="generate") from e

        log_elapsed("Llama query completed", start, logger)
        usage = {
            k: int(data[k])
            for k in ("prompt_eval_count", "eval_count")
            if isinstance(data.get(k), int)
        }
        return LLMResponse(
            content=str(data.get("response", "")),
            finish_reason=str(data.get("done_reason") or "stop"),
            usage=usage,
            model=str(data.get("model") or self._model),
            raw_response=data,
        )
