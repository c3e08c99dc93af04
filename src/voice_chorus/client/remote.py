"""HTTP pipeline backend used by the voice client."""

from __future__ import annotations

import base64
import logging

import httpx
from pydantic import ValidationError

from voice_chorus.conversation.schemas import Dispatched, Position, Queued
from voice_chorus.errors import CollaboratorError, InputError, PlaybackError

logger = logging.getLogger(__name__)


class RemoteBackend:
    """
    Talks to the voice-chorus server.

    Implements the pipeline backend protocol (transcribe, submit, synthesize)
    plus `fetch_last_audio` for the first-speech bootstrap.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        timeout: float = 180.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

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

    async def _post(self, path: str, payload: dict, stage: str) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.post(path, json=payload)
        except httpx.HTTPError as e:
            raise CollaboratorError(f"{path} request failed: {e}", stage=stage) from e

        if response.status_code >= 400:
            try:
                message = response.json().get("error") or response.text
            except ValueError:
                message = response.text
            if response.status_code < 500:
                raise InputError(f"{path} rejected request: {message}")
            raise CollaboratorError(
                f"{path} failed with {response.status_code}: {message}",
                stage=stage,
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response, stage: str) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise CollaboratorError(
                f"Non-JSON reply from {response.request.url.path}: {response.text[:200]}",
                stage=stage,
            ) from e
        if not isinstance(data, dict):
            raise CollaboratorError(f"Unexpected reply from {response.request.url.path}: {data!r}", stage=stage)
        return data

    async def transcribe(self, audio: bytes) -> str:
        payload = {"audio": base64.b64encode(audio).decode("ascii")}
        response = await self._post("/transcribe", payload, stage="transcribe")
        return str(self._json(response, "transcribe").get("transcription") or "")

    async def submit(self, text: str) -> Dispatched | Queued:
        response = await self._post("/query-llama", {"transcription": text}, stage="generate")
        data = self._json(response, "generate")
        if data.get("queued"):
            return Queued(participant_id=str(data.get("personalityId", "")))

        try:
            return Dispatched(
                reply=str(data.get("response", "")),
                participant_id=str(data["personalityId"]),
                position=Position(**data["position"]),
                prompt=text,
            )
        except (KeyError, TypeError, ValidationError) as e:
            raise CollaboratorError(f"Malformed reply from /query-llama: {e}", stage="generate") from e

    async def synthesize(self, text: str, participant_id: str) -> bytes:
        response = await self._post(
            "/process-text",
            {"text": text, "personalityId": participant_id},
            stage="synthesize",
        )
        return response.content

    async def fetch_last_audio(self) -> bytes | None:
        """Get the server's most recent reply audio; None when there is none."""
        client = await self._get_client()
        try:
            response = await client.get("/last-audio")
        except httpx.HTTPError as e:
            raise PlaybackError(f"Could not fetch last audio: {e}") from e
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise PlaybackError(f"/last-audio failed with {response.status_code}")
        return response.content
