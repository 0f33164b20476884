"""Deepgram speech client: text-to-speech and transcription."""

import logging

import httpx

from app.core.config import settings
from app.exceptions.base import ExternalServiceError

from .http import error_message, json_or_empty

logger = logging.getLogger(__name__)

SPEECH_MODEL = "aura-2-thalia-en"
TRANSCRIPTION_MODEL = "nova-3"


class DeepgramClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key or settings.deepgram_api_key
        self.base_url = (base_url or settings.deepgram_api_url).rstrip("/")
        self.timeout = timeout or settings.tool_http_timeout
        self._transport = transport

    def _headers(self, content_type: str) -> dict[str, str]:
        return {"Authorization": f"Token {self.api_key}", "Content-Type": content_type}

    async def _post(self, path: str, params: dict, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}{path}", params=params, **kwargs)
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Deepgram request failed: {str(e)}", service="deepgram") from e
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Deepgram request failed: {error_message(response)}",
                service="deepgram",
                details={"status": response.status_code},
            )
        return response

    async def speak(self, text: str) -> bytes:
        """Synthesize ``text`` and return MP3 bytes."""
        logger.info(f"🔊 Synthesizing {len(text)} characters of speech")
        headers = self._headers("application/json")
        headers["Accept"] = "audio/mpeg"
        response = await self._post(
            "/speak", {"model": SPEECH_MODEL}, json={"text": text}, headers=headers
        )
        if not response.content:
            raise ExternalServiceError("Deepgram returned no audio", service="deepgram")
        return response.content

    async def transcribe(self, audio: bytes, *, mime_type: str = "audio/webm") -> str:
        response = await self._post(
            "/listen",
            {"model": TRANSCRIPTION_MODEL, "language": "en"},
            content=audio,
            headers=self._headers(mime_type),
        )
        body = json_or_empty(response)
        try:
            transcript = body["results"]["channels"][0]["alternatives"][0]["transcript"]
        except (KeyError, IndexError, TypeError):
            transcript = ""
        transcript = (transcript or "").strip()
        if not transcript:
            logger.info("Deepgram returned empty transcript")
        return transcript
