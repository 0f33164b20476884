"""Nebius text-to-image client."""

import base64
import binascii
import logging

import httpx

from app.core.config import settings
from app.exceptions.base import ExternalServiceError

from .http import error_message, json_or_empty

logger = logging.getLogger(__name__)

IMAGE_MODEL = "black-forest-labs/flux-schnell"


class NebiusImageClient:
    """Generates PNG images and returns the raw bytes."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key or settings.nebius_api_key
        self.base_url = (base_url or settings.nebius_api_url).rstrip("/")
        self.timeout = timeout or settings.tool_http_timeout
        self._transport = transport

    async def generate(
        self, prompt: str, *, width: int, height: int, negative_prompt: str = ""
    ) -> bytes:
        payload = {
            "model": IMAGE_MODEL,
            "response_format": "b64_json",
            "response_extension": "png",
            "width": width,
            "height": height,
            "num_inference_steps": 4,
            "negative_prompt": negative_prompt or "",
            "seed": -1,
            "loras": None,
            "prompt": prompt,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        logger.info(f"🎨 Generating {width}x{height} image")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/images/generations", json=payload, headers=headers
                )
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Image API error: {str(e)}", service="nebius") from e

        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Image API error: {error_message(response)}",
                service="nebius",
                details={"status": response.status_code},
            )

        data = json_or_empty(response).get("data") or []
        encoded = data[0].get("b64_json") if data and isinstance(data[0], dict) else None
        if not encoded:
            raise ExternalServiceError("No image generated in response", service="nebius")
        try:
            return base64.b64decode(encoded)
        except (binascii.Error, ValueError) as e:
            raise ExternalServiceError("Image API returned invalid base64 data", service="nebius") from e
