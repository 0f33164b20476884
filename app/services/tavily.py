"""Tavily search and extraction client."""

import logging
from typing import Any

import httpx

from app.core.config import settings
from app.exceptions.base import ExternalServiceError

from .http import error_message, json_or_empty

logger = logging.getLogger(__name__)


class TavilyClient:
    """Thin async wrapper over the Tavily REST API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key or settings.tavily_api_key
        self.base_url = (base_url or settings.tavily_api_url).rstrip("/")
        self.timeout = timeout or settings.tool_http_timeout
        self._transport = transport

    async def _post(self, path: str, payload: dict[str, Any]) -> dict:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}{path}", json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Tavily request failed: {str(e)}", service="tavily") from e
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Tavily request failed: {error_message(response)}",
                service="tavily",
                details={"status": response.status_code},
            )
        return json_or_empty(response)

    async def search(self, query: str, *, max_results: int = 5) -> dict:
        logger.info(f"🔎 Tavily search: {query!r}")
        return await self._post(
            "/search",
            {
                "query": query,
                "include_answer": True,
                "include_favicon": True,
                "include_images": False,
                "max_results": max_results,
            },
        )

    async def extract(self, urls: list[str]) -> dict:
        logger.info(f"Tavily extract from {len(urls)} URL(s)")
        return await self._post(
            "/extract",
            {
                "urls": urls,
                "include_favicon": True,
                "include_images": False,
                "format": "markdown",
                "extract_depth": "advanced",
            },
        )
