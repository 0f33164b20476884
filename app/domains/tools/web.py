"""Web research tools backed by Tavily."""

import logging
from typing import Any

from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, ValidationError, field_validator

from app.exceptions.base import ExternalServiceError
from app.exceptions.tools import ToolConfigurationError
from app.services.tavily import TavilyClient

from .registry import ToolSpec

logger = logging.getLogger(__name__)

WEB_SEARCH = "webSearch"
EXTRACT_WEB_URL = "extractWebUrl"

_HTTP_URL = TypeAdapter(HttpUrl)


class WebSearchInput(BaseModel):
    query: str = Field(..., min_length=1, description="Search query for the web")


class ExtractWebUrlInput(BaseModel):
    urls: list[str] = Field(
        ...,
        min_length=1,
        max_length=10,
        description=(
            "Array of URLs to extract. For deep research, include 3-5 most relevant and "
            "authoritative sources. Prioritize primary sources, official websites, and "
            "reputable publications."
        ),
    )

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v: list[str]) -> list[str]:
        # Only checked; the caller's spelling is what gets fetched and echoed.
        for url in v:
            try:
                _HTTP_URL.validate_python(url)
            except ValidationError:
                raise ValueError(f"Invalid URL: {url}") from None
        return v


def build_web_search_tool(client: TavilyClient | None = None) -> ToolSpec:
    client = client or TavilyClient()

    async def execute(params: WebSearchInput) -> dict[str, Any]:
        if not client.api_key:
            raise ToolConfigurationError(WEB_SEARCH, "TAVILY_API_KEY")
        try:
            response = await client.search(params.query)
        except ExternalServiceError as e:
            logger.warning(f"Web search failed: {e.message}")
            return {"success": False, "error": e.message}

        output: dict[str, Any] = {
            "results": [
                {
                    "title": item.get("title") or item.get("url"),
                    "url": item.get("url"),
                    "content": item.get("content"),
                    "favicon": item.get("favicon"),
                }
                for item in response.get("results") or []
            ]
        }
        if response.get("answer"):
            output["answer"] = response["answer"]
        return output

    return ToolSpec(
        name=WEB_SEARCH,
        description="Search the web for current information using Tavily.",
        input_model=WebSearchInput,
        execute=execute,
    )


def build_extract_web_url_tool(client: TavilyClient | None = None) -> ToolSpec:
    client = client or TavilyClient()

    async def execute(params: ExtractWebUrlInput) -> dict[str, Any]:
        urls = list(params.urls)
        if not client.api_key:
            return {
                "success": False,
                "message": "Extract url content failed",
                "error": "TAVILY_API_KEY is not configured",
            }
        try:
            response = await client.extract(urls)
        except ExternalServiceError as e:
            logger.warning(f"URL extraction failed: {e.message}")
            return {"success": False, "message": "Extract url content failed", "error": e.message}

        results = []
        for item in response.get("results") or []:
            raw = item.get("raw_content") or ""
            results.append(
                {
                    "url": item.get("url"),
                    "title": item.get("title") or item.get("url"),
                    "content": raw or item.get("content") or "No content extracted",
                    "favicon": item.get("favicon"),
                    "extractedLength": len(raw),
                }
            )
        return {
            "success": True,
            "urls": urls,
            "results": results,
            "totalSources": len(results),
            "totalContentLength": sum(r["extractedLength"] for r in results),
            "responseTime": response.get("response_time"),
        }

    return ToolSpec(
        name=EXTRACT_WEB_URL,
        description=(
            "Extract comprehensive, detailed content from one or more URLs for deep research, "
            "fact-checking, and validation. Returns full page content including all text, "
            "structure, and context. Use this when webSearch results are insufficient or lack "
            "detail, to verify claims against original sources, or to pull detailed data, "
            "statistics, or technical information. Always extract from multiple authoritative "
            "sources when doing deep research or validation."
        ),
        input_model=ExtractWebUrlInput,
        execute=execute,
    )
