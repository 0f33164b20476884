"""Default tool set."""

from app.services.deepgram import DeepgramClient
from app.services.media_host import MediaHostClient
from app.services.nebius import NebiusImageClient
from app.services.tavily import TavilyClient

from .media import build_generate_image_tool, build_text_to_speech_tool
from .registry import ToolRegistry
from .web import build_extract_web_url_tool, build_web_search_tool


def build_tool_registry(
    tavily: TavilyClient | None = None,
    images: NebiusImageClient | None = None,
    speech: DeepgramClient | None = None,
    media_host: MediaHostClient | None = None,
) -> ToolRegistry:
    """Registry with webSearch, extractWebUrl, generateImage and textToSpeech."""
    tavily = tavily or TavilyClient()
    media_host = media_host or MediaHostClient()
    return ToolRegistry(
        [
            build_web_search_tool(tavily),
            build_extract_web_url_tool(tavily),
            build_generate_image_tool(images, media_host),
            build_text_to_speech_tool(speech, media_host),
        ]
    )
