"""Media generating tools: images through Nebius, speech through Deepgram.

Generated bytes are uploaded to the media host and only the hosted URL is
returned, so tool outputs stay small enough to persist as JSON.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from app.core.config import settings
from app.exceptions.base import ExternalServiceError
from app.exceptions.media import MediaConfigurationError
from app.exceptions.tools import ToolConfigurationError
from app.services.deepgram import DeepgramClient
from app.services.media_host import MediaHostClient
from app.services.nebius import IMAGE_MODEL, NebiusImageClient

from .registry import ToolSpec

logger = logging.getLogger(__name__)

GENERATE_IMAGE = "generateImage"
TEXT_TO_SPEECH = "textToSpeech"


class GenerateImageInput(BaseModel):
    prompt: str = Field(
        ...,
        min_length=1,
        description=(
            "Detailed description of the image to generate. Be specific about style, "
            "composition, colors, subject, mood, and any other relevant details."
        ),
    )
    width: int = Field(1024, ge=256, le=2048, description="Width of the image in pixels")
    height: int = Field(1024, ge=256, le=2048, description="Height of the image in pixels")
    negative_prompt: str | None = Field(None, description="Things to avoid in the image")


class TextToSpeechInput(BaseModel):
    text: str = Field(..., min_length=1, description="The text to convert to speech")


def build_generate_image_tool(
    images: NebiusImageClient | None = None, media_host: MediaHostClient | None = None
) -> ToolSpec:
    images = images or NebiusImageClient()
    media_host = media_host or MediaHostClient()

    async def execute(params: GenerateImageInput) -> dict[str, Any]:
        if not images.api_key:
            raise ToolConfigurationError(GENERATE_IMAGE, "NEBIUS_API_KEY")
        try:
            png = await images.generate(
                params.prompt,
                width=params.width,
                height=params.height,
                negative_prompt=params.negative_prompt or "",
            )
            uploaded = await media_host.upload(
                png,
                folder=f"{settings.media_upload_folder}/images",
                resource_type="image",
                mime_type="image/png",
            )
        except (ExternalServiceError, MediaConfigurationError) as e:
            logger.warning(f"Image generation failed: {e.message}")
            return {"success": False, "error": e.message, "prompt": params.prompt}

        return {
            "success": True,
            "image": uploaded.url,
            "publicId": uploaded.public_id,
            "prompt": params.prompt,
            "width": params.width,
            "height": params.height,
            "model": IMAGE_MODEL,
        }

    return ToolSpec(
        name=GENERATE_IMAGE,
        description=(
            "Generate high-quality images using AI. Use this when the user explicitly asks to "
            "create, generate, or make an image, picture, photo, illustration, or artwork. The "
            "model used is Flux Schnell, which creates fast, high-quality images based on text "
            "prompts."
        ),
        input_model=GenerateImageInput,
        execute=execute,
    )


def build_text_to_speech_tool(
    speech: DeepgramClient | None = None, media_host: MediaHostClient | None = None
) -> ToolSpec:
    speech = speech or DeepgramClient()
    media_host = media_host or MediaHostClient()

    async def execute(params: TextToSpeechInput) -> dict[str, Any]:
        if not speech.api_key:
            return {"success": False, "error": "DEEPGRAM_API_KEY is not configured", "text": params.text}
        try:
            audio = await speech.speak(params.text)
            uploaded = await media_host.upload(
                audio,
                folder=f"{settings.media_upload_folder}/audio",
                resource_type="video",
                mime_type="audio/mpeg",
            )
        except (ExternalServiceError, MediaConfigurationError) as e:
            logger.warning(f"Speech generation failed: {e.message}")
            return {"success": False, "error": e.message, "text": params.text}

        return {
            "success": True,
            "audioUrl": uploaded.url,
            "publicId": uploaded.public_id,
            "text": params.text,
        }

    return ToolSpec(
        name=TEXT_TO_SPEECH,
        description=(
            "Convert text to speech using an AI model. Use this when the user asks to 'say', "
            "'speak', 'read out loud', or convert text to audio."
        ),
        input_model=TextToSpeechInput,
        execute=execute,
    )
