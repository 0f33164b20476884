"""Media upload signing and audio transcription endpoints."""

import base64
import binascii
import logging

from fastapi import APIRouter, Body, Depends, Query

from app.core.dependencies import get_current_user, validate_token
from app.exceptions.base import BadRequestError, ExternalServiceError
from app.exceptions.media import MediaConfigurationError, TranscriptionError
from app.schemas.base import ResponseSchema
from app.schemas.media import TranscriptionRequest, TranscriptionResponse
from app.services.deepgram import DeepgramClient
from app.services.media_host import MediaHostClient
from models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["media"],
    dependencies=[Depends(validate_token)],
)


def get_media_host() -> MediaHostClient:
    return MediaHostClient()


def get_speech_client() -> DeepgramClient:
    return DeepgramClient()


@router.get("/media/signature", response_model=ResponseSchema)
async def get_upload_signature(
    folder: str | None = Query(None, max_length=255, description="Target folder"),
    current_user: User = Depends(get_current_user),
    media_host: MediaHostClient = Depends(get_media_host),
):
    """Sign a direct browser upload to the media host."""
    signature = media_host.create_signature(folder=folder)
    logger.debug(f"Signed upload to {signature.folder} for user {current_user.id}")

    return ResponseSchema(
        status="success",
        message="Upload signature created",
        data=signature.model_dump(),
    )


@router.post("/transcribe", response_model=ResponseSchema)
async def transcribe_audio(
    request_data: TranscriptionRequest = Body(...),
    current_user: User = Depends(get_current_user),
    speech: DeepgramClient = Depends(get_speech_client),
):
    """Transcribe base64 audio recorded in the browser."""
    if not request_data.audio_data:
        raise BadRequestError("No audio data provided", error_code="MISSING_AUDIO")
    try:
        audio = base64.b64decode(request_data.audio_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise BadRequestError("Audio data is not valid base64", error_code="INVALID_AUDIO") from e
    if not audio:
        raise BadRequestError("No audio data provided", error_code="MISSING_AUDIO")

    if not speech.api_key:
        raise MediaConfigurationError("DEEPGRAM_API_KEY is not configured")

    try:
        transcript = await speech.transcribe(audio, mime_type=request_data.mime_type)
    except ExternalServiceError as e:
        logger.error(f"Transcription failed for user {current_user.id}: {e.message}")
        raise TranscriptionError(details=e.details) from e

    return ResponseSchema(
        status="success",
        message="Audio transcribed successfully",
        data=TranscriptionResponse(transcript=transcript).model_dump(),
    )
