"""Media upload and speech schemas."""

from pydantic import AliasChoices, Field, field_validator

from .base import BaseSchema


class UploadSignature(BaseSchema):
    """Parameters a browser needs to upload straight to the media host."""

    signature: str
    timestamp: int
    folder: str
    api_key: str
    cloud_name: str
    upload_url: str


class UploadedMedia(BaseSchema):
    """A file stored on the media host."""

    url: str
    public_id: str
    resource_type: str
    width: int | None = None
    height: int | None = None
    size: int | None = None


class TranscriptionRequest(BaseSchema):
    """Base64 encoded audio recorded in the browser."""

    audio_data: str | None = Field(
        None, validation_alias=AliasChoices("audio_data", "audioData")
    )
    mime_type: str = Field(
        "audio/webm", validation_alias=AliasChoices("mime_type", "mimeType")
    )

    @field_validator("audio_data")
    @classmethod
    def strip_data_url(cls, v: str | None) -> str | None:
        if v and v.startswith("data:") and "," in v:
            return v.split(",", 1)[1]
        return v


class TranscriptionResponse(BaseSchema):
    transcript: str


__all__ = ["UploadSignature", "UploadedMedia", "TranscriptionRequest", "TranscriptionResponse"]
