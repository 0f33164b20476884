"""Media host and speech service exceptions."""

from typing import Any

from .base import BaseAppException, ExternalServiceError


class MediaHostError(ExternalServiceError):
    """Raised when the media host rejects an upload or deletion."""

    def __init__(self, message: str = "Media host request failed", details: dict[str, Any] | None = None):
        super().__init__(message=message, service="cloudinary", details=details)


class MediaConfigurationError(BaseAppException):
    """Raised when media host or speech credentials are missing."""

    def __init__(self, message: str = "Media host is not configured"):
        super().__init__(message=message, status_code=500, error_code="MEDIA_CONFIGURATION_ERROR")


class TranscriptionError(BaseAppException):
    """Raised when speech transcription fails upstream."""

    def __init__(self, message: str = "Error while transcribing audio", details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=500, error_code="TRANSCRIPTION_ERROR", details=details)
