"""Media host client for generated and uploaded files.

Wraps the Cloudinary SDK. The SDK is synchronous, so uploads and deletions
run in a worker thread. Credentials come from settings and are passed on
every call instead of through the SDK's global config.
"""

import asyncio
import base64
import logging
import time
from typing import Any

import cloudinary.uploader
import cloudinary.utils
from cloudinary.exceptions import Error as CloudinaryError

from app.core.config import settings
from app.exceptions.media import MediaConfigurationError, MediaHostError
from app.schemas.media import UploadedMedia, UploadSignature

logger = logging.getLogger(__name__)


class MediaHostClient:
    """Upload, delete and sign requests against the media host."""

    def __init__(
        self,
        cloud_name: str | None = None,
        api_key: str | None = None,
        api_secret: str | None = None,
        timeout: float | None = None,
    ):
        self.cloud_name = cloud_name or settings.cloudinary_cloud_name
        self.api_key = api_key or settings.cloudinary_api_key
        self.api_secret = api_secret or settings.cloudinary_api_secret
        self.timeout = timeout or settings.tool_http_timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def _ensure_configured(self) -> None:
        if not self.is_configured:
            raise MediaConfigurationError("Cloudinary credentials are not configured")

    def _credentials(self) -> dict[str, Any]:
        return {
            "cloud_name": self.cloud_name,
            "api_key": self.api_key,
            "api_secret": self.api_secret,
            "timeout": self.timeout,
        }

    def create_signature(self, folder: str | None = None, timestamp: int | None = None) -> UploadSignature:
        """Signed parameters for a direct browser upload."""
        self._ensure_configured()
        folder = folder or settings.media_upload_folder
        timestamp = timestamp or int(time.time())
        signature = cloudinary.utils.api_sign_request(
            {"timestamp": timestamp, "folder": folder}, self.api_secret
        )
        return UploadSignature(
            signature=signature,
            timestamp=timestamp,
            folder=folder,
            api_key=self.api_key,
            cloud_name=self.cloud_name,
            upload_url=cloudinary.utils.cloudinary_api_url(
                "upload", cloud_name=self.cloud_name, resource_type="auto"
            ),
        )

    async def upload(
        self,
        data: bytes,
        *,
        folder: str,
        resource_type: str = "image",
        mime_type: str = "application/octet-stream",
    ) -> UploadedMedia:
        """Upload raw bytes and return the hosted reference."""
        self._ensure_configured()
        file = f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"

        logger.info(f"Uploading {len(data)} bytes to media host folder {folder}")
        try:
            body = await asyncio.to_thread(
                cloudinary.uploader.upload,
                file,
                folder=folder,
                resource_type=resource_type,
                **self._credentials(),
            )
        except CloudinaryError as e:
            raise MediaHostError(f"Upload failed: {str(e)}", details={"folder": folder}) from e

        if not body or "secure_url" not in body:
            raise MediaHostError("Upload failed: no URL in response", details={"folder": folder})

        return UploadedMedia(
            url=body["secure_url"],
            public_id=body["public_id"],
            resource_type=body.get("resource_type", resource_type),
            width=body.get("width"),
            height=body.get("height"),
            size=body.get("bytes"),
        )

    async def destroy(self, public_id: str, *, resource_type: str = "image") -> bool:
        """Delete a hosted file. Returns False when the host did not find it."""
        self._ensure_configured()
        try:
            body = await asyncio.to_thread(
                cloudinary.uploader.destroy,
                public_id,
                resource_type=resource_type,
                invalidate=True,
                **self._credentials(),
            )
        except CloudinaryError as e:
            raise MediaHostError(f"Delete failed: {str(e)}", details={"public_id": public_id}) from e

        result = (body or {}).get("result")
        if result != "ok":
            logger.warning(f"Media host did not delete {public_id}: {result}")
        return result == "ok"
