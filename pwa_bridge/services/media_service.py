"""Blob storage for uploaded media (Cloudinary signed uploads)."""

import hashlib
import time
from typing import Optional

import httpx

from pwa_bridge.logging_config import get_logger
from pwa_bridge.services.errors import DeliveryError, ValidationError

logger = get_logger("media_service")


def sign_params(params: dict, api_secret: str) -> str:
    """Cloudinary signature: sha1 of sorted `k=v` pairs joined by & plus the secret."""
    payload = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, ""))
    return hashlib.sha1(f"{payload}{api_secret}".encode("utf-8")).hexdigest()


class MediaStorage:
    UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/auto/upload"

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    async def store(self, content: bytes, filename: str, content_type: Optional[str] = None) -> str:
        """Upload a blob and return its public https URL."""
        if not content:
            raise ValidationError("No file uploaded")
        if not self.configured:
            raise DeliveryError("Cloudinary is not configured", operation="upload")

        params = {"folder": self.folder, "timestamp": str(int(time.time()))}
        data = {**params, "api_key": self.api_key, "signature": sign_params(params, self.api_secret)}
        files = {"file": (filename or "upload", content, content_type or "application/octet-stream")}

        logger.info("Uploading media", extra={"context": {"filename": filename, "bytes": len(content)}})
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.UPLOAD_URL.format(cloud_name=self.cloud_name), data=data, files=files
                )
        except httpx.HTTPError as e:
            logger.error(f"Cloudinary upload error: {e}")
            raise DeliveryError(f"Cloudinary upload failed: {e}", operation="upload") from e

        if response.status_code >= 400:
            logger.error(
                "Cloudinary upload rejected",
                extra={"context": {"status": response.status_code, "body": response.text[:500]}},
            )
            raise DeliveryError(f"Cloudinary upload failed with HTTP {response.status_code}", operation="upload")

        url = response.json().get("secure_url")
        if not url:
            raise DeliveryError("Cloudinary response has no secure_url", operation="upload")
        logger.info("Media uploaded", extra={"context": {"url": url}})
        return url
