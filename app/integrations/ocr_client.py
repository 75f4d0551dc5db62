"""
OCR Client - plain text extraction from slip and invoice images
"""
from typing import Optional
import logging

import httpx

from app.core.config import settings
from app.core.exceptions import ExternalServiceFailure
from .base import BaseServiceClient

logger = logging.getLogger(__name__)


class OcrClient(BaseServiceClient):
    """Client for an HTTP OCR service that answers {"text": "..."}"""
    SERVICE_NAME = "ocr"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url or settings.OCR_SERVICE_URL,
            timeout=timeout or settings.OCR_REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def extract(self, image_bytes: bytes, filename: str = "slip.jpg", content_type: str = "image/jpeg") -> str:
        if not image_bytes:
            raise ExternalServiceFailure(self.SERVICE_NAME, "empty image")

        data = await self._post(
            self.base_url,
            files={"file": (filename, image_bytes, content_type)},
        )
        text = data.get("text")
        if not isinstance(text, str):
            raise ExternalServiceFailure(self.SERVICE_NAME, "response has no text field")

        logger.info(f"OCR extracted {len(text)} characters from {filename}")
        return text
