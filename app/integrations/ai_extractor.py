"""
AI Extraction Client - structured line items from a slip image via a
chat-completions vision model
"""
from typing import Optional, Dict, Any, List, Union
import json
import logging
import re

import httpx

from app.core.config import settings
from app.core.exceptions import ExternalServiceFailure, ValidationError
from .base import BaseServiceClient

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = (
    "You read delivery slips and supplier invoices for a medical clinic. "
    "Return only a JSON object with keys: supplier (string or null), "
    "date (YYYY-MM-DD or null), total (number or null) and items, a list of "
    "objects with description, quantity (integer), unit_price (number or null), "
    "batch_number (string or null) and expiry_date (YYYY-MM-DD or null). "
    "Do not invent values that are not printed on the document."
)


def strip_json_fence(content: str) -> str:
    content = content.strip()
    match = re.match(r"^```(?:json)?\s*(.*?)\s*```$", content, re.DOTALL)
    return match.group(1) if match else content


class AiExtractionClient(BaseServiceClient):
    SERVICE_NAME = "ai-extraction"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url or settings.OPENAI_BASE_URL,
            timeout=timeout or settings.AI_REQUEST_TIMEOUT_SECONDS,
            api_key=api_key if api_key is not None else settings.OPENAI_API_KEY,
            transport=transport,
        )
        self.model = model or settings.OPENAI_MODEL

    async def extract_structured(self, image_data_urls: Union[str, List[str]]) -> Dict[str, Any]:
        """
        Returns {supplier, date, total, items[]} as the model produced it.
        Several data URLs are sent as consecutive pages of one document.
        """
        if isinstance(image_data_urls, str):
            image_data_urls = [image_data_urls]
        if not image_data_urls:
            raise ValidationError("At least one image is required for extraction")
        if not self.api_key:
            raise ExternalServiceFailure(self.SERVICE_NAME, "no API key configured")

        instruction = "Extract the document contents."
        if len(image_data_urls) > 1:
            instruction = f"The {len(image_data_urls)} images are consecutive pages of one document. " + instruction
        parts = [{"type": "text", "text": instruction}]
        parts.extend({"type": "image_url", "image_url": {"url": url}} for url in image_data_urls)

        payload = {
            "model": self.model,
            "temperature": 0.2,
            "max_tokens": 3000,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": EXTRACTION_PROMPT},
                {"role": "user", "content": parts},
            ],
        }
        data = await self._post(f"{self.base_url}/chat/completions", json=payload)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise ExternalServiceFailure(self.SERVICE_NAME, "unexpected response shape")
        if not content:
            raise ExternalServiceFailure(self.SERVICE_NAME, "empty completion")

        try:
            result = json.loads(strip_json_fence(content))
        except json.JSONDecodeError as e:
            raise ExternalServiceFailure(self.SERVICE_NAME, f"completion is not JSON: {e}")
        if not isinstance(result, dict):
            raise ExternalServiceFailure(self.SERVICE_NAME, "completion is not a JSON object")

        logger.info(f"AI extraction returned {len(result.get('items') or [])} items")
        return result
