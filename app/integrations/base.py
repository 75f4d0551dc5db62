"""
Base Service Client - shared plumbing for external HTTP collaborators
"""
from abc import ABC
from typing import Optional, Dict, Any
import logging

import httpx

from app.core.exceptions import ExternalServiceFailure

logger = logging.getLogger(__name__)


class BaseServiceClient(ABC):
    """
    Base class for OCR, AI extraction and notification clients.
    Transport errors, timeouts and non-2xx responses surface as
    ExternalServiceFailure so callers can fall back to manual entry.
    """
    SERVICE_NAME: str = "base"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        self._transport = transport

    # ========== Utilities ==========

    def _build_headers(self) -> Dict[str, str]:
        """Build common request headers"""
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _post(self, url: str, **kwargs) -> Dict[str, Any]:
        """POST and return the decoded JSON body"""
        headers = {**self._build_headers(), **kwargs.pop("headers", {})}
        try:
            async with self._client() as client:
                response = await client.post(url, headers=headers, **kwargs)
        except httpx.TimeoutException:
            logger.error(f"[{self.SERVICE_NAME}] POST {url} timed out after {self.timeout}s")
            raise ExternalServiceFailure(self.SERVICE_NAME, f"timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            logger.error(f"[{self.SERVICE_NAME}] POST {url} failed: {e}")
            raise ExternalServiceFailure(self.SERVICE_NAME, str(e))

        self._log_api_call("POST", url, response.status_code)
        if response.status_code >= 400:
            raise ExternalServiceFailure(
                self.SERVICE_NAME, f"HTTP {response.status_code}: {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError:
            raise ExternalServiceFailure(self.SERVICE_NAME, "response is not JSON")

    def _log_api_call(self, method: str, endpoint: str, status_code: int):
        """Log API call for debugging"""
        logger.info(f"[{self.SERVICE_NAME}] {method} {endpoint} -> {status_code}")
