"""
Email notifier - approval requests sent through the Resend HTTP API
"""
from typing import List, Optional
import logging

import httpx

from app.core.config import settings
from .base import BaseServiceClient

logger = logging.getLogger(__name__)


class EmailNotifier(BaseServiceClient):
    SERVICE_NAME = "email"

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        sender: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            api_url or settings.RESEND_API_URL,
            timeout=15.0,
            api_key=api_key if api_key is not None else settings.RESEND_API_KEY,
            transport=transport,
        )
        self.sender = sender or settings.SENDER_EMAIL

    async def send(self, recipients: List[str], subject: str, html: str) -> bool:
        """
        Send one message to all recipients.
        Returns False without calling out when no API key is configured.
        """
        if not recipients:
            logger.warning(f"No recipients for '{subject}'; nothing sent")
            return False
        if not self.api_key:
            logger.warning(f"RESEND_API_KEY not set; skipped email '{subject}' to {len(recipients)} recipients")
            return False

        payload = {"from": self.sender, "to": recipients, "subject": subject, "html": html}
        data = await self._post(self.base_url, json=payload)
        logger.info(f"Sent '{subject}' to {len(recipients)} recipients (id={data.get('id')})")
        return True
