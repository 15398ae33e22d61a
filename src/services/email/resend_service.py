"""
Transactional E-mail Service using Resend

Sends one e-mail per call. Failures are logged and reported as False;
they are never retried and never raised, so a failing e-mail cannot
hold up the reminder flow.
"""

from typing import Optional

import httpx
import structlog

from src.config import get_settings
from src.config.settings import ResendSettings


logger = structlog.get_logger(__name__)


class ResendEmailService:
    """Sends e-mail through the Resend HTTP API."""

    def __init__(
        self,
        settings: Optional[ResendSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings or get_settings().resend
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, to: str, subject: str, html: str) -> bool:
        """
        Send one e-mail.

        Returns:
            True if Resend accepted the message
        """
        if not self.is_configured:
            logger.error("email_not_configured", to=to, subject=subject)
            return False

        try:
            response = await self._get_client().post(
                self._settings.api_url,
                json={
                    "from": self._settings.sender,
                    "to": [to],
                    "subject": subject,
                    "html": html,
                },
                headers={"Authorization": f"Bearer {self._settings.api_key}"},
            )
        except httpx.HTTPError as e:
            logger.error("email_send_failed", to=to, subject=subject, error=str(e))
            return False

        if response.is_error:
            logger.error(
                "email_rejected",
                to=to,
                subject=subject,
                status_code=response.status_code,
                details=response.text[:500],
            )
            return False

        logger.info("email_sent", to=to, subject=subject)
        return True
