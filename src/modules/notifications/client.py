"""Outbound notification client — delivers status messages via the messaging service."""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod

import httpx

from src.config import settings
from src.models.enums import NotificationType, RecipientType

logger = logging.getLogger(__name__)

# Messaging-service endpoints per recipient class
_ENDPOINTS: dict[RecipientType, str] = {
    RecipientType.CUSTOMER: "/send-customer-portal-email",
    RecipientType.ADMIN: "/send-admin-notification",
}


class NotificationClientBase(ABC):
    @abstractmethod
    async def send(
        self,
        notification_type: NotificationType,
        recipient: RecipientType,
        invoice_id: uuid.UUID,
        payload: dict,
    ) -> None:
        """Deliver one templated message; raise on any delivery failure."""


class HttpNotificationClient(NotificationClientBase):
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = base_url or settings.notification_base_url
        self.api_key = api_key if api_key is not None else settings.notification_api_key
        self.timeout = timeout or settings.notification_timeout_seconds
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
            self._client = httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, headers=headers
            )
        return self._client

    async def send(
        self,
        notification_type: NotificationType,
        recipient: RecipientType,
        invoice_id: uuid.UUID,
        payload: dict,
    ) -> None:
        body = {
            "invoice_id": str(invoice_id),
            "type": notification_type.value,
            **payload,
        }
        if recipient == RecipientType.ADMIN:
            body.setdefault("to", settings.admin_notification_email)

        client = await self._get_client()
        response = await client.post(_ENDPOINTS[recipient], json=body)
        response.raise_for_status()
        logger.debug(
            "Notification %s delivered to %s for invoice %s",
            notification_type.value,
            recipient.value,
            invoice_id,
        )

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None


_default_client: HttpNotificationClient | None = None


def get_notification_client() -> NotificationClientBase:
    global _default_client
    if _default_client is None:
        _default_client = HttpNotificationClient()
    return _default_client


async def close_notification_client() -> None:
    """Close the shared httpx client.

    Celery tasks call this at the end of each asyncio.run() so a client is
    never reused across event loops.
    """
    if _default_client is not None:
        await _default_client.aclose()
