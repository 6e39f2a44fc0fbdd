"""
Outbound notifications to registrants.

Delivery is best effort: a failed send is logged and reported as False,
never raised, so the state change that triggered it stands.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from checkin.config import Settings, get_settings
from checkin.models import Registration, StudentProfile
from checkin.utils.logger import logger

PUSH_PATH = "/v2/bot/message/push"


class NotificationDispatcher(ABC):
    @abstractmethod
    async def send(self, contact_id: str, message: dict) -> bool:
        """Send one message; True when the transport accepted it."""


class NullNotificationDispatcher(NotificationDispatcher):
    """Used when no messaging channel is configured."""

    async def send(self, contact_id: str, message: dict) -> bool:
        logger.debug(f"Notifications disabled, dropping '{message.get('altText')}' for {contact_id}")
        return False


class LineNotificationDispatcher(NotificationDispatcher):
    """Push messages through the LINE Messaging API."""

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.line.me",
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _post(self, client: httpx.AsyncClient, payload: dict) -> httpx.Response:
        return await client.post(
            f"{self.base_url}{PUSH_PATH}",
            json=payload,
            headers={"Authorization": f"Bearer {self.access_token}"},
            timeout=self.timeout,
        )

    async def send(self, contact_id: str, message: dict) -> bool:
        payload = {"to": contact_id, "messages": [message]}
        try:
            if self._client is not None:
                response = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, payload)
        except httpx.HTTPError as exc:
            logger.warning(f"LINE push to {contact_id} failed: {exc!r}")
            return False

        if not response.is_success:
            logger.warning(
                f"LINE push to {contact_id} rejected: {response.status_code} {response.text[:200]}"
            )
            return False
        return True


def build_dispatcher(settings: Optional[Settings] = None) -> NotificationDispatcher:
    settings = settings or get_settings()
    if not settings.line_channel_access_token:
        return NullNotificationDispatcher()
    return LineNotificationDispatcher(
        settings.line_channel_access_token,
        base_url=settings.line_api_base_url,
        timeout=settings.line_request_timeout_seconds,
    )


async def resolve_contact(session: AsyncSession, registration: Registration) -> Optional[str]:
    """LINE user id of the registrant: on the registration, else from the student profile."""
    if registration.line_user_id:
        return registration.line_user_id
    result = await session.execute(
        select(StudentProfile.line_user_id).where(StudentProfile.national_id == registration.national_id)
    )
    return result.scalar_one_or_none()


async def notify(
    dispatcher: NotificationDispatcher,
    contact_id: Optional[str],
    message: dict,
) -> bool:
    """Send if a contact is on file; any failure is logged and swallowed."""
    if not contact_id:
        logger.debug(f"No contact on file, skipping '{message.get('altText')}'")
        return False
    try:
        return await dispatcher.send(contact_id, message)
    except Exception as exc:
        logger.opt(exception=exc).warning(f"Notification to {contact_id} failed")
        return False
