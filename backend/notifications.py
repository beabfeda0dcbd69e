from __future__ import annotations
import logging
from typing import Any, Optional

import httpx

from backend.accounts import list_subscribers, unsubscribe_token
from backend.config import settings
from backend.database import DataStore
from backend.errors import RemoteCallFailure

logger = logging.getLogger(__name__)


class EmailDispatcher:
    """Fire-and-forget transactional email; no delivery receipt is read back."""

    def __init__(
        self,
        api_url: str = settings.EMAIL_API_URL,
        service_id: str = settings.EMAIL_SERVICE_ID,
        public_key: str = settings.EMAIL_PUBLIC_KEY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.service_id = service_id
        self.public_key = public_key
        self.transport = transport

    async def send(self, template_id: str, recipient: str, variables: dict[str, Any]) -> None:
        payload = {
            "service_id": self.service_id,
            "template_id": template_id,
            "user_id": self.public_key,
            "template_params": {"to_email": recipient, **variables},
        }
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=10) as client:
                resp = await client.post(self.api_url, json=payload)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("email to %s failed: %s", recipient, e)
            raise RemoteCallFailure("Email could not be sent") from e


def get_dispatcher() -> EmailDispatcher:
    return EmailDispatcher()


def _newsletter_vars(email: str, subject: str, message: str, name: Optional[str] = None) -> dict[str, Any]:
    return {
        "to_name": name or email.split("@")[0],
        "subject": subject,
        "message": message,
        "unsub_id": unsubscribe_token(email),
    }


async def send_newsletter(store: DataStore, dispatcher: EmailDispatcher, subject: str, message: str) -> int:
    sent = 0
    for sub in await list_subscribers(store):
        try:
            await dispatcher.send(settings.EMAIL_TEMPLATE_ID, sub.email, _newsletter_vars(sub.email, subject, message))
            sent += 1
        except RemoteCallFailure:
            # one bad address should not stop the rest of the list
            logger.warning("newsletter skipped %s", sub.email)
    logger.info("newsletter sent to %d subscriber(s)", sent)
    return sent


async def send_test_email(dispatcher: EmailDispatcher, to_email: str, subject: str, message: str) -> None:
    await dispatcher.send(
        settings.EMAIL_TEMPLATE_ID, to_email, _newsletter_vars(to_email, subject, message, name="Admin Test")
    )
