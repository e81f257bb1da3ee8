import logging
from typing import Protocol
from uuid import UUID

import httpx

from src.guests.dtos import MessageType
from src.guests.errors import DispatchFailedError
from src.notifications.base import NotificationDispatcher
from src.notifications.messages import compose_message

logger = logging.getLogger(__name__)

RESEND_EMAILS_URL = "https://api.resend.com/emails"


def _message_id(response: httpx.Response) -> str | None:
    # The mail is out once Resend answered 2xx, the id is only for the log
    try:
        body = response.json()
    except ValueError:
        return None
    return body.get("id") if isinstance(body, dict) else None


class ResendConfig(Protocol):
    resend_api_key: str
    emails_from: str


class ResendNotificationDispatcher(NotificationDispatcher):
    def __init__(
        self,
        config: ResendConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ):
        self._config = config
        self._transport = transport
        self._timeout = timeout

    async def deliver(
        self,
        guest_id: UUID,
        event_id: UUID,
        message_type: MessageType,
        payload: dict,
    ) -> None:
        subject, text_body = compose_message(message_type, payload)
        to_address = payload["to_address"]

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                response = await client.post(
                    RESEND_EMAILS_URL,
                    headers={
                        "Authorization": f"Bearer {self._config.resend_api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": self._config.emails_from,
                        "to": [to_address],
                        "subject": subject,
                        "text": text_body,
                    },
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                "Resend delivery of %s to guest %s failed: %s", message_type.value, guest_id, e
            )
            raise DispatchFailedError(str(e)) from e

        logger.info(
            "Sent %s message to guest %s (resend id %s)",
            message_type.value,
            guest_id,
            _message_id(response),
        )
