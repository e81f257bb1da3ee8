import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from typing import Protocol
from uuid import UUID

from src.guests.dtos import MessageType
from src.guests.errors import DispatchFailedError
from src.notifications.base import NotificationDispatcher
from src.notifications.messages import compose_message

logger = logging.getLogger(__name__)


class SMTPConfig(Protocol):
    smtp_host: str
    smtp_port: int
    smtp_user: str | None
    smtp_password: str | None
    emails_from: str


class SMTPNotificationDispatcher(NotificationDispatcher):
    def __init__(self, config: SMTPConfig):
        self.host = config.smtp_host
        self.port = config.smtp_port
        self.username = config.smtp_user
        self.password = config.smtp_password
        self.from_address = config.emails_from

    def _create_message(self, to_address: str, subject: str, text_body: str) -> MIMEText:
        msg = MIMEText(text_body, "plain")
        msg["Subject"] = subject
        msg["From"] = self.from_address
        msg["To"] = to_address
        return msg

    def _send(self, msg: MIMEText) -> None:
        with smtplib.SMTP(self.host, self.port) as server:
            if self.username and self.password:
                server.starttls()
                server.login(self.username, self.password)
            server.send_message(msg)

    async def deliver(
        self,
        guest_id: UUID,
        event_id: UUID,
        message_type: MessageType,
        payload: dict,
    ) -> None:
        subject, text_body = compose_message(message_type, payload)
        msg = self._create_message(payload["to_address"], subject, text_body)

        # smtplib blocks
        try:
            await asyncio.to_thread(self._send, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(
                "SMTP delivery of %s to guest %s failed: %s", message_type.value, guest_id, e
            )
            raise DispatchFailedError(str(e)) from e

        logger.info("Sent %s message to guest %s via SMTP", message_type.value, guest_id)
