from abc import ABC, abstractmethod
from uuid import UUID

from src.guests.dtos import MessageType


class NotificationDispatcher(ABC):
    """Delivers a message about an event to a guest.

    The core hands over already-resolved data in ``payload`` (``to_address``,
    ``guest_name``, event details, QR tokens) and does not care how the
    message is rendered or transported.
    """

    @abstractmethod
    async def deliver(
        self,
        guest_id: UUID,
        event_id: UUID,
        message_type: MessageType,
        payload: dict,
    ) -> None:
        """Deliver a message.

        Raises:
            DispatchFailedError: the message could not be handed to the provider.
        """
        raise NotImplementedError
