from src.config.settings import Settings
from src.notifications.base import NotificationDispatcher
from src.notifications.resend_dispatcher import ResendNotificationDispatcher
from src.notifications.smtp_dispatcher import SMTPNotificationDispatcher


def get_notification_dispatcher_from_settings(settings: Settings) -> NotificationDispatcher:
    """Resend when an API key is configured, SMTP (Mailhog in development) otherwise."""
    if settings.resend_api_key:
        return ResendNotificationDispatcher(settings)
    return SMTPNotificationDispatcher(settings)


__all__ = [
    "NotificationDispatcher",
    "ResendNotificationDispatcher",
    "SMTPNotificationDispatcher",
    "get_notification_dispatcher_from_settings",
]
