"""Отправщики уведомлений."""

from .email_sender import EmailNotificationSender, get_email_sender

__all__ = [
    "EmailNotificationSender",
    "get_email_sender",
]
