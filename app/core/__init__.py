"""Core utilities for the application"""

from app.core.security import create_access_token, verify_token
from app.core.email import EmailSender, SmtpConfig
from app.core.notifications import NotificationDispatcher

__all__ = [
    "create_access_token",
    "verify_token",
    "EmailSender",
    "SmtpConfig",
    "NotificationDispatcher",
]
