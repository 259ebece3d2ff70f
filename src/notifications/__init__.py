"""通知基盤 — メール通知プロバイダ"""

from src.notifications.base import (
    BaseNotificationProvider,
    DeliveryResult,
    NotificationMessage,
    NotificationPriority,
)
from src.notifications.email import EmailNotificationProvider
from src.notifications.notifier import IssueNotifier

__all__ = [
    "BaseNotificationProvider",
    "DeliveryResult",
    "EmailNotificationProvider",
    "IssueNotifier",
    "NotificationMessage",
    "NotificationPriority",
]
