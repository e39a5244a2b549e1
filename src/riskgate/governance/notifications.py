"""Notification Sink - best-effort alerts to administrators."""

import logging
import threading
from typing import List, Optional, Protocol

from riskgate.governance.schemas import AdminNotification, NotificationSeverity, NotificationType


logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    NotificationSeverity.LOW: logging.INFO,
    NotificationSeverity.MEDIUM: logging.INFO,
    NotificationSeverity.HIGH: logging.WARNING,
    NotificationSeverity.CRITICAL: logging.ERROR,
}


class NotificationSink(Protocol):
    def send(self, notification: AdminNotification) -> None:
        ...


class LoggingNotificationSink:
    """Writes notifications to the application log."""

    def __init__(self, logger_name: str = "riskgate.alerts"):
        self._logger = logging.getLogger(logger_name)

    def send(self, notification: AdminNotification) -> None:
        self._logger.log(
            _LOG_LEVELS[notification.severity],
            f"[{notification.severity.value.upper()}] {notification.title}: {notification.message}",
            extra={
                "notification_id": notification.notification_id,
                "notification_type": notification.notification_type.value,
                "principal_id": notification.principal_id,
            },
        )


class InMemoryNotificationSink:
    """Keeps notifications in memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self._notifications: List[AdminNotification] = []

    def send(self, notification: AdminNotification) -> None:
        with self._lock:
            self._notifications.append(notification)

    @property
    def notifications(self) -> List[AdminNotification]:
        with self._lock:
            return list(self._notifications)

    def of_type(self, notification_type: NotificationType) -> List[AdminNotification]:
        return [n for n in self.notifications if n.notification_type == notification_type]


def notify(sink: Optional[NotificationSink], notification: AdminNotification) -> bool:
    """Deliver a notification; sink errors are logged, never raised."""
    if sink is None:
        return False
    try:
        sink.send(notification)
        return True
    except Exception as e:
        logger.error(
            f"Notification delivery failed: {type(e).__name__}: {e}",
            extra={"notification_type": notification.notification_type.value},
        )
        return False
