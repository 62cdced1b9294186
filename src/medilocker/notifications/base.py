"""Base classes and interfaces for the notification system."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError

from medilocker.core.exceptions import MedilockerError
from medilocker.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationType(str, Enum):
    """Notification type categories."""

    ACCESS_REQUEST = "access_request"
    ACCESS_REQUEST_RESPONSE = "access_request_response"
    ACCESS_REVOKED = "access_revoked"
    ACCESS_EXPIRED = "access_expired"
    RECORD_UPDATED = "record_updated"


@dataclass
class NotificationMessage:
    """A message addressed to one patient or doctor."""

    recipient_id: str
    notification_type: NotificationType
    title: str
    body: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class NotificationSink(ABC):
    """Delivers notifications. Delivery is best-effort."""

    def send(self, message: NotificationMessage) -> bool:
        """Deliver a message, logging instead of raising on failure.

        Returns:
            True if the message was delivered
        """
        try:
            self._deliver(message)
        except (SQLAlchemyError, MedilockerError, OSError) as e:
            logger.warning(
                "notification_failed",
                recipient_id=message.recipient_id,
                notification_type=message.notification_type.value,
                error=str(e),
            )
            return False
        return True

    @abstractmethod
    def _deliver(self, message: NotificationMessage) -> None:
        """Deliver one message; may raise."""


class NullNotificationSink(NotificationSink):
    """Sink that drops every message."""

    def _deliver(self, message: NotificationMessage) -> None:
        logger.debug("notification_dropped", recipient_id=message.recipient_id)
