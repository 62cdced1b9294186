"""Database-backed notification inbox."""

from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import sessionmaker

from medilocker.core.database import session_scope
from medilocker.core.exceptions import NotFoundError
from medilocker.models.notification import Notification
from medilocker.notifications.base import NotificationMessage, NotificationSink
from medilocker.utils.logging import get_logger
from medilocker.utils.time import Clock, utcnow

logger = get_logger(__name__)


class DatabaseNotificationSink(NotificationSink):
    """Stores notifications so recipients can read them in-app."""

    def __init__(self, session_factory: sessionmaker, clock: Clock = utcnow):
        """Initialize the sink."""
        self.session_factory = session_factory
        self.clock = clock

    def _deliver(self, message: NotificationMessage) -> None:
        with session_scope(self.session_factory) as session:
            session.add(
                Notification(
                    recipient_id=message.recipient_id,
                    type=message.notification_type.value,
                    title=message.title,
                    body=message.body,
                    payload=dict(message.metadata),
                    created_at=self.clock(),
                )
            )
        logger.info(
            "notification_stored",
            recipient_id=message.recipient_id,
            notification_type=message.notification_type.value,
        )

    def list_for_recipient(
        self, recipient_id: str, unread_only: bool = False, limit: Optional[int] = 50
    ) -> List[Notification]:
        """List a recipient's notifications, newest first."""
        query = select(Notification).where(Notification.recipient_id == recipient_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc())
        if limit:
            query = query.limit(limit)
        with session_scope(self.session_factory) as session:
            return list(session.scalars(query))

    def mark_read(self, notification_id: str, recipient_id: str) -> None:
        """Mark one of the recipient's notifications as read."""
        with session_scope(self.session_factory) as session:
            result = session.execute(
                update(Notification)
                .where(
                    Notification.id == notification_id,
                    Notification.recipient_id == recipient_id,
                )
                .values(is_read=True, read_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise NotFoundError("Notification not found.")

    def mark_all_read(self, recipient_id: str) -> int:
        """Mark every unread notification of a recipient as read; returns the count."""
        with session_scope(self.session_factory) as session:
            result = session.execute(
                update(Notification)
                .where(
                    Notification.recipient_id == recipient_id,
                    Notification.is_read.is_(False),
                )
                .values(is_read=True, read_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    def unread_count(self, recipient_id: str) -> int:
        with session_scope(self.session_factory) as session:
            return session.scalar(
                select(func.count())
                .select_from(Notification)
                .where(
                    Notification.recipient_id == recipient_id,
                    Notification.is_read.is_(False),
                )
            )
