"""Repository for Notification database operations."""

import logging
from typing import List, Optional
from sqlalchemy import desc
from sqlalchemy.orm import Session

from foodshare.models.notification import Notification
from foodshare.database.models import NotificationDB
from foodshare.realtime.change_feed import ChangeFeed, ChangeType, Collection, change_feed

logger = logging.getLogger(__name__)


class NotificationRepository:
    """Repository for Notification database operations."""

    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.feed = feed or change_feed

    def create(self, notification: Notification) -> Notification:
        try:
            notification_db = NotificationDB.from_pydantic(notification)
            self.db.add(notification_db)
            self.db.commit()
            self.db.refresh(notification_db)
            logger.debug(f"Created notification {notification.id} for {notification.user_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create notification {notification.id}: {type(e).__name__}: {str(e)}")
            raise
        created = notification_db.to_pydantic()
        self.feed.emit(Collection.NOTIFICATIONS, ChangeType.CREATED, created.id, created.model_dump(mode="json"))
        return created

    def get(self, notification_id: str) -> Optional[Notification]:
        notification_db = self.db.query(NotificationDB).filter(NotificationDB.id == notification_id).first()
        return notification_db.to_pydantic() if notification_db else None

    def list_for_user(self, user_id: str) -> List[Notification]:
        """Notifications addressed to `user_id`, newest first."""
        notifications_db = (
            self.db.query(NotificationDB)
            .filter(NotificationDB.user_id == user_id)
            .order_by(desc(NotificationDB.created_at))
            .all()
        )
        return [n.to_pydantic() for n in notifications_db]

    def count_unread(self, user_id: str) -> int:
        return (
            self.db.query(NotificationDB)
            .filter(NotificationDB.user_id == user_id, NotificationDB.read.is_(False))
            .count()
        )

    def mark_read(self, notification_id: str) -> Optional[Notification]:
        """Set the read flag. Idempotent; returns None if the notification does not exist."""
        notification_db = self.db.query(NotificationDB).filter(NotificationDB.id == notification_id).first()
        if not notification_db:
            return None
        if notification_db.read:
            return notification_db.to_pydantic()

        notification_db.read = True
        try:
            self.db.commit()
            self.db.refresh(notification_db)
            logger.debug(f"Marked notification {notification_id} read")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to mark notification {notification_id} read: {type(e).__name__}: {str(e)}")
            raise
        updated = notification_db.to_pydantic()
        self.feed.emit(Collection.NOTIFICATIONS, ChangeType.UPDATED, notification_id, updated.model_dump(mode="json"))
        return updated
