"""Notification feed operations."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from foodshare.database.notification_repository import NotificationRepository
from foodshare.database.user_repository import UserRepository
from foodshare.engine.access import Permission, require_permission, require_session
from foodshare.engine.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    provider_errors,
)
from foodshare.engine.session import SessionContext
from foodshare.models.notification import Notification

logger = logging.getLogger(__name__)


@dataclass
class MarkAllResult:
    """Outcome of a best-effort mark-all-read.

    Each notification is marked independently; `failed` lists the ones that
    could not be written. Nothing is rolled back.
    """
    marked: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class NotificationFeed:
    """List, read and send user-directed notifications."""

    def __init__(self, notifications: NotificationRepository, users: UserRepository):
        self.notifications = notifications
        self.users = users

    def list(self, session: Optional[SessionContext]) -> List[Notification]:
        """The caller's notifications, newest first."""
        session = require_session(session, "Please log in to view notifications.")
        with provider_errors("load notifications"):
            return self.notifications.list_for_user(session.identity_key)

    def unread_count(self, session: Optional[SessionContext]) -> int:
        session = require_session(session)
        with provider_errors("load notifications"):
            return self.notifications.count_unread(session.identity_key)

    def mark_read(self, session: Optional[SessionContext], notification_id: str) -> Notification:
        """Mark one of the caller's notifications as read."""
        session = require_session(session)
        with provider_errors("mark notification as read"):
            notification = self.notifications.get(notification_id)
            if notification is None:
                raise NotFoundError("Notification not found.")
            if notification.user_id != session.identity_key:
                raise PermissionDeniedError("You can only mark your own notifications as read.")
            return self.notifications.mark_read(notification_id)

    def mark_all_read(self, session: Optional[SessionContext]) -> MarkAllResult:
        """Mark every currently unread notification of the caller as read.

        Best-effort and non-atomic: a failure on one item does not stop the
        others and does not undo items already marked.
        """
        session = require_session(session)
        with provider_errors("load notifications"):
            unread = [n for n in self.notifications.list_for_user(session.identity_key) if not n.read]

        result = MarkAllResult()
        for notification in unread:
            try:
                self.notifications.mark_read(notification.id)
                result.marked.append(notification.id)
            except SQLAlchemyError as e:
                logger.warning(
                    f"Failed to mark notification {notification.id} read: {type(e).__name__}: {str(e)}"
                )
                result.failed.append(notification.id)

        if result.failed:
            logger.warning(
                f"mark-all-read for {session.identity_key}: {len(result.marked)} marked, {len(result.failed)} failed"
            )
        return result

    def notify(self, user_id: str, message: str, donation_id: Optional[str] = None) -> Notification:
        """Append a notification for `user_id` (no permission check; internal use)."""
        notification = Notification(
            id=str(uuid.uuid4()),
            user_id=user_id,
            message=message,
            read=False,
            donation_id=donation_id,
            created_at=datetime.utcnow(),
        )
        return self.notifications.create(notification)

    def send(
        self,
        session: Optional[SessionContext],
        user_id: str,
        message: str,
        donation_id: Optional[str] = None,
    ) -> Notification:
        """Admin-authored notification to an existing profile."""
        require_permission(session, Permission.SEND_NOTIFICATIONS, "Only admins can send notifications.")
        message = (message or "").strip()
        if not message:
            raise ValidationError("Notification message cannot be empty.")
        with provider_errors("send notification"):
            if self.users.get(user_id) is None:
                raise NotFoundError("User not found.")
            return self.notify(user_id, message, donation_id)
