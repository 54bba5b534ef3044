"""Notification Service - in-app notifications.

Interface Contract:
- create_notification(user_id, type, title, message, ...) -> Notification
- create_interest_notification(type, data) -> Notification
- get_user_notifications(user_id, filters) -> NotificationHistory
- All methods raise NotificationServiceError on failure
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from config import NOTIFICATION_LIMIT
from nikah.db import utcnow
from nikah.errors import ErrorType, NikahError, NotFoundError, PermissionDeniedError
from nikah.models import Notification, NotificationPriority, NotificationType

logger = logging.getLogger(__name__)

BATCH_SIZE = 100

INTEREST_NOTIFICATION_TYPES = (
    NotificationType.NEW_INTEREST.value,
    NotificationType.INTEREST_ACCEPTED.value,
    NotificationType.INTEREST_DECLINED.value,
)


class NotificationServiceError(NikahError):
    """Raised when notification service fails."""
    error_type = ErrorType.DATABASE


@dataclass
class InterestNotificationData:
    interest_id: str
    sender_id: str
    sender_name: str
    receiver_id: str
    interest_type: str = "proposal"
    message: str | None = None
    sender_age: int | None = None
    sender_location: str | None = None


@dataclass
class NotificationFilters:
    types: list[str] = field(default_factory=list)
    is_read: bool | None = None
    priorities: list[str] = field(default_factory=list)
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int = NOTIFICATION_LIMIT
    offset: int = 0


@dataclass
class NotificationHistory:
    notifications: list[Notification]
    total_count: int
    unread_count: int
    has_more: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "notifications": [n.to_dict() for n in self.notifications],
            "total_count": self.total_count,
            "unread_count": self.unread_count,
            "has_more": self.has_more,
        }


class NotificationService:
    """Creates, lists and expires notifications for one database session."""

    def __init__(self, session: Session):
        self.session = session

    def create_notification(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        *,
        priority: str = NotificationPriority.MEDIUM.value,
        related_user_id: str | None = None,
        action_url: str | None = None,
        meta: dict[str, Any] | None = None,
        expires_at: datetime | None = None,
        commit: bool = True,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            priority=priority or NotificationPriority.MEDIUM.value,
            is_read=False,
            related_user_id=related_user_id,
            action_url=action_url,
            meta=meta or {},
            created_at=utcnow(),
            expires_at=expires_at,
        )
        self.session.add(notification)
        if commit:
            self.session.commit()
        logger.info("[notification] %s -> user=%s", type, user_id)
        return notification

    def create_interest_notification(self, type: str, data: InterestNotificationData) -> Notification:
        """New interests go to the receiver; responses go back to the sender."""
        if type == NotificationType.NEW_INTEREST.value:
            title = "New Interest Received"
            suffix = f': "{data.message}"' if data.message else ""
            message = f"{data.sender_name} has sent you an interest{suffix}"
            recipient = data.receiver_id
        elif type == NotificationType.INTEREST_ACCEPTED.value:
            title = "Interest Accepted"
            message = f"{data.sender_name} has accepted your interest. You can now connect!"
            recipient = data.sender_id
        elif type == NotificationType.INTEREST_DECLINED.value:
            title = "Interest Response"
            message = f"{data.sender_name} has responded to your interest."
            recipient = data.sender_id
        else:
            raise NotificationServiceError("Invalid interest notification type", error_type=ErrorType.VALIDATION)

        is_new = type == NotificationType.NEW_INTEREST.value
        return self.create_notification(
            recipient,
            type,
            title,
            message,
            priority=NotificationPriority.HIGH.value if is_new else NotificationPriority.MEDIUM.value,
            related_user_id=data.sender_id if is_new else data.receiver_id,
            action_url="/interests",
            meta={
                "interest_id": data.interest_id,
                "interest_type": data.interest_type,
                "sender_age": data.sender_age,
                "sender_location": data.sender_location,
            },
        )

    def create_profile_view_notification(
        self,
        profile_owner_id: str,
        viewer_id: str,
        viewer_name: str,
        *,
        viewer_age: int | None = None,
        viewer_location: str | None = None,
    ) -> Notification:
        return self.create_notification(
            profile_owner_id,
            NotificationType.PROFILE_VIEW.value,
            "Profile Viewed",
            f"{viewer_name} viewed your profile",
            priority=NotificationPriority.LOW.value,
            related_user_id=viewer_id,
            action_url=f"/profile/{viewer_id}",
            meta={
                "viewer_age": viewer_age,
                "viewer_location": viewer_location,
                "viewed_at": utcnow().isoformat(),
            },
        )

    def create_verification_notification(
        self,
        user_id: str,
        status: str,
        verification_type: str,
        *,
        reason: str | None = None,
        admin_message: str | None = None,
    ) -> Notification:
        if status == "approved":
            title = "Verification Approved"
            message = f"Your {verification_type} verification has been approved!"
            priority = NotificationPriority.HIGH.value
        elif status == "rejected":
            title = "Verification Rejected"
            message = f"Your {verification_type} verification was rejected" + (f": {reason}" if reason else "")
            priority = NotificationPriority.HIGH.value
        elif status == "pending":
            title = "Verification Pending"
            message = f"Your {verification_type} verification is under review"
            priority = NotificationPriority.MEDIUM.value
        else:
            raise NotificationServiceError("Invalid verification status", error_type=ErrorType.VALIDATION)

        return self.create_notification(
            user_id,
            NotificationType.VERIFICATION_UPDATE.value,
            title,
            message,
            priority=priority,
            action_url="/settings/verification",
            meta={
                "verification_type": verification_type,
                "status": status,
                "reason": reason,
                "admin_message": admin_message,
            },
        )

    def get_user_notifications(self, user_id: str, filters: NotificationFilters | None = None) -> NotificationHistory:
        filters = filters or NotificationFilters()
        limit = filters.limit or NOTIFICATION_LIMIT

        stmt = select(Notification).where(Notification.user_id == user_id)
        if filters.types:
            stmt = stmt.where(Notification.type.in_(filters.types))
        if filters.is_read is not None:
            stmt = stmt.where(Notification.is_read.is_(filters.is_read))
        if filters.priorities:
            stmt = stmt.where(Notification.priority.in_(filters.priorities))
        if filters.date_from:
            stmt = stmt.where(Notification.created_at >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(Notification.created_at <= filters.date_to)

        total = self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        page = stmt.order_by(Notification.created_at.desc()).limit(limit)
        if filters.offset:
            page = page.offset(filters.offset)
        notifications = list(self.session.scalars(page))

        return NotificationHistory(
            notifications=notifications,
            total_count=total,
            unread_count=self.get_unread_count(user_id),
            has_more=len(notifications) == limit,
        )

    def _get_owned(self, user_id: str, notification_id: str, verb: str) -> Notification:
        notification = self.session.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if notification.user_id != user_id:
            raise PermissionDeniedError(f"You can only {verb} your own notifications")
        return notification

    def mark_as_read(self, user_id: str, notification_id: str) -> Notification:
        notification = self._get_owned(user_id, notification_id, "mark as read")
        notification.is_read = True
        notification.read_at = utcnow()
        self.session.commit()
        return notification

    def mark_all_as_read(self, user_id: str) -> int:
        """Mark up to one batch of unread notifications as read."""
        ids = list(self.session.scalars(
            select(Notification.id)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .limit(BATCH_SIZE)
        ))
        if not ids:
            return 0
        self.session.execute(
            update(Notification).where(Notification.id.in_(ids)).values(is_read=True, read_at=utcnow())
        )
        self.session.commit()
        return len(ids)

    def delete_notification(self, user_id: str, notification_id: str) -> None:
        notification = self._get_owned(user_id, notification_id, "delete")
        self.session.delete(notification)
        self.session.commit()

    def get_unread_count(self, user_id: str) -> int:
        return self.session.scalar(
            select(func.count(Notification.id))
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        ) or 0

    def get_notification_stats(self, user_id: str) -> dict[str, Any]:
        by_type = {t.value: 0 for t in NotificationType}
        by_priority = {p.value: 0 for p in NotificationPriority}
        total = unread = 0
        rows = self.session.execute(
            select(Notification.type, Notification.priority, Notification.is_read)
            .where(Notification.user_id == user_id)
        )
        for type_, priority, is_read in rows:
            total += 1
            if not is_read:
                unread += 1
            by_type[type_] = by_type.get(type_, 0) + 1
            by_priority[priority] = by_priority.get(priority, 0) + 1
        return {"total": total, "unread": unread, "by_type": by_type, "by_priority": by_priority}

    def create_bulk_notifications(
        self,
        user_ids: list[str],
        type: str,
        title: str,
        message: str,
        *,
        priority: str = NotificationPriority.MEDIUM.value,
        meta: dict[str, Any] | None = None,
    ) -> int:
        created = 0
        for user_id in user_ids:
            try:
                self.create_notification(user_id, type, title, message, priority=priority, meta=meta)
                created += 1
            except Exception as e:
                self.session.rollback()
                logger.error("[notification] bulk create failed for user=%s: %s", user_id, e)
        return created

    def cleanup_expired_notifications(self) -> int:
        ids = list(self.session.scalars(
            select(Notification.id).where(Notification.expires_at < utcnow()).limit(BATCH_SIZE)
        ))
        if ids:
            self.session.execute(delete(Notification).where(Notification.id.in_(ids)))
            self.session.commit()
        logger.info("[notification] cleaned %d expired", len(ids))
        return len(ids)
