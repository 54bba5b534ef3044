"""Online presence heartbeat and member activity log."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from config import ONLINE_WINDOW_MINUTES
from nikah.db import utcnow
from nikah.errors import ValidationFailedError
from nikah.models import UserActivity, UserProfile, UserStatus
from nikah.models.status import ACTIVITY_TYPES

logger = logging.getLogger(__name__)

BATCH_SIZE = 100
STATS_SAMPLE = 1000
# rough minutes per logged activity when estimating session length
MINUTES_PER_ACTIVITY = 30


class StatusService:
    """Heartbeat upserts and activity tracking for one database session."""

    def __init__(self, session: Session):
        self.session = session

    def _status(self, user_id: str) -> UserStatus | None:
        return self.session.scalars(select(UserStatus).where(UserStatus.user_id == user_id)).first()

    def update_online_status(
        self,
        user_id: str,
        is_online: bool = True,
        current_activity: str | None = None,
        *,
        session_id: str | None = None,
        device_info: dict[str, Any] | None = None,
    ) -> UserStatus:
        status = self._status(user_id)
        if status is None:
            status = UserStatus(user_id=user_id)
            self.session.add(status)
        status.is_online = is_online
        status.last_seen_at = utcnow()
        status.current_activity = current_activity
        if session_id:
            status.session_id = session_id
        if device_info:
            status.device_info = device_info
        self.session.commit()
        return status

    def get_user_status(self, user_id: str) -> UserStatus | None:
        return self._status(user_id)

    def get_multiple_user_statuses(self, user_ids: list[str]) -> list[UserStatus]:
        if not user_ids:
            return []
        return list(self.session.scalars(select(UserStatus).where(UserStatus.user_id.in_(user_ids))))

    def get_online_users(self, limit: int = 50) -> list[dict[str, Any]]:
        """Members flagged online whose last heartbeat is inside the window."""
        cutoff = utcnow() - timedelta(minutes=ONLINE_WINDOW_MINUTES)
        rows = self.session.execute(
            select(UserStatus, UserProfile)
            .join(UserProfile, UserProfile.user_id == UserStatus.user_id)
            .where(UserStatus.is_online.is_(True), UserStatus.last_seen_at >= cutoff)
            .order_by(UserStatus.last_seen_at.desc())
            .limit(limit)
        )
        return [
            {
                "user_id": status.user_id,
                "name": profile.name,
                "profile_picture_id": profile.profile_picture_id,
                "last_seen_at": status.last_seen_at.isoformat(),
                "is_online": status.is_online,
                "current_activity": status.current_activity,
            }
            for status, profile in rows
        ]

    def set_user_offline(self, user_id: str) -> None:
        self.update_online_status(user_id, False)

    def set_user_online(self, user_id: str) -> None:
        self.update_online_status(user_id, True)

    def track_activity(
        self,
        user_id: str,
        activity_type: str,
        *,
        target_user_id: str | None = None,
        activity_data: dict[str, Any] | None = None,
        session_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> UserActivity:
        if activity_type not in ACTIVITY_TYPES:
            raise ValidationFailedError(f"Unknown activity type: {activity_type}")
        activity = UserActivity(
            user_id=user_id,
            activity_type=activity_type,
            target_user_id=target_user_id,
            activity_data=activity_data or {},
            session_id=session_id,
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=utcnow(),
        )
        self.session.add(activity)
        self.session.commit()
        # logout flips the member offline, everything else is a heartbeat
        self.update_online_status(user_id, activity_type != "logout", activity_type)
        return activity

    def get_user_activity_history(self, user_id: str, limit: int = 50, activity_type: str | None = None) -> list[UserActivity]:
        stmt = select(UserActivity).where(UserActivity.user_id == user_id)
        if activity_type:
            stmt = stmt.where(UserActivity.activity_type == activity_type)
        return list(self.session.scalars(stmt.order_by(UserActivity.timestamp.desc()).limit(limit)))

    def get_user_activity_stats(self, user_id: str) -> dict[str, Any]:
        activities = self.session.scalars(
            select(UserActivity).where(UserActivity.user_id == user_id).limit(STATS_SAMPLE)
        ).all()
        by_type = Counter(a.activity_type for a in activities)
        logins = [a.timestamp for a in activities if a.activity_type == "login"]
        hours = Counter(a.timestamp.hour for a in activities)
        sessions = len(logins)
        return {
            "total_sessions": sessions,
            "average_session_duration": len(activities) * MINUTES_PER_ACTIVITY // sessions if sessions else 0,
            "last_login_at": max(logins).isoformat() if logins else "",
            "most_active_hour": hours.most_common(1)[0][0] if hours else 0,
            "total_activities": len(activities),
            "activities_by_type": dict(by_type),
        }

    def cleanup_old_activities(self, days_to_keep: int = 30) -> int:
        cutoff = utcnow() - timedelta(days=days_to_keep)
        ids = list(self.session.scalars(
            select(UserActivity.id).where(UserActivity.timestamp < cutoff).limit(BATCH_SIZE)
        ))
        if ids:
            self.session.execute(delete(UserActivity).where(UserActivity.id.in_(ids)))
            self.session.commit()
        logger.info("[status] removed %d old activities", len(ids))
        return len(ids)
