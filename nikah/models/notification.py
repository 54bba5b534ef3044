"""Notification model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from nikah.db import Base, new_id, utcnow


class NotificationType(str, Enum):
    NEW_INTEREST = "new_interest"
    INTEREST_ACCEPTED = "interest_accepted"
    INTEREST_DECLINED = "interest_declined"
    NEW_MATCH = "new_match"
    PROFILE_VIEW = "profile_view"
    VERIFICATION_UPDATE = "verification_update"
    SYSTEM_ANNOUNCEMENT = "system_announcement"
    PROFILE_INCOMPLETE = "profile_incomplete"
    SUBSCRIPTION_EXPIRY = "subscription_expiry"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(8), nullable=False, default=NotificationPriority.MEDIUM.value)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime)
    related_user_id: Mapped[str | None] = mapped_column(String(32))
    action_url: Mapped[str | None] = mapped_column(String(255))
    # ``metadata`` is reserved on declarative classes
    meta: Mapped[dict | None] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime)
