"""Online presence and activity log."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from nikah.db import Base, new_id, utcnow

# login, logout, profile_view, search, interest_sent, message_sent, page_visit,
# plus the recommendation interactions view, interest, favorite, skip, block
ACTIVITY_TYPES = (
    "login", "logout", "profile_view", "search", "interest_sent", "message_sent", "page_visit",
    "view", "interest", "favorite", "skip", "block",
)


class UserStatus(Base):
    __tablename__ = "user_status"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    current_activity: Mapped[str | None] = mapped_column(String(64))
    session_id: Mapped[str | None] = mapped_column(String(64))
    device_info: Mapped[dict | None] = mapped_column(JSON)


class UserActivity(Base):
    __tablename__ = "user_activities"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    target_user_id: Mapped[str | None] = mapped_column(String(32))
    activity_data: Mapped[dict | None] = mapped_column(JSON)
    session_id: Mapped[str | None] = mapped_column(String(64))
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(String(255))
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
