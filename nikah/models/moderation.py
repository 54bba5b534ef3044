"""Reports, suspensions, moderation audit trail and verification requests."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from nikah.db import Base, new_id, utcnow


class ReportCategory(str, Enum):
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    FAKE_PROFILE = "fake_profile"
    HARASSMENT = "harassment"
    SPAM = "spam"
    INAPPROPRIATE_PHOTOS = "inappropriate_photos"
    SCAM_FRAUD = "scam_fraud"
    UNDERAGE = "underage"
    VIOLENCE_THREATS = "violence_threats"
    HATE_SPEECH = "hate_speech"
    OTHER = "other"


class ReportStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"
    ESCALATED = "escalated"


class ReportPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ModerationAction(str, Enum):
    NO_ACTION = "no_action"
    WARNING_SENT = "warning_sent"
    CONTENT_REMOVED = "content_removed"
    PROFILE_SUSPENDED = "profile_suspended"
    ACCOUNT_BANNED = "account_banned"
    PROFILE_RESTRICTED = "profile_restricted"
    VERIFICATION_REVOKED = "verification_revoked"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


DOCUMENT_TYPES = ("aadhaar", "pan", "voter_id", "passport", "driving_license")


class UserReport(Base):
    __tablename__ = "user_reports"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    reporter_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    reporter_name: Mapped[str] = mapped_column(String(128), default="")
    reported_user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    reported_user_name: Mapped[str] = mapped_column(String(128), default="")
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    evidence: Mapped[list] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(16), default=ReportStatus.PENDING.value, index=True)
    priority: Mapped[str] = mapped_column(String(16), default=ReportPriority.MEDIUM.value, index=True)
    resolution: Mapped[str | None] = mapped_column(Text)
    action_taken: Mapped[str | None] = mapped_column(String(32))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime)
    reviewed_by: Mapped[str | None] = mapped_column(String(32))
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class UserSuspension(Base):
    __tablename__ = "user_suspensions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    suspended_by: Mapped[str] = mapped_column(String(32), nullable=False)
    reason: Mapped[str] = mapped_column(Text, default="")
    start_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    report_id: Mapped[str | None] = mapped_column(String(32))


class ModerationHistory(Base):
    """Audit entry for anything done to a report."""
    __tablename__ = "moderation_history"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    report_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    performed_by: Mapped[str] = mapped_column(String(32), nullable=False)
    performer_name: Mapped[str] = mapped_column(String(128), default="")
    details: Mapped[str] = mapped_column(Text, default="")
    previous_status: Mapped[str | None] = mapped_column(String(16))
    new_status: Mapped[str | None] = mapped_column(String(16))
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class VerificationRequest(Base):
    __tablename__ = "verification_requests"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    document_type: Mapped[str] = mapped_column(String(32), nullable=False)
    document_id: Mapped[str | None] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(16), default=VerificationStatus.PENDING.value, index=True)
    review_notes: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    reviewed_by: Mapped[str | None] = mapped_column(String(32))
    submitted_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime)
