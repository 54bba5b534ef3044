"""Interest (proposal) and mutual-match models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from nikah.db import Base, new_id, utcnow

INTEREST_EXPIRY_DAYS = 30


class InterestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


class InterestType(str, Enum):
    PROPOSAL = "proposal"
    FAVORITE = "favorite"
    CONTACT_REQUEST = "contact_request"


class Interest(Base):
    __tablename__ = "interests"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    sender_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    receiver_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=InterestStatus.PENDING.value, index=True)
    type: Mapped[str] = mapped_column(String(24), nullable=False, default=InterestType.PROPOSAL.value)
    message: Mapped[str | None] = mapped_column(Text)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime)
    withdrawn_at: Mapped[datetime | None] = mapped_column(DateTime)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime)
    ai_match_score: Mapped[float | None] = mapped_column(Float)
    common_interests: Mapped[list] = mapped_column(JSON, default=list)


class MutualMatch(Base):
    """Created once both members have accepted each other's interest."""
    __tablename__ = "mutual_matches"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user1_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    user2_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    interest1_id: Mapped[str] = mapped_column(String(32), nullable=False)
    interest2_id: Mapped[str] = mapped_column(String(32), nullable=False)
    ai_match_score: Mapped[float] = mapped_column(Float, default=70)
    common_interests: Mapped[list] = mapped_column(JSON, default=list)
    contact_shared: Mapped[bool] = mapped_column(Boolean, default=False)
    matched_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
