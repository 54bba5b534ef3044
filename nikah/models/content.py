"""Islamic content shown on the home page carousel."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from nikah.db import Base, new_id, utcnow


class ContentType(str, Enum):
    QURAN = "Quran"
    HADITH = "Hadith"
    QUOTE = "Quote"


class IslamicContent(Base):
    __tablename__ = "islamic_content"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    type: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(255), nullable=False)
    arabic_text: Mapped[str | None] = mapped_column(Text)
    english_text: Mapped[str] = mapped_column(Text, nullable=False)
    urdu_text: Mapped[str | None] = mapped_column(Text)
    hindi_text: Mapped[str | None] = mapped_column(Text)
    attribution: Mapped[str | None] = mapped_column(String(255))
    category: Mapped[str] = mapped_column(String(64), default="marriage")
    tags: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
