"""Local stores backing the offline action queue."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, BigInteger, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from nikah.db import Base

OFFLINE_ENTITIES = ("profile", "interest", "notification", "message")
OFFLINE_ACTION_TYPES = ("create", "update", "delete")


class OfflineAction(Base):
    __tablename__ = "offline_actions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    entity: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    data: Mapped[dict | None] = mapped_column(JSON)
    # epoch milliseconds
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=3, nullable=False)


class CachedEntry(Base):
    __tablename__ = "offline_cache"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    data: Mapped[Any] = mapped_column(JSON)
    # epoch seconds
    timestamp: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    ttl: Mapped[float] = mapped_column(Float, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1)

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class StoredPreference(Base):
    __tablename__ = "offline_preferences"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON)
