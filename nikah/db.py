"""SQLAlchemy 2.x database setup.

Defines the declarative base, the engine/session factory wrapper and a few
helpers shared by the models. Connection details come from ``config``.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL


class Base(DeclarativeBase):
    """Base class for all models."""

    def to_dict(self) -> dict[str, Any]:
        """Convert mapped columns to a JSON-friendly dictionary."""
        data: dict[str, Any] = {}
        for attr in sa_inspect(type(self)).column_attrs:
            value = getattr(self, attr.key)
            if isinstance(value, datetime):
                value = value.isoformat()
            data[attr.key] = value
        return data


def new_id() -> str:
    """Document id, 32 hex chars."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo on round-trip)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Database:
    """Engine plus session factory for one database URL."""

    def __init__(self, url: str = DATABASE_URL, *, echo: bool = False):
        self.url = url
        kwargs: dict = {}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # one shared connection, otherwise every session sees an empty db
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, echo=echo, future=True, **kwargs)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False, class_=Session)

    def create_all(self) -> None:
        # Import for side effects: registers every table on Base.metadata
        from nikah import models  # noqa: F401

        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(self.engine)

    def session(self) -> Session:
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Transactional scope: commit on success, rollback on error.

        Usage:
            with db.session_scope() as session:
                ...
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
