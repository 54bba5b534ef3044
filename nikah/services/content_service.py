"""Islamic content for the home page carousel."""

from __future__ import annotations

import logging
import random
from typing import Any

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from nikah.db import utcnow
from nikah.errors import ErrorType, NikahError, NotFoundError
from nikah.models import ContentType, IslamicContent

logger = logging.getLogger(__name__)

ACTIVE_LIMIT = 50
BY_TYPE_LIMIT = 20
EDITABLE_FIELDS = (
    "type", "source", "arabic_text", "english_text", "urdu_text", "hindi_text",
    "attribution", "category", "tags", "display_order",
)

SEED_CONTENT: list[dict[str, Any]] = [
    {
        "type": "Hadith",
        "source": "Mishkat al-Masabih",
        "english_text": "When a person marries, he has fulfilled half of his religion.",
        "arabic_text": "إِذَا تَزَوَّجَ الْعَبْدُ فَقَدِ اسْتَكْمَلَ نِصْفَ الدِّينِ",
        "attribution": "Prophet Muhammad (Peace be upon him)",
        "display_order": 1,
        "category": "marriage",
        "tags": ["marriage", "religion", "completion"],
    },
    {
        "type": "Hadith",
        "source": "Al-Bukhari",
        "english_text": (
            "O young people! Those among you who can support a wife should marry, "
            "for it helps him lower his gaze and guard his modesty."
        ),
        "attribution": "Prophet Muhammad (Peace be upon him)",
        "display_order": 2,
        "category": "youth",
        "tags": ["youth", "marriage", "modesty", "guidance"],
    },
    {
        "type": "Quran",
        "source": "Surah Ar-Rum (30:21)",
        "english_text": (
            "And among His signs is this: that He created for you mates from among yourselves, "
            "that you may dwell in tranquility with them, and He has put love and mercy between your hearts."
        ),
        "attribution": "Allah (SWT)",
        "display_order": 3,
        "category": "divine_signs",
        "tags": ["love", "mercy", "tranquility", "companionship"],
    },
    {
        "type": "Quran",
        "source": "Surah An-Nur (24:32)",
        "english_text": "And marry the unmarried among you and the righteous among your male slaves and female slaves.",
        "attribution": "Allah (SWT)",
        "display_order": 4,
        "category": "commandment",
        "tags": ["marriage", "righteousness", "community"],
    },
    {
        "type": "Hadith",
        "source": "Ibn Majah",
        "english_text": "Marriage is part of my Sunnah. Whoever does not follow my Sunnah has nothing to do with me.",
        "attribution": "Prophet Muhammad (Peace be upon him)",
        "display_order": 5,
        "category": "sunnah",
        "tags": ["sunnah", "marriage", "following"],
    },
    {
        "type": "Quote",
        "source": "Islamic Teaching",
        "english_text": (
            "Nikah is not just a contract; it is a sacred bond founded on love, respect, and commitment in Islam."
        ),
        "attribution": "Islamic Wisdom",
        "display_order": 6,
        "category": "wisdom",
        "tags": ["nikah", "sacred", "love", "respect", "commitment"],
    },
]


class ContentServiceError(NikahError):
    error_type = ErrorType.VALIDATION


def _check_type(content_type: str) -> None:
    if content_type not in {t.value for t in ContentType}:
        raise ContentServiceError(f"Unknown content type: {content_type}")


class ContentService:
    def __init__(self, session: Session):
        self.session = session

    def get_active_content(self) -> list[IslamicContent]:
        return list(self.session.scalars(
            select(IslamicContent)
            .where(IslamicContent.is_active.is_(True))
            .order_by(IslamicContent.display_order.asc())
            .limit(ACTIVE_LIMIT)
        ))

    def get_content_by_type(self, content_type: str) -> list[IslamicContent]:
        _check_type(content_type)
        return list(self.session.scalars(
            select(IslamicContent)
            .where(IslamicContent.type == content_type, IslamicContent.is_active.is_(True))
            .order_by(IslamicContent.display_order.asc())
            .limit(BY_TYPE_LIMIT)
        ))

    def get_random_content(self, limit: int = 5) -> list[IslamicContent]:
        content = self.get_active_content()
        return random.sample(content, min(limit, len(content)))

    def get_content(self, content_id: str) -> IslamicContent:
        content = self.session.get(IslamicContent, content_id)
        if content is None:
            raise NotFoundError("Content not found")
        return content

    def create_content(self, data: BaseModel | dict[str, Any]) -> IslamicContent:
        if isinstance(data, BaseModel):
            data = data.model_dump()
        _check_type(data.get("type", ""))
        if not data.get("english_text") or not data.get("source"):
            raise ContentServiceError("Source and English text are required")
        now = utcnow()
        content = IslamicContent(
            **{k: v for k, v in data.items() if k in EDITABLE_FIELDS},
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        content.display_order = data.get("display_order") or 0
        self.session.add(content)
        self.session.commit()
        logger.info("[content] created id=%s type=%s", content.id, content.type)
        return content

    def update_content(self, content_id: str, updates: BaseModel | dict[str, Any]) -> IslamicContent:
        if isinstance(updates, BaseModel):
            updates = updates.model_dump(exclude_unset=True)
        content = self.get_content(content_id)
        if "type" in updates:
            _check_type(updates["type"])
        for key, value in updates.items():
            if key in EDITABLE_FIELDS:
                setattr(content, key, value)
        content.updated_at = utcnow()
        self.session.commit()
        return content

    def delete_content(self, content_id: str) -> None:
        self.session.delete(self.get_content(content_id))
        self.session.commit()

    def toggle_content_status(self, content_id: str, is_active: bool) -> IslamicContent:
        content = self.get_content(content_id)
        content.is_active = is_active
        content.updated_at = utcnow()
        self.session.commit()
        return content

    def seed(self) -> int:
        """Insert the built-in content when the table is empty."""
        existing = self.session.scalar(select(func.count(IslamicContent.id))) or 0
        if existing:
            logger.info("[content] %d item(s) present, skipping seed", existing)
            return 0
        for item in SEED_CONTENT:
            self.create_content(item)
        return len(SEED_CONTENT)
