"""Mutual-match detection.

Two members match once each has accepted the other's interest. The match
score starts from a base for the mutual acceptance and rises with shared
hobbies, engagement (both wrote a message) and quick replies.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from nikah.db import utcnow
from nikah.models import Interest, InterestStatus, MutualMatch, NotificationType
from nikah.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

BASE_SCORE = 70
COMMON_INTEREST_BONUS = 5
MESSAGE_BONUS = 10
FAST_RESPONSE_BONUS = 10
FAST_RESPONSE_WINDOW = timedelta(hours=24)

HOBBY_KEYWORDS = (
    "reading", "books", "travel", "cooking", "music", "sports", "movies",
    "photography", "art", "technology", "fitness", "yoga", "meditation",
    "gardening", "dancing", "singing", "writing", "painting", "hiking",
    "swimming", "cycling", "cricket", "football", "badminton", "chess",
)


def extract_interests(interest: Interest) -> list[str]:
    """Stored common interests plus hobby keywords found in the message."""
    found: list[str] = list(interest.common_interests or [])
    if interest.message:
        lower = interest.message.lower()
        for keyword in HOBBY_KEYWORDS:
            if keyword in lower and keyword not in found:
                found.append(keyword)
    return found


def find_common_interests(first: Interest, second: Interest) -> list[str]:
    other = extract_interests(second)
    common: list[str] = []
    for item in extract_interests(first):
        if item in other and item not in common:
            common.append(item)
    return common


def calculate_match_score(first: Interest, second: Interest) -> int:
    score = BASE_SCORE + COMMON_INTEREST_BONUS * len(find_common_interests(first, second))
    if first.message and second.message:
        score += MESSAGE_BONUS
    if first.responded_at and second.responded_at:
        if (first.responded_at - first.sent_at < FAST_RESPONSE_WINDOW
                and second.responded_at - second.sent_at < FAST_RESPONSE_WINDOW):
            score += FAST_RESPONSE_BONUS
    return min(score, 100)


class MutualMatchDetector:
    """Finds reciprocal accepted interests and records the match."""

    def __init__(self, session: Session, notifications: NotificationService | None = None):
        self.session = session
        self.notifications = notifications or NotificationService(session)

    def _accepted(self, sender_id: str, receiver_id: str) -> Interest | None:
        return self.session.scalars(
            select(Interest)
            .where(
                Interest.sender_id == sender_id,
                Interest.receiver_id == receiver_id,
                Interest.status == InterestStatus.ACCEPTED.value,
            )
            .order_by(Interest.sent_at.desc())
            .limit(1)
        ).first()

    def match_exists(self, user1_id: str, user2_id: str) -> bool:
        return self.session.scalars(
            select(MutualMatch.id).where(or_(
                and_(MutualMatch.user1_id == user1_id, MutualMatch.user2_id == user2_id),
                and_(MutualMatch.user1_id == user2_id, MutualMatch.user2_id == user1_id),
            )).limit(1)
        ).first() is not None

    def check_and_create(self, user1_id: str, user2_id: str) -> MutualMatch | None:
        """Create the match when both directions are accepted; None otherwise."""
        if self.match_exists(user1_id, user2_id):
            return None
        to_user2 = self._accepted(user1_id, user2_id)
        if to_user2 is None:
            return None
        to_user1 = self._accepted(user2_id, user1_id)
        if to_user1 is None:
            return None

        match = MutualMatch(
            user1_id=user1_id,
            user2_id=user2_id,
            interest1_id=to_user2.id,
            interest2_id=to_user1.id,
            ai_match_score=calculate_match_score(to_user2, to_user1),
            common_interests=find_common_interests(to_user2, to_user1),
            contact_shared=False,
            matched_at=utcnow(),
        )
        self.session.add(match)
        self.session.commit()
        logger.info("[match] mutual %s <-> %s score=%s", user1_id, user2_id, match.ai_match_score)

        for user_id, other_id in ((user1_id, user2_id), (user2_id, user1_id)):
            try:
                self.notifications.create_notification(
                    user_id,
                    NotificationType.NEW_MATCH.value,
                    "New Mutual Match",
                    "You have a new mutual match! You can now share contact details.",
                    priority="high",
                    related_user_id=other_id,
                    action_url="/matches",
                    meta={"match_id": match.id, "score": match.ai_match_score},
                )
            except Exception as e:
                self.session.rollback()
                logger.warning("[match] notification failed for user=%s: %s", user_id, e)
        return match

    def check_user(self, user_id: str) -> int:
        """Scan a member's accepted received interests for missing matches."""
        senders = self.session.scalars(
            select(Interest.sender_id).where(
                Interest.receiver_id == user_id,
                Interest.status == InterestStatus.ACCEPTED.value,
            ).distinct()
        ).all()
        return sum(1 for sender_id in senders if self.check_and_create(user_id, sender_id) is not None)

    def get_matches(self, user_id: str) -> list[MutualMatch]:
        return list(self.session.scalars(
            select(MutualMatch)
            .where(or_(MutualMatch.user1_id == user_id, MutualMatch.user2_id == user_id))
            .order_by(MutualMatch.matched_at.desc())
        ))
