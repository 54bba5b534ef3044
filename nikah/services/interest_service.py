"""Interest Service - sending, answering and tracking proposals.

Interface Contract:
- send_interest(sender_id, receiver_id, type, message) -> Interest
- respond_to_interest(user_id, interest_id, response) -> Interest
- withdraw_interest(user_id, interest_id) -> Interest
- get_sent_interests / get_received_interests(user_id, filters) -> InterestHistory
- All methods raise InterestServiceError (or a NikahError subclass) on failure
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from config import INTEREST_HISTORY_LIMIT, INTEREST_SEND_DAILY_LIMIT
from nikah.db import utcnow
from nikah.errors import ErrorType, NikahError, NotFoundError, PermissionDeniedError, ValidationFailedError
from nikah.models import Interest, InterestStatus, InterestType, NotificationType, UserProfile
from nikah.models.interest import INTEREST_EXPIRY_DAYS
from nikah.services.mutual_match import MutualMatchDetector
from nikah.services.notification_service import InterestNotificationData, NotificationService
from nikah.services.recommendation_service import record_accepted_interest
from nikah.validation import sanitize_message

logger = logging.getLogger(__name__)

BATCH_SIZE = 100
CONTACT_WORDS = ("contact", "phone", "whatsapp", "email", "number")


class InterestServiceError(NikahError):
    """Raised when an interest operation breaks a business rule."""
    error_type = ErrorType.BUSINESS_LOGIC


class DailyLimitError(InterestServiceError):
    error_type = ErrorType.RATE_LIMIT

    @property
    def user_message(self) -> str:
        return str(self)


@dataclass
class InterestFilters:
    status: list[str] = field(default_factory=list)
    type: list[str] = field(default_factory=list)
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int = INTEREST_HISTORY_LIMIT
    offset: int = 0


@dataclass
class InterestHistory:
    interests: list[Interest]
    total_count: int
    has_more: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "interests": [i.to_dict() for i in self.interests],
            "total_count": self.total_count,
            "has_more": self.has_more,
        }


@dataclass
class InterestValidationResult:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    can_send: bool = True
    daily_limit_reached: bool = False
    already_exists: bool = False


@dataclass
class MutualInterest:
    interest_id: str
    other_user_id: str
    matched_at: datetime | None
    contact_shared: bool = False
    ai_match_score: float | None = None


def validate_interest_message(message: str | None) -> str | None:
    """Return the cleaned message; raise if it is too short or shares contact details."""
    if not message or not message.strip():
        return None
    cleaned = sanitize_message(message)
    if len(cleaned) < 10:
        raise ValidationFailedError(
            "Message should be at least 10 characters long",
            [{"field": "message", "message": "Message should be at least 10 characters long", "code": "MIN_LENGTH"}],
        )
    lower = cleaned.lower()
    if any(word in lower for word in CONTACT_WORDS):
        raise ValidationFailedError(
            "Please avoid sharing contact information in the initial message",
            [{"field": "message", "message": "Contact information is not allowed", "code": "CONTACT_INFO"}],
        )
    return cleaned


class InterestService:
    """Interest lifecycle for one database session."""

    def __init__(self, session: Session, notifications: NotificationService | None = None):
        self.session = session
        self.notifications = notifications or NotificationService(session)
        self.detector = MutualMatchDetector(session, self.notifications)

    # ------------------------------------------------------------------
    # Sending & responding
    # ------------------------------------------------------------------

    def validate_interest_request(self, sender_id: str, receiver_id: str) -> InterestValidationResult:
        result = InterestValidationResult()

        if sender_id == receiver_id:
            result.errors.append("You cannot send an interest to yourself")
            result.is_valid = result.can_send = False

        existing = self.session.scalar(
            select(func.count(Interest.id)).where(
                Interest.sender_id == sender_id,
                Interest.receiver_id == receiver_id,
                Interest.status.in_([InterestStatus.PENDING.value, InterestStatus.ACCEPTED.value]),
            )
        )
        if existing:
            result.errors.append("You have already sent an interest to this user")
            result.is_valid = False
            result.already_exists = True

        midnight = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        sent_today = self.session.scalar(
            select(func.count(Interest.id)).where(Interest.sender_id == sender_id, Interest.sent_at >= midnight)
        ) or 0
        if sent_today >= INTEREST_SEND_DAILY_LIMIT:
            result.errors.append(f"Daily interest limit of {INTEREST_SEND_DAILY_LIMIT} reached")
            result.is_valid = False
            result.daily_limit_reached = True

        return result

    def send_interest(
        self,
        sender_id: str,
        receiver_id: str,
        *,
        type: str = InterestType.PROPOSAL.value,
        message: str | None = None,
    ) -> Interest:
        """Create a pending interest and notify the receiver.

        Raises:
            NotFoundError: The receiver has no active profile
            PermissionDeniedError: The sender is suspended, restricted or banned
            DailyLimitError: The sender reached today's limit
            InterestServiceError: Self-interest or an open interest already exists
        """
        receiver = self._profile(receiver_id)
        if receiver is None or not receiver.is_active or receiver.is_banned:
            raise NotFoundError("This member's profile is not available")
        sender = self._profile(sender_id)
        if sender is not None and (sender.is_suspended or sender.is_restricted or sender.is_banned):
            raise PermissionDeniedError("Your account cannot send interests at the moment")

        validation = self.validate_interest_request(sender_id, receiver_id)
        if not validation.is_valid:
            text = f"Cannot send interest: {', '.join(validation.errors)}"
            if validation.daily_limit_reached:
                raise DailyLimitError(text)
            raise InterestServiceError(text)

        message = validate_interest_message(message)
        now = utcnow()
        interest = Interest(
            sender_id=sender_id,
            receiver_id=receiver_id,
            status=InterestStatus.PENDING.value,
            type=type or InterestType.PROPOSAL.value,
            message=message or "",
            is_read=False,
            sent_at=now,
            expires_at=now + timedelta(days=INTEREST_EXPIRY_DAYS),
            common_interests=[],
        )
        self.session.add(interest)
        self.session.commit()
        logger.info("[interest] sent id=%s %s -> %s", interest.id, sender_id, receiver_id)

        self._notify(NotificationType.NEW_INTEREST.value, InterestNotificationData(
            interest_id=interest.id,
            sender_id=sender_id,
            sender_name=sender.name if sender else "Someone",
            receiver_id=receiver_id,
            interest_type=interest.type,
            message=message,
            sender_age=sender.age if sender else None,
            sender_location=sender.district if sender else None,
        ))
        return interest

    def respond_to_interest(self, user_id: str, interest_id: str, response: str) -> Interest:
        if response not in (InterestStatus.ACCEPTED.value, InterestStatus.DECLINED.value):
            raise ValidationFailedError("Response must be accepted or declined")
        interest = self._get(interest_id)
        if interest.receiver_id != user_id:
            raise PermissionDeniedError("You can only respond to interests sent to you")
        if interest.status != InterestStatus.PENDING.value:
            raise InterestServiceError("This interest has already been responded to")

        interest.status = response
        interest.responded_at = utcnow()
        interest.is_read = True
        self.session.commit()
        logger.info("[interest] %s id=%s", response, interest.id)

        # The notification goes to the original sender, naming the responder
        responder = self._profile(user_id)
        notification_type = (
            NotificationType.INTEREST_ACCEPTED.value if response == InterestStatus.ACCEPTED.value
            else NotificationType.INTEREST_DECLINED.value
        )
        self._notify(notification_type, InterestNotificationData(
            interest_id=interest.id,
            sender_id=interest.sender_id,
            sender_name=responder.name if responder else "Someone",
            receiver_id=interest.receiver_id,
            interest_type=interest.type,
        ))

        if response == InterestStatus.ACCEPTED.value:
            try:
                record_accepted_interest(self.session, interest.sender_id)
            except Exception as e:
                self.session.rollback()
                logger.warning("[interest] learning update failed for user=%s: %s", interest.sender_id, e)
            try:
                self.detector.check_and_create(interest.sender_id, interest.receiver_id)
            except Exception as e:
                self.session.rollback()
                logger.error("[interest] mutual match check failed: %s", e)
        return interest

    def withdraw_interest(self, user_id: str, interest_id: str) -> Interest:
        interest = self._get(interest_id)
        if interest.sender_id != user_id:
            raise PermissionDeniedError("You can only withdraw interests you have sent")
        if interest.status != InterestStatus.PENDING.value:
            raise InterestServiceError("You can only withdraw pending interests")
        interest.status = InterestStatus.WITHDRAWN.value
        interest.withdrawn_at = utcnow()
        self.session.commit()
        logger.info("[interest] withdrawn id=%s", interest.id)
        return interest

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _history(self, column, user_id: str, filters: InterestFilters | None) -> InterestHistory:
        filters = filters or InterestFilters()
        limit = filters.limit or INTEREST_HISTORY_LIMIT
        stmt = select(Interest).where(column == user_id)
        if filters.status:
            stmt = stmt.where(Interest.status.in_(filters.status))
        if filters.type:
            stmt = stmt.where(Interest.type.in_(filters.type))
        if filters.date_from:
            stmt = stmt.where(Interest.sent_at >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(Interest.sent_at <= filters.date_to)

        total = self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        page = stmt.order_by(Interest.sent_at.desc()).limit(limit)
        if filters.offset:
            page = page.offset(filters.offset)
        interests = list(self.session.scalars(page))
        return InterestHistory(interests=interests, total_count=total, has_more=len(interests) == limit)

    def get_sent_interests(self, user_id: str, filters: InterestFilters | None = None) -> InterestHistory:
        return self._history(Interest.sender_id, user_id, filters)

    def get_received_interests(self, user_id: str, filters: InterestFilters | None = None) -> InterestHistory:
        return self._history(Interest.receiver_id, user_id, filters)

    def get_mutual_interests(self, user_id: str) -> list[MutualInterest]:
        accepted = InterestStatus.ACCEPTED.value
        sent = self.session.scalars(
            select(Interest).where(Interest.sender_id == user_id, Interest.status == accepted)
        ).all()
        received_from = set(self.session.scalars(
            select(Interest.sender_id).where(Interest.receiver_id == user_id, Interest.status == accepted)
        ))
        return [
            MutualInterest(
                interest_id=i.id,
                other_user_id=i.receiver_id,
                matched_at=i.responded_at or i.sent_at,
                contact_shared=False,
                ai_match_score=i.ai_match_score,
            )
            for i in sent
            if i.receiver_id in received_from
        ]

    def get_interest_stats(self, user_id: str) -> dict[str, Any]:
        sent = self.session.scalars(select(Interest).where(Interest.sender_id == user_id)).all()
        received = self.session.scalars(select(Interest).where(Interest.receiver_id == user_id)).all()

        def count(items, status):
            return sum(1 for i in items if i.status == status.value)

        stats: dict[str, Any] = {
            "total_sent": len(sent),
            "total_received": len(received),
            "accepted_sent": count(sent, InterestStatus.ACCEPTED),
            "accepted_received": count(received, InterestStatus.ACCEPTED),
            "pending_sent": count(sent, InterestStatus.PENDING),
            "pending_received": count(received, InterestStatus.PENDING),
            "declined_sent": count(sent, InterestStatus.DECLINED),
            "declined_received": count(received, InterestStatus.DECLINED),
            "withdrawn_sent": count(sent, InterestStatus.WITHDRAWN),
        }
        stats["success_rate"] = stats["accepted_sent"] / len(sent) * 100 if sent else 0
        responded = stats["accepted_received"] + stats["declined_received"]
        stats["response_rate"] = responded / len(received) * 100 if received else 0

        response_times = [
            (i.responded_at - i.sent_at).total_seconds() / 3600 for i in received if i.responded_at
        ]
        stats["average_response_time"] = sum(response_times) / len(response_times) if response_times else 0
        stats["mutual_interests"] = len(self.get_mutual_interests(user_id))
        return stats

    def mark_interest_as_read(self, user_id: str, interest_id: str) -> Interest:
        interest = self._get(interest_id)
        if interest.receiver_id != user_id:
            raise PermissionDeniedError("You can only mark interests sent to you as read")
        interest.is_read = True
        self.session.commit()
        return interest

    def get_interest(self, user_id: str, interest_id: str) -> Interest:
        interest = self._get(interest_id)
        if user_id not in (interest.sender_id, interest.receiver_id):
            raise PermissionDeniedError("You do not have permission to view this interest")
        return interest

    def get_unread_interests_count(self, user_id: str) -> int:
        return self.session.scalar(
            select(func.count(Interest.id)).where(Interest.receiver_id == user_id, Interest.is_read.is_(False))
        ) or 0

    def cleanup_expired_interests(self) -> int:
        """Expire one batch of pending interests past their expiry date."""
        ids = list(self.session.scalars(
            select(Interest.id)
            .where(Interest.status == InterestStatus.PENDING.value, Interest.expires_at < utcnow())
            .limit(BATCH_SIZE)
        ))
        if ids:
            self.session.execute(
                update(Interest).where(Interest.id.in_(ids)).values(status=InterestStatus.EXPIRED.value)
            )
            self.session.commit()
        logger.info("[interest] expired %d", len(ids))
        return len(ids)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, interest_id: str) -> Interest:
        interest = self.session.get(Interest, interest_id)
        if interest is None:
            raise NotFoundError("Interest not found")
        return interest

    def _profile(self, user_id: str) -> UserProfile | None:
        return self.session.scalars(select(UserProfile).where(UserProfile.user_id == user_id)).first()

    def _notify(self, type: str, data: InterestNotificationData) -> None:
        try:
            self.notifications.create_interest_notification(type, data)
        except Exception as e:
            self.session.rollback()
            logger.warning("[interest] notification %s failed: %s", type, e)
