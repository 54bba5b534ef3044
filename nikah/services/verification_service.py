"""Verification Service - identity document review.

Interface Contract:
- create_verification_request(user_id, document_type, document_id) -> VerificationRequest
- review_verification_request(request_id, reviewer_id, decision, ...) -> VerificationRequest
- get_user_verification_status(user_id) -> dict
- list_pending_requests(options) -> PaginatedResult
- All methods raise VerificationServiceError (or a NikahError subclass) on failure
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from nikah.db import utcnow
from nikah.errors import ErrorType, NikahError, NotFoundError, ValidationFailedError
from nikah.models import UserProfile, VerificationRequest, VerificationStatus
from nikah.models.moderation import DOCUMENT_TYPES
from nikah.pagination import PaginatedResult, PaginationOptions, paginate_with_count
from nikah.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

PENDING_TTL = timedelta(days=30)


class VerificationServiceError(NikahError):
    """Raised when verification service fails."""
    error_type = ErrorType.BUSINESS_LOGIC


class VerificationService:
    """Verification requests for one database session."""

    def __init__(self, session: Session, notifications: NotificationService | None = None):
        self.session = session
        self.notifications = notifications or NotificationService(session)

    def _latest(self, user_id: str, status: str | None = None) -> VerificationRequest | None:
        stmt = select(VerificationRequest).where(VerificationRequest.user_id == user_id)
        if status:
            stmt = stmt.where(VerificationRequest.status == status)
        return self.session.scalars(stmt.order_by(VerificationRequest.submitted_at.desc()).limit(1)).first()

    def create_verification_request(self, user_id: str, document_type: str, document_id: str | None = None) -> VerificationRequest:
        if document_type not in DOCUMENT_TYPES:
            raise ValidationFailedError(f"Unsupported document type: {document_type}")
        if self._latest(user_id, VerificationStatus.PENDING.value) is not None:
            raise VerificationServiceError("You already have a verification request under review")

        request = VerificationRequest(
            user_id=user_id,
            document_type=document_type,
            document_id=document_id,
            status=VerificationStatus.PENDING.value,
            submitted_at=utcnow(),
        )
        self.session.add(request)
        self.session.commit()
        logger.info("[verification] request id=%s user=%s type=%s", request.id, user_id, document_type)
        self._notify(user_id, VerificationStatus.PENDING.value, document_type)
        return request

    def get_verification_request(self, request_id: str) -> VerificationRequest:
        request = self.session.get(VerificationRequest, request_id)
        if request is None:
            raise NotFoundError("Verification request not found")
        return request

    def get_user_verification_status(self, user_id: str) -> dict[str, Any]:
        latest = self._latest(user_id)
        level = "none"
        if latest is not None and latest.status == VerificationStatus.APPROVED.value:
            level = "full"
        elif latest is not None and latest.status == VerificationStatus.PENDING.value:
            level = "pending"
        return {
            "is_verified": level == "full",
            "verification_level": level,
            "latest_request": latest.to_dict() if latest else None,
        }

    def list_pending_requests(self, options: PaginationOptions | None = None) -> PaginatedResult:
        stmt = select(VerificationRequest).where(VerificationRequest.status == VerificationStatus.PENDING.value)
        options = options or PaginationOptions(order_by="submitted_at", order_direction="asc")
        return paginate_with_count(self.session, stmt, options)

    def review_verification_request(
        self,
        request_id: str,
        reviewer_id: str,
        decision: str,
        *,
        notes: str | None = None,
        rejection_reason: str | None = None,
    ) -> VerificationRequest:
        if decision not in (VerificationStatus.APPROVED.value, VerificationStatus.REJECTED.value):
            raise ValidationFailedError("Decision must be approved or rejected")
        if decision == VerificationStatus.REJECTED.value and not rejection_reason:
            raise ValidationFailedError("A rejection reason is required")

        request = self.get_verification_request(request_id)
        if request.status != VerificationStatus.PENDING.value:
            raise VerificationServiceError("This request has already been reviewed")

        request.status = decision
        request.review_notes = notes
        request.rejection_reason = rejection_reason if decision == VerificationStatus.REJECTED.value else None
        request.reviewed_by = reviewer_id
        request.reviewed_at = utcnow()

        if decision == VerificationStatus.APPROVED.value:
            profile = self.session.scalars(select(UserProfile).where(UserProfile.user_id == request.user_id)).first()
            if profile is not None:
                profile.is_verified = True
        self.session.commit()
        logger.info("[verification] %s id=%s by %s", decision, request.id, reviewer_id)

        self._notify(request.user_id, decision, request.document_type, reason=rejection_reason, admin_message=notes)
        return request

    def get_verification_stats(self) -> dict[str, Any]:
        requests = self.session.scalars(select(VerificationRequest)).all()
        stats = {"total_requests": len(requests), "pending_requests": 0, "approved_requests": 0, "rejected_requests": 0}
        review_hours = []
        for r in requests:
            if r.status == VerificationStatus.PENDING.value:
                stats["pending_requests"] += 1
            elif r.status == VerificationStatus.APPROVED.value:
                stats["approved_requests"] += 1
            elif r.status == VerificationStatus.REJECTED.value:
                stats["rejected_requests"] += 1
            if r.reviewed_at:
                review_hours.append((r.reviewed_at - r.submitted_at).total_seconds() / 3600)
        stats["average_review_time"] = sum(review_hours) / len(review_hours) if review_hours else 0
        return stats

    def expire_stale_requests(self) -> int:
        """Pending requests nobody reviewed within the window become expired."""
        cutoff = utcnow() - PENDING_TTL
        result = self.session.execute(
            update(VerificationRequest)
            .where(VerificationRequest.status == VerificationStatus.PENDING.value,
                   VerificationRequest.submitted_at < cutoff)
            .values(status=VerificationStatus.EXPIRED.value)
        )
        self.session.commit()
        logger.info("[verification] expired %d stale request(s)", result.rowcount)
        return result.rowcount

    def _notify(self, user_id: str, status: str, document_type: str, **kwargs) -> None:
        try:
            self.notifications.create_verification_notification(user_id, status, document_type, **kwargs)
        except Exception as e:
            self.session.rollback()
            logger.warning("[verification] notification failed for user=%s: %s", user_id, e)
