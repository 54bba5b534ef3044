"""VerificationService unit tests."""

from datetime import timedelta

import pytest

from nikah.db import utcnow
from nikah.errors import NotFoundError, ValidationFailedError
from nikah.services.verification_service import VerificationService, VerificationServiceError


@pytest.fixture
def service(session, notifications) -> VerificationService:
    return VerificationService(session, notifications)


class TestSubmit:
    """Test submitting verification requests."""

    def test_create_pending(self, service, notifications, groom):
        request = service.create_verification_request("user_groom", "aadhaar", "doc-1")

        assert request.status == "pending"
        [notification] = notifications.get_user_notifications("user_groom").notifications
        assert notification.type == "verification_update"
        assert notification.priority == "medium"

    def test_unknown_document(self, service):
        with pytest.raises(ValidationFailedError):
            service.create_verification_request("user_groom", "library_card")

    def test_one_pending_at_a_time(self, service):
        service.create_verification_request("user_groom", "pan")

        with pytest.raises(VerificationServiceError):
            service.create_verification_request("user_groom", "aadhaar")

    def test_status_levels(self, service):
        assert service.get_user_verification_status("user_groom")["verification_level"] == "none"

        request = service.create_verification_request("user_groom", "pan")
        assert service.get_user_verification_status("user_groom")["verification_level"] == "pending"

        service.review_verification_request(request.id, "admin_1", "approved")
        status = service.get_user_verification_status("user_groom")
        assert status["is_verified"] is True
        assert status["latest_request"]["id"] == request.id


class TestReview:
    """Test reviewing requests."""

    def test_approve_marks_profile(self, service, session, groom):
        request = service.create_verification_request("user_groom", "passport")

        service.review_verification_request(request.id, "admin_1", "approved", notes="Looks good")

        session.refresh(groom)
        assert groom.is_verified is True
        assert request.reviewed_by == "admin_1"
        assert request.review_notes == "Looks good"

    def test_reject_needs_reason(self, service):
        request = service.create_verification_request("user_groom", "pan")

        with pytest.raises(ValidationFailedError):
            service.review_verification_request(request.id, "admin_1", "rejected")

    def test_reject_notifies_with_reason(self, service, notifications, session, groom):
        request = service.create_verification_request("user_groom", "pan")

        service.review_verification_request(request.id, "admin_1", "rejected", rejection_reason="Name mismatch")

        session.refresh(groom)
        assert groom.is_verified is False
        messages = [n.message for n in notifications.get_user_notifications("user_groom").notifications]
        assert "Your pan verification was rejected: Name mismatch" in messages

    def test_cannot_review_twice(self, service):
        request = service.create_verification_request("user_groom", "pan")
        service.review_verification_request(request.id, "admin_1", "approved")

        with pytest.raises(VerificationServiceError):
            service.review_verification_request(request.id, "admin_1", "approved")

    def test_unknown_request(self, service):
        with pytest.raises(NotFoundError):
            service.review_verification_request("missing", "admin_1", "approved")

    def test_invalid_decision(self, service):
        with pytest.raises(ValidationFailedError):
            service.review_verification_request("missing", "admin_1", "maybe")


class TestQueue:
    """Test the review queue, stats and expiry."""

    def test_pending_queue(self, service):
        first = service.create_verification_request("a", "pan")
        service.create_verification_request("b", "aadhaar")
        service.review_verification_request(first.id, "admin_1", "approved")

        pending = service.list_pending_requests()

        assert [r.user_id for r in pending.data] == ["b"]
        assert pending.pagination.total == 1

    def test_stats(self, service):
        first = service.create_verification_request("a", "pan")
        second = service.create_verification_request("b", "pan")
        service.create_verification_request("c", "pan")
        service.review_verification_request(first.id, "admin_1", "approved")
        service.review_verification_request(second.id, "admin_1", "rejected", rejection_reason="Blurry")

        stats = service.get_verification_stats()

        assert stats["total_requests"] == 3
        assert stats["pending_requests"] == 1
        assert stats["approved_requests"] == 1
        assert stats["rejected_requests"] == 1
        assert stats["average_review_time"] >= 0

    def test_expire_stale(self, service, session):
        stale = service.create_verification_request("a", "pan")
        service.create_verification_request("b", "pan")
        stale.submitted_at = utcnow() - timedelta(days=31)
        session.commit()

        assert service.expire_stale_requests() == 1

        session.refresh(stale)
        assert stale.status == "expired"
        assert service.get_verification_stats()["rejected_requests"] == 0
