"""InterestService unit tests.

Tests cover:
- Sending with validation (self, duplicates, daily limit, message rules)
- Responding, withdrawing and permission checks
- History filters, stats and cleanup
- Notifications and mutual-match creation as side effects
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from nikah.db import utcnow
from nikah.errors import ErrorType, NotFoundError, PermissionDeniedError, ValidationFailedError
from nikah.models import Interest, LearningData, MutualMatch, Notification
from nikah.services.interest_service import (
    DailyLimitError,
    InterestFilters,
    InterestService,
    InterestServiceError,
    validate_interest_message,
)
from nikah.services.recommendation_service import load_learning_data, save_learning_data


@pytest.fixture
def service(session, notifications) -> InterestService:
    return InterestService(session, notifications)


def notifications_for(session, user_id):
    return session.scalars(select(Notification).where(Notification.user_id == user_id)).all()


# ============================================================================
# Sending
# ============================================================================

class TestSendInterest:
    """Test InterestService.send_interest()."""

    def test_send_creates_pending_interest(self, service, bride, groom):
        """Test a new interest is pending and expires in 30 days."""
        interest = service.send_interest("user_groom", "user_bride", message="Assalamu alaikum, I liked your profile")

        assert interest.status == "pending"
        assert interest.type == "proposal"
        assert interest.is_read is False
        assert (interest.expires_at - interest.sent_at).days == 30

    def test_send_notifies_receiver(self, service, session, bride, groom):
        """Test the receiver gets a high priority notification naming the sender."""
        service.send_interest("user_groom", "user_bride")

        [notification] = notifications_for(session, "user_bride")
        assert notification.type == "new_interest"
        assert notification.priority == "high"
        assert "Imran Ahmad" in notification.message
        assert notification.meta["sender_location"] == "Madhubani"

    def test_cannot_send_to_self(self, service, groom):
        with pytest.raises(InterestServiceError) as exc_info:
            service.send_interest("user_groom", "user_groom")

        assert "yourself" in str(exc_info.value)

    def test_unknown_receiver(self, service, session, bride):
        """Test nothing is stored for a receiver without a profile."""
        with pytest.raises(NotFoundError):
            service.send_interest("user_bride", "no_such_user")

        assert session.scalars(select(Interest)).all() == []
        assert notifications_for(session, "no_such_user") == []

    def test_inactive_receiver(self, service, session, bride, groom):
        bride.is_active = False
        session.commit()

        with pytest.raises(NotFoundError):
            service.send_interest("user_groom", "user_bride")

    @pytest.mark.parametrize("flag", ["is_suspended", "is_restricted"])
    def test_sanctioned_sender_blocked(self, service, session, bride, groom, flag):
        setattr(groom, flag, True)
        session.commit()

        with pytest.raises(PermissionDeniedError):
            service.send_interest("user_groom", "user_bride")

        assert session.scalars(select(Interest)).all() == []

    def test_duplicate_pending_rejected(self, service, bride, groom):
        service.send_interest("user_groom", "user_bride")

        with pytest.raises(InterestServiceError) as exc_info:
            service.send_interest("user_groom", "user_bride")

        assert "already sent" in str(exc_info.value)

    def test_can_resend_after_decline(self, service, bride, groom):
        """Test declined interests do not block a new one."""
        first = service.send_interest("user_groom", "user_bride")
        service.respond_to_interest("user_bride", first.id, "declined")

        second = service.send_interest("user_groom", "user_bride")

        assert second.id != first.id

    def test_daily_limit(self, service, session, bride, groom):
        """Test the eleventh interest of the day is refused with a rate-limit error."""
        for i in range(10):
            session.add(Interest(sender_id="user_groom", receiver_id=f"other_{i}", sent_at=utcnow()))
        session.commit()

        with pytest.raises(DailyLimitError) as exc_info:
            service.send_interest("user_groom", "user_bride")

        assert exc_info.value.error_type == ErrorType.RATE_LIMIT
        assert exc_info.value.status_code == 429
        assert "Daily interest limit" in exc_info.value.user_message

    def test_yesterdays_interests_do_not_count(self, service, session, bride, groom):
        yesterday = utcnow() - timedelta(days=1, hours=1)
        for i in range(10):
            session.add(Interest(sender_id="user_groom", receiver_id=f"other_{i}", sent_at=yesterday))
        session.commit()

        assert service.send_interest("user_groom", "user_bride").status == "pending"

    def test_notification_failure_is_not_fatal(self, session, bride, groom):
        """Test a failing notification still leaves the interest saved."""
        class BrokenNotifications:
            def create_interest_notification(self, *args, **kwargs):
                raise RuntimeError("notification store down")

        service = InterestService(session, BrokenNotifications())

        interest = service.send_interest("user_groom", "user_bride")

        assert session.get(Interest, interest.id) is not None


class TestInterestMessage:
    """Test validate_interest_message()."""

    def test_blank_message_is_none(self):
        assert validate_interest_message("   ") is None

    def test_short_message(self):
        with pytest.raises(ValidationFailedError):
            validate_interest_message("Hi there")

    @pytest.mark.parametrize("message", [
        "Please share your phone so we can talk",
        "Message me on WhatsApp after Isha",
    ])
    def test_contact_details_rejected(self, message):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_interest_message(message)

        assert exc_info.value.errors[0]["code"] == "CONTACT_INFO"

    def test_message_sanitised(self):
        assert validate_interest_message("<b>Assalamu alaikum</b> from Rajnagar") == "Assalamu alaikum from Rajnagar"


# ============================================================================
# Responding
# ============================================================================

class TestRespondToInterest:
    """Test responses and withdrawals."""

    def test_accept(self, service, session, bride, groom):
        interest = service.send_interest("user_groom", "user_bride")

        result = service.respond_to_interest("user_bride", interest.id, "accepted")

        assert result.status == "accepted"
        assert result.responded_at is not None
        [notification] = notifications_for(session, "user_groom")
        assert notification.type == "interest_accepted"
        assert "Ayesha Khatoon" in notification.message

    def test_accept_counts_towards_success_rate(self, service, session, bride, groom):
        """Test acceptance bumps the sender's learned success counters."""
        save_learning_data(session, LearningData(user_id="user_groom", sent_interests=2))
        interest = service.send_interest("user_groom", "user_bride")

        service.respond_to_interest("user_bride", interest.id, "accepted")

        learning = load_learning_data(session, "user_groom")
        assert learning.accepted_interests == 1
        assert learning.success_rate == 0.5
        assert load_learning_data(session, "user_bride") is None

    def test_first_acceptance_starts_learning_data(self, service, session, bride, groom):
        interest = service.send_interest("user_groom", "user_bride")

        service.respond_to_interest("user_bride", interest.id, "accepted")

        learning = load_learning_data(session, "user_groom")
        assert learning.accepted_interests == 1
        assert learning.locations == ["Madhubani"]

    def test_decline_leaves_learning_data(self, service, session, bride, groom):
        interest = service.send_interest("user_groom", "user_bride")

        service.respond_to_interest("user_bride", interest.id, "declined")

        assert load_learning_data(session, "user_groom") is None

    def test_decline_notifies_sender(self, service, session, bride, groom):
        interest = service.send_interest("user_groom", "user_bride")

        service.respond_to_interest("user_bride", interest.id, "declined")

        [notification] = notifications_for(session, "user_groom")
        assert notification.type == "interest_declined"
        assert notification.priority == "medium"

    def test_only_receiver_may_respond(self, service, bride, groom):
        interest = service.send_interest("user_groom", "user_bride")

        with pytest.raises(PermissionDeniedError):
            service.respond_to_interest("user_groom", interest.id, "accepted")

    def test_cannot_respond_twice(self, service, bride, groom):
        interest = service.send_interest("user_groom", "user_bride")
        service.respond_to_interest("user_bride", interest.id, "accepted")

        with pytest.raises(InterestServiceError):
            service.respond_to_interest("user_bride", interest.id, "declined")

    def test_invalid_response(self, service, bride, groom):
        interest = service.send_interest("user_groom", "user_bride")

        with pytest.raises(ValidationFailedError):
            service.respond_to_interest("user_bride", interest.id, "maybe")

    def test_unknown_interest(self, service):
        with pytest.raises(NotFoundError):
            service.respond_to_interest("user_bride", "missing", "accepted")

    def test_mutual_acceptance_creates_match(self, service, session, bride, groom):
        """Test both sides accepting creates exactly one mutual match."""
        first = service.send_interest("user_groom", "user_bride")
        second = service.send_interest("user_bride", "user_groom")
        service.respond_to_interest("user_bride", first.id, "accepted")
        assert session.scalars(select(MutualMatch)).all() == []

        service.respond_to_interest("user_groom", second.id, "accepted")

        [match] = session.scalars(select(MutualMatch)).all()
        # base 70 + fast replies 10
        assert match.ai_match_score == 80
        types = {n.type for n in notifications_for(session, "user_bride")}
        assert "new_match" in types

    def test_withdraw(self, service, bride, groom):
        interest = service.send_interest("user_groom", "user_bride")

        result = service.withdraw_interest("user_groom", interest.id)

        assert result.status == "withdrawn"
        assert result.withdrawn_at is not None

    def test_only_sender_may_withdraw(self, service, bride, groom):
        interest = service.send_interest("user_groom", "user_bride")

        with pytest.raises(PermissionDeniedError):
            service.withdraw_interest("user_bride", interest.id)

    def test_cannot_withdraw_answered(self, service, bride, groom):
        interest = service.send_interest("user_groom", "user_bride")
        service.respond_to_interest("user_bride", interest.id, "declined")

        with pytest.raises(InterestServiceError):
            service.withdraw_interest("user_groom", interest.id)


# ============================================================================
# Queries
# ============================================================================

class TestInterestQueries:
    """Test history, stats and housekeeping."""

    def test_sent_and_received(self, service, bride, groom, other_groom):
        service.send_interest("user_groom", "user_bride")
        service.send_interest("user_groom2", "user_bride")

        received = service.get_received_interests("user_bride")
        sent = service.get_sent_interests("user_groom")

        assert received.total_count == 2
        assert sent.total_count == 1
        assert not received.has_more

    def test_status_filter(self, service, bride, groom, other_groom):
        first = service.send_interest("user_groom", "user_bride")
        service.send_interest("user_groom2", "user_bride")
        service.respond_to_interest("user_bride", first.id, "accepted")

        history = service.get_received_interests("user_bride", InterestFilters(status=["accepted"]))

        assert [i.id for i in history.interests] == [first.id]

    def test_has_more_when_page_full(self, service, bride, groom, other_groom):
        service.send_interest("user_groom", "user_bride")
        service.send_interest("user_groom2", "user_bride")

        history = service.get_received_interests("user_bride", InterestFilters(limit=1))

        assert len(history.interests) == 1
        assert history.has_more
        assert history.to_dict()["total_count"] == 2

    def test_get_interest_participants_only(self, service, bride, groom, other_groom):
        interest = service.send_interest("user_groom", "user_bride")

        assert service.get_interest("user_bride", interest.id).id == interest.id
        with pytest.raises(PermissionDeniedError):
            service.get_interest("user_groom2", interest.id)

    def test_mark_as_read_and_unread_count(self, service, bride, groom):
        interest = service.send_interest("user_groom", "user_bride")
        assert service.get_unread_interests_count("user_bride") == 1

        service.mark_interest_as_read("user_bride", interest.id)

        assert service.get_unread_interests_count("user_bride") == 0

    def test_mutual_interests(self, service, bride, groom):
        first = service.send_interest("user_groom", "user_bride")
        second = service.send_interest("user_bride", "user_groom")
        service.respond_to_interest("user_bride", first.id, "accepted")
        service.respond_to_interest("user_groom", second.id, "accepted")

        [mutual] = service.get_mutual_interests("user_groom")

        assert mutual.other_user_id == "user_bride"
        assert mutual.matched_at is not None

    def test_stats(self, service, bride, groom, other_groom):
        first = service.send_interest("user_groom", "user_bride")
        service.send_interest("user_groom2", "user_bride")
        service.respond_to_interest("user_bride", first.id, "accepted")

        bride_stats = service.get_interest_stats("user_bride")
        groom_stats = service.get_interest_stats("user_groom")

        assert bride_stats["total_received"] == 2
        assert bride_stats["response_rate"] == 50
        assert bride_stats["pending_received"] == 1
        assert groom_stats["success_rate"] == 100
        assert groom_stats["mutual_interests"] == 0

    def test_cleanup_expired(self, service, session, bride, groom):
        interest = service.send_interest("user_groom", "user_bride")
        interest.expires_at = utcnow() - timedelta(days=1)
        session.commit()

        assert service.cleanup_expired_interests() == 1
        session.refresh(interest)
        assert interest.status == "expired"
        assert service.cleanup_expired_interests() == 0
