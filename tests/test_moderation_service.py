"""ModerationService unit tests.

Tests cover:
- Report submission, priority and the audit trail
- Single and bulk moderation actions with their side effects
- Suspensions and their expiry
- Moderation statistics
"""

from datetime import timedelta

import pytest

from nikah.db import utcnow
from nikah.errors import ErrorType, NotFoundError
from nikah.pagination import PaginationOptions
from nikah.services.moderation_service import (
    ModerationService,
    ModerationServiceError,
    ReportFilters,
    determine_priority,
)


@pytest.fixture
def service(session, notifications) -> ModerationService:
    return ModerationService(session, notifications)


def report_data(**overrides) -> dict:
    data = {
        "reported_user_id": "user_groom",
        "category": "spam",
        "reason": "Sends the same message to everyone",
        "description": "Copy-pasted proposal <b>again</b>",
    }
    data.update(overrides)
    return data


# ============================================================================
# Reports
# ============================================================================

class TestSubmitReport:
    """Test ModerationService.submit_report()."""

    @pytest.mark.parametrize("category,priority", [
        ("violence_threats", "critical"),
        ("underage", "critical"),
        ("harassment", "high"),
        ("fake_profile", "high"),
        ("spam", "medium"),
        ("other", "medium"),
    ])
    def test_priority_by_category(self, category, priority):
        assert determine_priority(category) == priority

    def test_submit(self, service, bride, groom):
        report = service.submit_report("user_bride", report_data())

        assert report.status == "pending"
        assert report.priority == "medium"
        assert report.reporter_name == "Ayesha Khatoon"
        assert report.reported_user_name == "Imran Ahmad"
        assert report.description == "Copy-pasted proposal again"

    def test_history_entry(self, service, bride, groom):
        report = service.submit_report("user_bride", report_data())

        [entry] = service.get_moderation_history(report.id)
        assert entry.action == "report_submitted"
        assert entry.new_status == "pending"

    def test_unknown_users(self, service):
        report = service.submit_report("someone", report_data(reported_user_id="ghost"))

        assert report.reporter_name == "Unknown"
        assert report.reported_user_name == "Unknown"

    def test_cannot_report_self(self, service, bride):
        with pytest.raises(ModerationServiceError) as exc_info:
            service.submit_report("user_bride", report_data(reported_user_id="user_bride"))

        assert exc_info.value.error_type == ErrorType.VALIDATION

    def test_filters_and_search(self, service, bride, groom, other_groom):
        service.submit_report("user_bride", report_data())
        service.submit_report("user_bride", report_data(reported_user_id="user_groom2", category="harassment"))

        high = service.get_reports(ReportFilters(priority="high"))
        everything = service.get_reports(options=PaginationOptions(limit=1))

        assert [r.reported_user_id for r in high.data] == ["user_groom2"]
        assert everything.pagination.total == 2
        assert everything.pagination.has_next_page
        assert [r.reported_user_name for r in service.search_reports("salman")] == ["Salman Raza"]
        assert service.search_reports("  ") == []

    def test_missing_report(self, service):
        with pytest.raises(NotFoundError):
            service.get_report("missing")


# ============================================================================
# Actions
# ============================================================================

class TestModerationActions:
    """Test take_moderation_action() and bulk actions."""

    def test_ban(self, service, session, bride, groom):
        report = service.submit_report("user_bride", report_data())

        result = service.take_moderation_action(report.id, "admin_1", "account_banned", "Repeated spam")

        assert result.status == "resolved"
        assert result.action_taken == "account_banned"
        assert result.reviewed_by == "admin_1"
        session.refresh(groom)
        assert groom.is_banned is True
        assert groom.is_active is False
        assert groom.banned_at is not None

    def test_suspend(self, service, session, bride, groom):
        report = service.submit_report("user_bride", report_data())

        service.take_moderation_action(report.id, "admin_1", "profile_suspended", "Cooling off", suspension_duration=7)

        [suspension] = service.get_user_suspensions("user_groom")
        assert suspension.report_id == report.id
        assert (suspension.end_date - suspension.start_date).days == 7
        session.refresh(groom)
        assert groom.is_suspended is True

    def test_revoke_and_restrict(self, service, session, bride, groom):
        groom.is_verified = True
        session.commit()
        first = service.submit_report("user_bride", report_data())
        second = service.submit_report("user_bride", report_data(category="fake_profile"))

        service.take_moderation_action(first.id, "admin_1", "verification_revoked", "Documents forged")
        service.take_moderation_action(second.id, "admin_1", "profile_restricted", "Limited")

        session.refresh(groom)
        assert groom.is_verified is False
        assert groom.is_restricted is True

    def test_notifications(self, service, notifications, bride, groom):
        report = service.submit_report("user_bride", report_data())

        service.take_moderation_action(report.id, "admin_1", "warning_sent", "Warned", notify_reporter=True, notify_reported=True)

        [to_reporter] = notifications.get_user_notifications("user_bride").notifications
        [to_reported] = notifications.get_user_notifications("user_groom").notifications
        assert "warning_sent" in to_reporter.message
        assert to_reported.priority == "high"

    def test_history_records_transition(self, service, bride, groom):
        report = service.submit_report("user_bride", report_data())
        service.take_moderation_action(report.id, "admin_1", "no_action", "Not a violation")

        actions = {h.action: h for h in service.get_moderation_history(report.id)}

        assert actions["action_taken_no_action"].previous_status == "pending"
        assert actions["action_taken_no_action"].new_status == "resolved"

    def test_bulk_dismiss(self, service, bride, groom):
        ids = [service.submit_report("user_bride", report_data()).id for _ in range(3)]

        assert service.bulk_moderation_action(ids[:2], "dismiss", "admin_1") == 2

        assert service.get_report(ids[0]).status == "dismissed"
        assert service.get_report(ids[0]).resolution == "Bulk dismissed"
        assert service.get_report(ids[2]).status == "pending"

    def test_bulk_escalate(self, service, bride, groom):
        report = service.submit_report("user_bride", report_data())

        service.bulk_moderation_action([report.id], "escalate", "admin_1")

        escalated = service.get_report(report.id)
        assert escalated.status == "escalated"
        assert escalated.priority == "critical"

    def test_bulk_unknown_action(self, service):
        with pytest.raises(ModerationServiceError):
            service.bulk_moderation_action(["x"], "delete", "admin_1")


# ============================================================================
# Suspensions & stats
# ============================================================================

class TestSuspensionsAndStats:
    """Test suspension expiry and stats."""

    def test_lift_expired(self, service, session, groom):
        suspension = service.suspend_user("user_groom", "Spam", 3, "admin_1")
        suspension.end_date = utcnow() - timedelta(minutes=1)
        groom.suspension_end_date = suspension.end_date
        session.commit()

        assert service.lift_expired_suspensions() == 1

        session.refresh(groom)
        assert groom.is_suspended is False
        assert service.lift_expired_suspensions() == 0

    def test_active_suspension_untouched(self, service, groom):
        service.suspend_user("user_groom", "Spam", 3, "admin_1")

        assert service.lift_expired_suspensions() == 0

    def test_stats(self, service, bride, groom):
        first = service.submit_report("user_bride", report_data())
        service.submit_report("user_bride", report_data(category="hate_speech"))
        service.take_moderation_action(first.id, "admin_1", "profile_suspended", "Break", suspension_duration=1)

        stats = service.get_moderation_stats()

        assert stats["total_reports"] == 2
        assert stats["pending_reports"] == 1
        assert stats["resolved_reports"] == 1
        assert stats["critical_reports"] == 1
        assert stats["active_suspensions"] == 1
        assert stats["today_reports"] == 2
        assert stats["avg_resolution_time"] == 0
