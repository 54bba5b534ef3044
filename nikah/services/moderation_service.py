"""Moderation Service - member reports, sanctions and the audit trail.

Interface Contract:
- submit_report(reporter_id, data) -> UserReport
- get_reports(filters, options) -> PaginatedResult
- take_moderation_action(report_id, moderator_id, action, resolution, ...) -> UserReport
- bulk_moderation_action(report_ids, action, moderator_id, resolution) -> int
- get_moderation_stats() -> dict
- All methods raise ModerationServiceError (or a NikahError subclass) on failure
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from nikah.db import utcnow
from nikah.errors import ErrorType, NikahError, NotFoundError
from nikah.models import (
    ModerationAction,
    ModerationHistory,
    NotificationPriority,
    NotificationType,
    ReportPriority,
    ReportStatus,
    UserProfile,
    UserReport,
    UserSuspension,
)
from nikah.pagination import PaginatedResult, PaginationOptions, paginate_with_count
from nikah.services.notification_service import NotificationService
from nikah.validation import sanitize_search_query, sanitize_text

logger = logging.getLogger(__name__)

CRITICAL_CATEGORIES = ("violence_threats", "underage", "hate_speech")
HIGH_CATEGORIES = ("harassment", "scam_fraud", "fake_profile")
RESOLUTION_SAMPLE = 100
BULK_ACTIONS = ("resolve", "dismiss", "escalate")


class ModerationServiceError(NikahError):
    """Raised when moderation service fails."""
    error_type = ErrorType.BUSINESS_LOGIC


@dataclass
class ReportFilters:
    status: str | None = None
    category: str | None = None
    priority: str | None = None
    reviewer_id: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


def determine_priority(category: str) -> str:
    if category in CRITICAL_CATEGORIES:
        return ReportPriority.CRITICAL.value
    if category in HIGH_CATEGORIES:
        return ReportPriority.HIGH.value
    return ReportPriority.MEDIUM.value


class ModerationService:
    """Report handling for one database session."""

    def __init__(self, session: Session, notifications: NotificationService | None = None):
        self.session = session
        self.notifications = notifications or NotificationService(session)

    def _profile(self, user_id: str) -> UserProfile | None:
        return self.session.scalars(select(UserProfile).where(UserProfile.user_id == user_id)).first()

    def _history(self, report_id: str, action: str, performed_by: str, details: str, *,
                 performer_name: str = "", previous_status: str | None = None,
                 new_status: str | None = None) -> None:
        self.session.add(ModerationHistory(
            report_id=report_id,
            action=action,
            performed_by=performed_by,
            performer_name=performer_name,
            details=details,
            previous_status=previous_status,
            new_status=new_status,
            timestamp=utcnow(),
        ))

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def submit_report(self, reporter_id: str, data: BaseModel | dict[str, Any]) -> UserReport:
        if isinstance(data, BaseModel):
            data = data.model_dump()
        if data["reported_user_id"] == reporter_id:
            raise ModerationServiceError("You cannot report yourself", error_type=ErrorType.VALIDATION)

        reporter = self._profile(reporter_id)
        reported = self._profile(data["reported_user_id"])
        now = utcnow()
        report = UserReport(
            reporter_id=reporter_id,
            reporter_name=reporter.name if reporter else "Unknown",
            reported_user_id=data["reported_user_id"],
            reported_user_name=reported.name if reported else "Unknown",
            category=data["category"],
            reason=sanitize_text(data["reason"], max_length=255),
            description=sanitize_text(data.get("description") or ""),
            evidence=list(data.get("evidence") or []),
            status=ReportStatus.PENDING.value,
            priority=determine_priority(data["category"]),
            is_anonymous=bool(data.get("is_anonymous", False)),
            created_at=now,
            updated_at=now,
        )
        self.session.add(report)
        self.session.flush()
        self._history(
            report.id, "report_submitted", reporter_id, f"Report submitted for {report.category}",
            performer_name=report.reporter_name, new_status=report.status,
        )
        self.session.commit()

        if report.priority in (ReportPriority.HIGH.value, ReportPriority.CRITICAL.value):
            logger.warning("[moderation] %s priority report id=%s category=%s", report.priority, report.id, report.category)
        else:
            logger.info("[moderation] report id=%s category=%s", report.id, report.category)
        return report

    def get_reports(self, filters: ReportFilters | None = None, options: PaginationOptions | None = None) -> PaginatedResult:
        filters = filters or ReportFilters()
        stmt = select(UserReport)
        if filters.status:
            stmt = stmt.where(UserReport.status == filters.status)
        if filters.category:
            stmt = stmt.where(UserReport.category == filters.category)
        if filters.priority:
            stmt = stmt.where(UserReport.priority == filters.priority)
        if filters.reviewer_id:
            stmt = stmt.where(UserReport.reviewed_by == filters.reviewer_id)
        if filters.date_from:
            stmt = stmt.where(UserReport.created_at >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(UserReport.created_at <= filters.date_to)
        options = options or PaginationOptions(order_by="created_at", order_direction="desc")
        return paginate_with_count(self.session, stmt, options)

    def get_report(self, report_id: str) -> UserReport:
        report = self.session.get(UserReport, report_id)
        if report is None:
            raise NotFoundError("Report not found")
        return report

    def search_reports(self, term: str) -> list[UserReport]:
        term = sanitize_search_query(term)
        if not term:
            return []
        return list(self.session.scalars(
            select(UserReport)
            .where(UserReport.reported_user_name.ilike(f"%{term}%"))
            .order_by(UserReport.created_at.desc())
        ))

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def take_moderation_action(
        self,
        report_id: str,
        moderator_id: str,
        action: str,
        resolution: str,
        *,
        notify_reporter: bool = False,
        notify_reported: bool = False,
        suspension_duration: int | None = None,
        moderator_name: str = "",
    ) -> UserReport:
        report = self.get_report(report_id)
        previous = report.status
        now = utcnow()

        report.status = ReportStatus.RESOLVED.value
        report.action_taken = action
        report.resolution = sanitize_text(resolution)
        report.reviewed_at = now
        report.reviewed_by = moderator_id
        report.updated_at = now

        self._apply_action(report, action, moderator_id, suspension_duration)
        self._history(
            report.id, f"action_taken_{action}", moderator_id, report.resolution,
            performer_name=moderator_name, previous_status=previous, new_status=report.status,
        )
        self.session.commit()
        logger.info("[moderation] %s on report=%s by %s", action, report.id, moderator_id)

        if notify_reporter:
            self._notify(
                report.reporter_id, "Report Update",
                f"Your report has been reviewed. Action taken: {action}",
                NotificationPriority.MEDIUM.value,
            )
        if notify_reported:
            self._notify(
                report.reported_user_id, "Account Action",
                "Action has been taken on your account due to a policy violation.",
                NotificationPriority.HIGH.value,
            )
        return report

    def _apply_action(self, report: UserReport, action: str, moderator_id: str, suspension_duration: int | None) -> None:
        target_id = report.reported_user_id
        if action == ModerationAction.PROFILE_SUSPENDED.value:
            if suspension_duration:
                self.suspend_user(target_id, report.resolution or "", suspension_duration, moderator_id,
                                  report_id=report.id, commit=False)
            return

        profile = self._profile(target_id)
        if profile is None:
            return
        if action == ModerationAction.ACCOUNT_BANNED.value:
            profile.is_banned = True
            profile.banned_at = utcnow()
            profile.is_active = False
        elif action == ModerationAction.VERIFICATION_REVOKED.value:
            profile.is_verified = False
        elif action == ModerationAction.PROFILE_RESTRICTED.value:
            profile.is_restricted = True

    def _notify(self, user_id: str, title: str, message: str, priority: str) -> None:
        try:
            self.notifications.create_notification(
                user_id, NotificationType.SYSTEM_ANNOUNCEMENT.value, title, message, priority=priority,
            )
        except Exception as e:
            self.session.rollback()
            logger.warning("[moderation] notification to user=%s failed: %s", user_id, e)

    def bulk_moderation_action(
        self,
        report_ids: list[str],
        action: str,
        moderator_id: str,
        resolution: str | None = None,
    ) -> int:
        if action not in BULK_ACTIONS:
            raise ModerationServiceError(f"Unknown bulk action: {action}", error_type=ErrorType.VALIDATION)

        reports = self.session.scalars(select(UserReport).where(UserReport.id.in_(report_ids))).all()
        now = utcnow()
        for report in reports:
            previous = report.status
            if action == "resolve":
                report.status = ReportStatus.RESOLVED.value
                report.resolution = resolution or "Bulk resolved"
                report.reviewed_at = now
                report.reviewed_by = moderator_id
            elif action == "dismiss":
                report.status = ReportStatus.DISMISSED.value
                report.resolution = resolution or "Bulk dismissed"
                report.reviewed_at = now
                report.reviewed_by = moderator_id
            else:
                report.status = ReportStatus.ESCALATED.value
                report.priority = ReportPriority.CRITICAL.value
            report.updated_at = now
            self._history(report.id, f"bulk_{action}", moderator_id, resolution or "",
                          previous_status=previous, new_status=report.status)
        self.session.commit()
        logger.info("[moderation] bulk %s on %d report(s)", action, len(reports))
        return len(reports)

    # ------------------------------------------------------------------
    # Suspensions
    # ------------------------------------------------------------------

    def suspend_user(
        self,
        user_id: str,
        reason: str,
        duration_days: int,
        moderator_id: str,
        *,
        report_id: str | None = None,
        commit: bool = True,
    ) -> UserSuspension:
        start = utcnow()
        end = start + timedelta(days=duration_days)
        suspension = UserSuspension(
            user_id=user_id,
            suspended_by=moderator_id,
            reason=reason,
            start_date=start,
            end_date=end,
            is_active=True,
            report_id=report_id,
        )
        self.session.add(suspension)
        profile = self._profile(user_id)
        if profile is not None:
            profile.is_suspended = True
            profile.suspension_end_date = end
        if commit:
            self.session.commit()
        logger.info("[moderation] suspended user=%s until %s", user_id, end.isoformat())
        return suspension

    def lift_expired_suspensions(self) -> int:
        now = utcnow()
        expired = self.session.scalars(
            select(UserSuspension).where(UserSuspension.is_active.is_(True), UserSuspension.end_date <= now)
        ).all()
        for suspension in expired:
            suspension.is_active = False
            profile = self._profile(suspension.user_id)
            if profile is not None and profile.suspension_end_date and profile.suspension_end_date <= now:
                profile.is_suspended = False
                profile.suspension_end_date = None
        self.session.commit()
        return len(expired)

    def get_user_suspensions(self, user_id: str | None = None) -> list[UserSuspension]:
        stmt = select(UserSuspension).order_by(UserSuspension.start_date.desc())
        if user_id:
            stmt = stmt.where(UserSuspension.user_id == user_id)
        return list(self.session.scalars(stmt))

    def get_moderation_history(self, report_id: str) -> list[ModerationHistory]:
        return list(self.session.scalars(
            select(ModerationHistory)
            .where(ModerationHistory.report_id == report_id)
            .order_by(ModerationHistory.timestamp.desc())
        ))

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_moderation_stats(self) -> dict[str, Any]:
        def count(*conditions) -> int:
            return self.session.scalar(select(func.count(UserReport.id)).where(*conditions)) or 0

        midnight = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        return {
            "total_reports": count(),
            "pending_reports": count(UserReport.status == ReportStatus.PENDING.value),
            "resolved_reports": count(UserReport.status == ReportStatus.RESOLVED.value),
            "dismissed_reports": count(UserReport.status == ReportStatus.DISMISSED.value),
            "critical_reports": count(UserReport.priority == ReportPriority.CRITICAL.value),
            "active_suspensions": self.session.scalar(
                select(func.count(UserSuspension.id)).where(UserSuspension.is_active.is_(True))
            ) or 0,
            "today_reports": count(UserReport.created_at >= midnight),
            "avg_resolution_time": self._average_resolution_hours(),
        }

    def _average_resolution_hours(self) -> int:
        reports = self.session.scalars(
            select(UserReport)
            .where(UserReport.status == ReportStatus.RESOLVED.value, UserReport.reviewed_at.is_not(None))
            .limit(RESOLUTION_SAMPLE)
        ).all()
        if not reports:
            return 0
        total = sum((r.reviewed_at - r.created_at).total_seconds() for r in reports)
        return round(total / len(reports) / 3600)
