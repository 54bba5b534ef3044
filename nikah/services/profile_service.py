"""Profile Service - matrimony profiles, search and photo privacy.

This module handles:
- Creating and updating profiles (age from date of birth, sanitised text)
- Filtered and free-text search ordered by last activity
- Visibility rules and the blurred-photo reveal after mutual interest

Interface Contract:
- create_profile(user_id, data) -> UserProfile
- get_profile(user_id) -> UserProfile | None
- update_profile(user_id, updates) -> UserProfile
- search_profiles(filters) -> SearchResult
- check_photo_permission(viewer_id, owner_user_id, viewer_role) -> PhotoViewPermission
- All methods raise ProfileServiceError (or a NikahError subclass) on failure
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from pydantic import BaseModel
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from nikah.db import utcnow
from nikah.errors import ErrorType, NikahError, NotFoundError, PermissionDeniedError, ValidationFailedError
from nikah.models import Interest, InterestStatus, PartnerPreferences, ProfileVisibility, UserProfile
from nikah.models.profile import STAFF_ROLES
from nikah.services.notification_service import NotificationService
from nikah.validation import MAX_AGE, MIN_AGE, calculate_age, sanitize_search_query, sanitize_text

logger = logging.getLogger(__name__)

COMPLETE_THRESHOLD = 80
DEFAULT_SEARCH_LIMIT = 20
MAX_SEARCH_LIMIT = 100

REQUIRED_FIELDS = ("name", "age", "gender", "district", "education", "occupation", "sect", "bio", "family_background")
OPTIONAL_FIELDS = ("profile_picture_id", "block", "village", "skills", "sub_sect", "biradari", "family_type")

SANITISED_FIELDS = ("name", "village", "biradari", "religious_practice", "family_background", "bio")

DISTRICT_NEIGHBOURS = {
    "Madhubani": ["Madhubani", "Darbhanga", "Sitamarhi", "Samastipur"],
    "Darbhanga": ["Darbhanga", "Madhubani", "Samastipur", "Muzaffarpur"],
    "Sitamarhi": ["Sitamarhi", "Madhubani", "Muzaffarpur"],
    "Samastipur": ["Samastipur", "Madhubani", "Darbhanga", "Muzaffarpur"],
    "Muzaffarpur": ["Muzaffarpur", "Darbhanga", "Sitamarhi", "Samastipur"],
}


class ProfileServiceError(NikahError):
    """Raised when profile service fails."""
    error_type = ErrorType.BUSINESS_LOGIC


@dataclass
class SearchFilters:
    gender: str | None = None
    age_min: int | None = None
    age_max: int | None = None
    districts: list[str] | None = None
    education_levels: list[str] | None = None
    sects: list[str] | None = None
    occupations: list[str] | None = None
    marital_status: list[str] | None = None
    is_verified: bool | None = None
    is_active: bool = True
    has_photo: bool | None = None
    exclude_user_ids: list[str] = field(default_factory=list)
    limit: int = DEFAULT_SEARCH_LIMIT
    offset: int = 0


@dataclass
class SearchResult:
    profiles: list[UserProfile]
    total: int
    has_more: bool


@dataclass
class PhotoViewPermission:
    viewer_id: str
    profile_owner_id: str
    can_view_original: bool
    reason: str  # owner, admin, unblurred, mutual_interest, restricted


def calculate_profile_completion(profile: UserProfile | dict[str, Any]) -> int:
    """Required fields carry 70% of the score, optional ones 30%."""
    def filled(name: str) -> bool:
        value = profile.get(name) if isinstance(profile, dict) else getattr(profile, name, None)
        if value is None:
            return False
        if isinstance(value, (list, tuple)):
            return len(value) > 0
        return len(str(value).strip()) > 0

    required = sum(1 for name in REQUIRED_FIELDS if filled(name))
    optional = sum(1 for name in OPTIONAL_FIELDS if filled(name))
    return round(required / len(REQUIRED_FIELDS) * 70 + optional / len(OPTIONAL_FIELDS) * 30)


def nearby_districts(district: str) -> list[str]:
    return DISTRICT_NEIGHBOURS.get(district, [district])


def opposite_gender(gender: str) -> str:
    return "female" if gender == "male" else "male"


def _age_from(date_of_birth: date) -> int:
    age = calculate_age(date_of_birth)
    if age < MIN_AGE or age > MAX_AGE:
        raise ValidationFailedError(f"Age must be between {MIN_AGE} and {MAX_AGE} years")
    return age


class ProfileService:
    """Profile CRUD and search for one database session."""

    def __init__(self, session: Session, notifications: NotificationService | None = None):
        self.session = session
        self.notifications = notifications or NotificationService(session)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_profile(self, user_id: str, data: BaseModel | dict[str, Any]) -> UserProfile:
        if isinstance(data, BaseModel):
            data = data.model_dump()
        if self.get_profile(user_id) is not None:
            raise ProfileServiceError("A profile already exists for this account")

        values = dict(data)
        looking_for = values.pop("looking_for", None)
        for name in SANITISED_FIELDS:
            if values.get(name):
                values[name] = sanitize_text(values[name])
        values["skills"] = [sanitize_text(s) for s in values.get("skills") or []]

        now = utcnow()
        profile = UserProfile(
            user_id=user_id,
            age=_age_from(values["date_of_birth"]),
            looking_for=PartnerPreferences.from_dict(looking_for).to_dict() if looking_for else None,
            is_photo_blurred=True,
            profile_visibility=ProfileVisibility.MEMBERS.value,
            is_verified=False,
            is_active=True,
            profile_view_count=0,
            created_at=now,
            updated_at=now,
            last_active_at=now,
            **values,
        )
        profile.is_profile_complete = calculate_profile_completion(profile) >= COMPLETE_THRESHOLD
        self.session.add(profile)
        self.session.commit()
        logger.info("[profile] created id=%s user=%s", profile.id, user_id)
        return profile

    def get_profile(self, user_id: str) -> UserProfile | None:
        return self.session.scalars(select(UserProfile).where(UserProfile.user_id == user_id)).first()

    def get_profile_by_id(self, profile_id: str) -> UserProfile | None:
        return self.session.get(UserProfile, profile_id)

    def require_profile(self, user_id: str) -> UserProfile:
        profile = self.get_profile(user_id)
        if profile is None:
            raise NotFoundError("Profile not found")
        return profile

    def update_profile(self, user_id: str, updates: BaseModel | dict[str, Any]) -> UserProfile:
        if isinstance(updates, BaseModel):
            updates = updates.model_dump(exclude_unset=True)
        profile = self.require_profile(user_id)

        values = dict(updates)
        if values.get("date_of_birth"):
            values["age"] = _age_from(values["date_of_birth"])
        for name in SANITISED_FIELDS:
            if values.get(name):
                values[name] = sanitize_text(values[name])
        if values.get("skills") is not None:
            values["skills"] = [sanitize_text(s) for s in values["skills"]]
        if values.get("looking_for") is not None:
            values["looking_for"] = PartnerPreferences.from_dict(values["looking_for"]).to_dict()

        for key, value in values.items():
            if not hasattr(UserProfile, key) or key in ("id", "user_id", "created_at"):
                continue
            setattr(profile, key, value)

        now = utcnow()
        profile.updated_at = now
        profile.last_active_at = now
        profile.is_profile_complete = calculate_profile_completion(profile) >= COMPLETE_THRESHOLD
        self.session.commit()
        logger.info("[profile] updated user=%s fields=%s", user_id, sorted(values))
        return profile

    def delete_profile(self, user_id: str) -> None:
        profile = self.require_profile(user_id)
        self.session.delete(profile)
        self.session.commit()
        logger.info("[profile] deleted user=%s", user_id)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _filtered(self, filters: SearchFilters):
        stmt = select(UserProfile).where(UserProfile.is_active.is_(filters.is_active is not False))
        if filters.is_active is not False:
            # Suspended or restricted members drop out of search and recommendations
            stmt = stmt.where(
                UserProfile.is_suspended.is_not(True),
                UserProfile.is_restricted.is_not(True),
                UserProfile.is_banned.is_not(True),
            )
        if filters.gender:
            stmt = stmt.where(UserProfile.gender == filters.gender)
        if filters.age_min is not None:
            stmt = stmt.where(UserProfile.age >= filters.age_min)
        if filters.age_max is not None:
            stmt = stmt.where(UserProfile.age <= filters.age_max)
        if filters.districts:
            stmt = stmt.where(UserProfile.district.in_(filters.districts))
        if filters.education_levels:
            stmt = stmt.where(UserProfile.education.in_(filters.education_levels))
        if filters.sects:
            stmt = stmt.where(UserProfile.sect.in_(filters.sects))
        if filters.occupations:
            stmt = stmt.where(UserProfile.occupation.in_(filters.occupations))
        if filters.marital_status:
            stmt = stmt.where(UserProfile.marital_status.in_(filters.marital_status))
        if filters.is_verified is not None:
            stmt = stmt.where(UserProfile.is_verified.is_(filters.is_verified))
        if filters.has_photo is True:
            stmt = stmt.where(UserProfile.profile_picture_id.is_not(None))
        elif filters.has_photo is False:
            stmt = stmt.where(UserProfile.profile_picture_id.is_(None))
        if filters.exclude_user_ids:
            stmt = stmt.where(UserProfile.user_id.not_in(filters.exclude_user_ids))
        return stmt

    def _run_search(self, stmt, filters: SearchFilters) -> SearchResult:
        total = self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        limit = min(filters.limit or DEFAULT_SEARCH_LIMIT, MAX_SEARCH_LIMIT)
        page = stmt.order_by(UserProfile.last_active_at.desc(), UserProfile.created_at.desc()).limit(limit)
        if filters.offset and filters.offset > 0:
            page = page.offset(filters.offset)
        profiles = list(self.session.scalars(page))
        return SearchResult(profiles=profiles, total=total, has_more=total > (filters.offset or 0) + len(profiles))

    def search_profiles(self, filters: SearchFilters | None = None) -> SearchResult:
        filters = filters or SearchFilters()
        return self._run_search(self._filtered(filters), filters)

    def search_profiles_with_text(self, query: str, filters: SearchFilters | None = None) -> SearchResult:
        filters = filters or SearchFilters()
        stmt = self._filtered(filters)
        query = sanitize_search_query(query)
        if query:
            pattern = f"%{query}%"
            stmt = stmt.where(or_(
                UserProfile.name.ilike(pattern),
                UserProfile.bio.ilike(pattern),
                UserProfile.occupation.ilike(pattern),
                UserProfile.education.ilike(pattern),
            ))
        return self._run_search(stmt, filters)

    def get_profiles_by_location(
        self,
        district: str,
        include_nearby: bool = True,
        filters: SearchFilters | None = None,
    ) -> SearchResult:
        filters = filters or SearchFilters()
        filters.districts = nearby_districts(district) if include_nearby else [district]
        return self.search_profiles(filters)

    # ------------------------------------------------------------------
    # Visibility, views, activity
    # ------------------------------------------------------------------

    def update_visibility_settings(
        self,
        user_id: str,
        *,
        profile_visibility: str | None = None,
        is_photo_blurred: bool | None = None,
    ) -> UserProfile:
        updates: dict[str, Any] = {}
        if profile_visibility is not None:
            updates["profile_visibility"] = profile_visibility
        if is_photo_blurred is not None:
            updates["is_photo_blurred"] = is_photo_blurred
        return self.update_profile(user_id, updates)

    def get_profile_stats(self, user_id: str) -> dict[str, Any]:
        profile = self.require_profile(user_id)
        sent = self.session.scalar(select(func.count(Interest.id)).where(Interest.sender_id == user_id)) or 0
        received = self.session.scalar(select(func.count(Interest.id)).where(Interest.receiver_id == user_id)) or 0
        last_active = profile.last_active_at or profile.updated_at or profile.created_at
        return {
            "view_count": profile.profile_view_count,
            "interests_sent": sent,
            "interests_received": received,
            "profile_completion": calculate_profile_completion(profile),
            "last_active": last_active.isoformat() if last_active else "",
        }

    def increment_view_count(self, profile_id: str, viewer_id: str | None = None) -> None:
        profile = self.get_profile_by_id(profile_id)
        if profile is None:
            return
        profile.profile_view_count = (profile.profile_view_count or 0) + 1
        self.session.commit()

        if viewer_id and viewer_id != profile.user_id:
            viewer = self.get_profile(viewer_id)
            try:
                self.notifications.create_profile_view_notification(
                    profile.user_id,
                    viewer_id,
                    viewer.name if viewer else "Someone",
                    viewer_age=viewer.age if viewer else None,
                    viewer_location=viewer.district if viewer else None,
                )
            except Exception as e:
                self.session.rollback()
                logger.warning("[profile] view notification failed: %s", e)

    def update_last_active(self, user_id: str) -> None:
        profile = self.get_profile(user_id)
        if profile is None:
            return
        profile.last_active_at = utcnow()
        self.session.commit()

    def has_mutual_interest(self, user_a: str, user_b: str) -> bool:
        accepted = InterestStatus.ACCEPTED.value
        a_to_b = self.session.scalar(select(func.count(Interest.id)).where(
            Interest.sender_id == user_a, Interest.receiver_id == user_b, Interest.status == accepted
        ))
        b_to_a = self.session.scalar(select(func.count(Interest.id)).where(
            Interest.sender_id == user_b, Interest.receiver_id == user_a, Interest.status == accepted
        ))
        return bool(a_to_b) and bool(b_to_a)

    def check_photo_permission(self, viewer_id: str, owner_user_id: str, viewer_role: str | None = None) -> PhotoViewPermission:
        if viewer_id == owner_user_id:
            return PhotoViewPermission(viewer_id, owner_user_id, True, "owner")
        if viewer_role in STAFF_ROLES:
            return PhotoViewPermission(viewer_id, owner_user_id, True, "admin")

        owner = self.require_profile(owner_user_id)
        if not owner.is_photo_blurred:
            return PhotoViewPermission(viewer_id, owner_user_id, True, "unblurred")
        if self.has_mutual_interest(viewer_id, owner_user_id):
            return PhotoViewPermission(viewer_id, owner_user_id, True, "mutual_interest")
        return PhotoViewPermission(viewer_id, owner_user_id, False, "restricted")

    def can_view_profile(self, viewer_id: str | None, profile: UserProfile, viewer_role: str | None = None) -> bool:
        if viewer_id == profile.user_id or viewer_role in STAFF_ROLES:
            return True
        if not profile.is_active or profile.is_banned:
            return False
        if profile.profile_visibility == ProfileVisibility.PUBLIC.value:
            return True
        if profile.profile_visibility == ProfileVisibility.MEMBERS.value:
            return viewer_id is not None
        # private profiles open up to mutual matches only
        return viewer_id is not None and self.has_mutual_interest(viewer_id, profile.user_id)

    def view_profile(self, viewer_id: str, profile_id: str, viewer_role: str | None = None) -> dict[str, Any]:
        """Profile card as seen by ``viewer_id``; counts the view."""
        profile = self.get_profile_by_id(profile_id)
        if profile is None:
            raise NotFoundError("Profile not found")
        if not self.can_view_profile(viewer_id, profile, viewer_role):
            raise PermissionDeniedError("This profile is private")

        permission = self.check_photo_permission(viewer_id, profile.user_id, viewer_role)
        if viewer_id == profile.user_id:
            data = profile.to_dict()
        else:
            self.increment_view_count(profile.id, viewer_id)
            data = profile.to_public_dict(show_photo=permission.can_view_original)
        data["photo_access"] = permission.reason
        return data
