"""Recommendation Service - personalised match discovery and ranking.

This module handles:
- Building candidate searches from partner preferences and learned taste
- Scoring candidates through the compatibility service and re-ranking them
- Learning from interactions and match feedback

Interface Contract:
- get_personalized_recommendations(user_id, limit, filters) -> list[Recommendation]
- get_cached_recommendations(user_id, max_age_hours) -> list[Recommendation]
- refresh_recommendations(user_id) -> list[Recommendation]
- record_user_interaction(user_id, target_user_id, interaction_type, context_data) -> None
- record_match_feedback(user_id, match_user_id, feedback, reasons) -> None
- get_trending_matches(user_id, limit) -> list[UserProfile]
- All methods raise RecommendationServiceError on failure
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from nikah.db import utcnow
from nikah.errors import ErrorType, NikahError, NotFoundError
from nikah.models import (
    AnalyticsKind,
    LearningData,
    MatchAnalytics,
    MatchRecommendation,
    PartnerPreferences,
    Recommendation,
    UserActivity,
    UserProfile,
)
from nikah.services.compatibility_service import CompatibilityService
from nikah.services.profile_service import ProfileService, SearchFilters, opposite_gender

logger = logging.getLogger(__name__)

FEEDBACK_WEIGHTS = {"excellent": 1.0, "good": 0.8, "average": 0.6, "poor": 0.2}
INTERACTION_TYPES = ("view", "interest", "favorite", "skip", "block")
CACHED_LIMIT = 50
TRENDING_WINDOW = timedelta(days=7)


class RecommendationServiceError(NikahError):
    """Raised when recommendation service fails."""
    error_type = ErrorType.BUSINESS_LOGIC


@dataclass
class RecommendationFilters:
    """Explicit filters; each one set overrides the preference-derived value."""
    min_age: int | None = None
    max_age: int | None = None
    districts: list[str] | None = None
    education_levels: list[str] | None = None
    sects: list[str] | None = None
    occupations: list[str] | None = None
    verified_only: bool = False
    has_photo_only: bool = False
    exclude_user_ids: list[str] = field(default_factory=list)


def preferences_for(profile: UserProfile) -> PartnerPreferences | None:
    """Partner preferences with the profile's own defaults filled in."""
    if not profile.looking_for:
        return None
    prefs = PartnerPreferences.from_dict(profile.looking_for)
    prefs.location = list(profile.location_preference or prefs.location or [profile.district])
    prefs.education = list(profile.education_preference or prefs.education or [])
    prefs.sect = prefs.sect or [profile.sect]
    prefs.marital_status = prefs.marital_status or ["single"]
    return prefs


def build_search_filters(
    profile: UserProfile,
    preferences: PartnerPreferences | None,
    learning: LearningData | None,
    extra: RecommendationFilters | None,
) -> SearchFilters:
    filters = SearchFilters(gender=opposite_gender(profile.gender), is_active=True, limit=50)

    if preferences:
        filters.age_min = preferences.age_min
        filters.age_max = preferences.age_max
        filters.districts = list(preferences.location)
        filters.education_levels = list(preferences.education)
        filters.sects = list(preferences.sect)
        if preferences.verified_only:
            filters.is_verified = True
        if preferences.must_have_photo:
            filters.has_photo = True

    if learning:
        filters.age_min = max(filters.age_min or 18, learning.age_min)
        filters.age_max = min(filters.age_max or 50, learning.age_max)
        if learning.education_levels:
            filters.education_levels = (filters.education_levels or []) + learning.education_levels
        if learning.locations:
            filters.districts = (filters.districts or []) + learning.locations

    if extra:
        if extra.min_age:
            filters.age_min = extra.min_age
        if extra.max_age:
            filters.age_max = extra.max_age
        if extra.districts:
            filters.districts = extra.districts
        if extra.education_levels:
            filters.education_levels = extra.education_levels
        if extra.sects:
            filters.sects = extra.sects
        if extra.occupations:
            filters.occupations = extra.occupations
        if extra.verified_only:
            filters.is_verified = True
        if extra.has_photo_only:
            filters.has_photo = True
        filters.exclude_user_ids = list(extra.exclude_user_ids)

    return filters


def rank_recommendations(recommendations: list[Recommendation], learning: LearningData | None) -> list[Recommendation]:
    """Sort by overall score, nudged by what the member has engaged with before."""
    def ranked_score(rec: Recommendation) -> float:
        score = rec.compatibility_score.overall
        if learning is None:
            return score
        adjusted = score
        average = learning.average_compatibility_of_interests
        if average > 0 and abs(score - average) < 10:
            adjusted += 5
        if learning.success_rate > 0.3 and score >= 80:
            adjusted += 3
        return adjusted

    return sorted(recommendations, key=ranked_score, reverse=True)


def initial_learning_data(profile: UserProfile) -> LearningData:
    return LearningData(user_id=profile.user_id, locations=[profile.district], sects=[profile.sect])


def load_learning_data(session: Session, user_id: str) -> LearningData | None:
    """Latest learning snapshot for a member, or None before any interaction."""
    row = session.scalars(
        select(MatchAnalytics)
        .where(MatchAnalytics.user_id == user_id, MatchAnalytics.kind == AnalyticsKind.LEARNING.value)
        .order_by(MatchAnalytics.created_at.desc())
        .limit(1)
    ).first()
    if row is None or not row.learning_data:
        return None
    return LearningData.from_dict(row.learning_data)


def save_learning_data(session: Session, learning: LearningData) -> None:
    session.add(MatchAnalytics(
        user_id=learning.user_id,
        kind=AnalyticsKind.LEARNING.value,
        learning_data=learning.to_dict(),
        created_at=utcnow(),
    ))
    session.commit()


def record_accepted_interest(session: Session, sender_id: str) -> None:
    """Count an accepted interest towards the sender's success rate."""
    learning = load_learning_data(session, sender_id)
    if learning is None:
        profile = session.scalars(select(UserProfile).where(UserProfile.user_id == sender_id)).first()
        if profile is None:
            return
        learning = initial_learning_data(profile)
    learning.accepted_interests += 1
    save_learning_data(session, learning)


class RecommendationService:
    """Personalised recommendations for one database session."""

    def __init__(
        self,
        session: Session,
        compatibility: CompatibilityService | None = None,
        profiles: ProfileService | None = None,
        llm_service=None,
    ):
        self.session = session
        self.compatibility = compatibility or CompatibilityService(session, llm_service=llm_service)
        self.profiles = profiles or ProfileService(session)

    def _require_profile(self, user_id: str) -> UserProfile:
        profile = self.profiles.get_profile(user_id)
        if profile is None:
            raise NotFoundError("User profile not found")
        return profile

    def get_personalized_recommendations(
        self,
        user_id: str,
        limit: int = 20,
        filters: RecommendationFilters | None = None,
    ) -> list[Recommendation]:
        """Score and rank candidates for a member.

        Args:
            user_id: Member asking for matches
            limit: Number of recommendations to return
            filters: Optional explicit filters overriding preferences

        Returns:
            list[Recommendation]: Ranked, at most ``limit`` long

        Raises:
            NotFoundError: If the member has no profile
        """
        profile = self._require_profile(user_id)
        preferences = preferences_for(profile)
        learning = self.get_learning_data(user_id)

        search = build_search_filters(profile, preferences, learning, filters)
        search.limit = limit * 2
        candidates = [p for p in self.profiles.search_profiles(search).profiles if p.user_id != user_id]
        logger.info("[recommend] user=%s candidates=%d", user_id, len(candidates))

        recommendations = self.compatibility.generate_match_recommendations(profile, candidates, preferences)
        ranked = rank_recommendations(recommendations, learning)
        self._store_session(user_id, ranked)
        return ranked[:limit]

    def get_cached_recommendations(self, user_id: str, max_age_hours: int = 24) -> list[Recommendation]:
        cutoff = utcnow() - timedelta(hours=max_age_hours)
        rows = self.session.scalars(
            select(MatchRecommendation)
            .where(MatchRecommendation.user_id == user_id, MatchRecommendation.generated_at > cutoff)
            .order_by(MatchRecommendation.compatibility_score.desc())
            .limit(CACHED_LIMIT)
        )
        return [row.to_recommendation() for row in rows]

    def refresh_recommendations(self, user_id: str) -> list[Recommendation]:
        self.session.execute(delete(MatchRecommendation).where(MatchRecommendation.user_id == user_id))
        self.session.commit()
        return self.get_personalized_recommendations(user_id, 20)

    def get_trending_matches(self, user_id: str, limit: int = 10) -> list[UserProfile]:
        profile = self._require_profile(user_id)
        result = self.profiles.search_profiles(SearchFilters(
            gender=opposite_gender(profile.gender),
            is_active=True,
            is_verified=True,
            limit=limit * 2,
        ))
        cutoff = utcnow() - TRENDING_WINDOW

        def trending_score(p: UserProfile) -> float:
            # epoch milliseconds plus a second per view
            active_ms = (p.last_active_at - datetime(1970, 1, 1)).total_seconds() * 1000
            return active_ms + (p.profile_view_count or 0) * 1000

        recent = [p for p in result.profiles if p.last_active_at and p.last_active_at > cutoff]
        return sorted(recent, key=trending_score, reverse=True)[:limit]

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def get_learning_data(self, user_id: str) -> LearningData | None:
        return load_learning_data(self.session, user_id)

    def _save_learning_data(self, learning: LearningData) -> None:
        save_learning_data(self.session, learning)

    def record_user_interaction(
        self,
        user_id: str,
        target_user_id: str,
        interaction_type: str,
        context_data: dict[str, Any] | None = None,
    ) -> None:
        if interaction_type not in INTERACTION_TYPES:
            raise RecommendationServiceError(f"Unknown interaction type: {interaction_type}", error_type=ErrorType.VALIDATION)
        self.session.add(UserActivity(
            user_id=user_id,
            target_user_id=target_user_id,
            activity_type=interaction_type,
            activity_data=context_data or {},
            timestamp=utcnow(),
        ))
        self.session.commit()

        try:
            self._update_learning_data(user_id, target_user_id, interaction_type)
        except Exception as e:
            self.session.rollback()
            logger.warning("[recommend] learning update failed for user=%s: %s", user_id, e)

    def _update_learning_data(self, user_id: str, target_user_id: str, interaction_type: str) -> None:
        learning = self.get_learning_data(user_id)
        if learning is None:
            profile = self.profiles.get_profile(user_id)
            if profile is None:
                return
            learning = initial_learning_data(profile)

        if interaction_type == "view":
            learning.viewed_profiles += 1
        elif interaction_type == "interest":
            learning.sent_interests += 1

        target = self.profiles.get_profile(target_user_id)
        if target is not None and interaction_type in ("view", "interest"):
            learning.age_min = min(learning.age_min, target.age - 2)
            learning.age_max = max(learning.age_max, target.age + 2)
            for values, item in (
                (learning.locations, target.district),
                (learning.education_levels, target.education),
                (learning.occupations, target.occupation),
            ):
                if item and item not in values:
                    values.append(item)

        self._save_learning_data(learning)

    def record_match_feedback(
        self,
        user_id: str,
        match_user_id: str,
        feedback: str,
        reasons: list[str] | None = None,
    ) -> None:
        self.session.add(MatchAnalytics(
            user_id=user_id,
            kind=AnalyticsKind.FEEDBACK.value,
            match_user_id=match_user_id,
            feedback=feedback,
            reasons=list(reasons or []),
            created_at=utcnow(),
        ))
        self.session.commit()

        score = self.compatibility.get_cached_compatibility(user_id, match_user_id)
        if score is None:
            return
        learning = self.get_learning_data(user_id)
        if learning is None:
            return
        weight = FEEDBACK_WEIGHTS.get(feedback, 0.5)
        learning.average_compatibility_of_interests = (
            learning.average_compatibility_of_interests + score.overall * weight
        ) / 2
        self._save_learning_data(learning)
        logger.info("[recommend] feedback=%s user=%s avg=%.1f", feedback, user_id,
                    learning.average_compatibility_of_interests)

    def _store_session(self, user_id: str, recommendations: list[Recommendation]) -> None:
        average = (
            sum(r.compatibility_score.overall for r in recommendations) / len(recommendations)
            if recommendations else 0
        )
        try:
            self.session.add(MatchAnalytics(
                user_id=user_id,
                kind=AnalyticsKind.SESSION.value,
                recommendation_count=len(recommendations),
                average_compatibility=average,
                created_at=utcnow(),
            ))
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.warning("[recommend] failed to store session: %s", e)
