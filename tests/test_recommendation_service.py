"""RecommendationService unit tests.

Tests cover:
- Preference defaults and search filter construction
- Ranking adjustments from learned behaviour
- Personalised, cached and refreshed recommendations
- Interaction learning, match feedback and trending profiles
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from nikah.db import utcnow
from nikah.errors import ErrorType, NotFoundError
from nikah.models import (
    CompatibilityBreakdown,
    CompatibilityScore,
    EducationCompatibility,
    FamilyCompatibility,
    LearningData,
    LifestyleCompatibility,
    LocationCompatibility,
    MatchAnalytics,
    PartnerPreferences,
    PersonalityCompatibility,
    Recommendation,
    ReligiousCompatibility,
    UserActivity,
    UserProfile,
)
from nikah.services.compatibility_service import CompatibilityService
from nikah.services.recommendation_service import (
    RecommendationFilters,
    RecommendationService,
    RecommendationServiceError,
    build_search_filters,
    preferences_for,
    rank_recommendations,
)


@pytest.fixture
def service(session, mock_llm, profile_service) -> RecommendationService:
    return RecommendationService(
        session,
        compatibility=CompatibilityService(session, llm_service=mock_llm),
        profiles=profile_service,
    )


def recommendation(candidate: str, overall: float) -> Recommendation:
    breakdown = CompatibilityBreakdown(
        location=LocationCompatibility(overall, "same_district", ""),
        education=EducationCompatibility(overall, "exact", ""),
        religious=ReligiousCompatibility(overall, True, "similar", ""),
        family=FamilyCompatibility(overall, "similar", True, ""),
        lifestyle=LifestyleCompatibility(overall, "compatible", 0, ""),
        personality=PersonalityCompatibility(overall, 0, "neutral", ""),
    )
    now = datetime(2024, 1, 1)
    return Recommendation(
        profile_id=f"p_{candidate}",
        user_id="me",
        candidate_user_id=candidate,
        compatibility_score=CompatibilityScore(overall=overall, breakdown=breakdown, explanation=""),
        recommendation_reason="",
        priority="medium",
        generated_at=now,
        expires_at=now + timedelta(days=7),
    )


# ============================================================================
# Helpers
# ============================================================================

class TestPreferences:
    """Test preferences_for() and build_search_filters()."""

    def test_no_preferences(self):
        assert preferences_for(UserProfile(looking_for=None)) is None

    def test_defaults_filled_from_profile(self):
        profile = UserProfile(district="Madhubani", sect="Sunni", looking_for={"age_min": 24, "age_max": 30})

        prefs = preferences_for(profile)

        assert prefs.location == ["Madhubani"]
        assert prefs.sect == ["Sunni"]
        assert prefs.marital_status == ["single"]

    def test_profile_location_preference_wins(self):
        profile = UserProfile(
            district="Madhubani",
            sect="Shia",
            location_preference=["Darbhanga"],
            looking_for={"location": ["Patna"]},
        )

        assert preferences_for(profile).location == ["Darbhanga"]

    def test_filters_from_preferences(self):
        profile = UserProfile(gender="female")
        prefs = PartnerPreferences(age_min=25, age_max=32, location=["Madhubani"], verified_only=True)

        filters = build_search_filters(profile, prefs, None, None)

        assert filters.gender == "male"
        assert (filters.age_min, filters.age_max) == (25, 32)
        assert filters.districts == ["Madhubani"]
        assert filters.is_verified is True
        assert filters.has_photo is None

    def test_learning_narrows_age_and_adds_values(self):
        profile = UserProfile(gender="male")
        prefs = PartnerPreferences(age_min=20, age_max=40, location=["Madhubani"])
        learning = LearningData(user_id="u", age_min=23, age_max=30, locations=["Darbhanga"])

        filters = build_search_filters(profile, prefs, learning, None)

        assert (filters.age_min, filters.age_max) == (23, 30)
        assert filters.districts == ["Madhubani", "Darbhanga"]

    def test_explicit_filters_override(self):
        profile = UserProfile(gender="male")
        prefs = PartnerPreferences(location=["Madhubani"])
        extra = RecommendationFilters(min_age=21, districts=["Sitamarhi"], has_photo_only=True, exclude_user_ids=["x"])

        filters = build_search_filters(profile, prefs, None, extra)

        assert filters.age_min == 21
        assert filters.districts == ["Sitamarhi"]
        assert filters.has_photo is True
        assert filters.exclude_user_ids == ["x"]


class TestRanking:
    """Test rank_recommendations()."""

    def test_plain_score_order(self):
        ranked = rank_recommendations([recommendation("a", 70), recommendation("b", 90)], None)

        assert [r.candidate_user_id for r in ranked] == ["b", "a"]

    def test_near_average_boost(self):
        learning = LearningData(user_id="me", average_compatibility_of_interests=70)

        ranked = rank_recommendations([recommendation("a", 78), recommendation("b", 81)], learning)

        # a gets +5 for being close to the learned average
        assert [r.candidate_user_id for r in ranked] == ["a", "b"]


# ============================================================================
# Service
# ============================================================================

class TestPersonalizedRecommendations:
    """Test recommendation generation and caching."""

    def test_recommends_opposite_gender(self, service, bride, groom, other_groom):
        recommendations = service.get_personalized_recommendations("user_bride")

        assert {r.candidate_user_id for r in recommendations} == {"user_groom", "user_groom2"}

    def test_explicit_filters(self, service, bride, groom, other_groom):
        recommendations = service.get_personalized_recommendations(
            "user_bride", filters=RecommendationFilters(districts=["Darbhanga"]),
        )

        assert [r.candidate_user_id for r in recommendations] == ["user_groom2"]

    def test_limit(self, service, bride, groom, other_groom):
        assert len(service.get_personalized_recommendations("user_bride", limit=1)) == 1

    def test_session_recorded(self, service, session, bride, groom):
        service.get_personalized_recommendations("user_bride")

        [row] = session.scalars(select(MatchAnalytics).where(MatchAnalytics.kind == "recommendation_generation")).all()
        assert row.recommendation_count == 1
        assert row.average_compatibility == 85

    def test_missing_profile(self, service):
        with pytest.raises(NotFoundError):
            service.get_personalized_recommendations("nobody")

    def test_cached_and_refresh(self, service, bride, groom, mock_llm):
        service.get_personalized_recommendations("user_bride")
        assert len(service.get_cached_recommendations("user_bride")) == 1

        refreshed = service.refresh_recommendations("user_bride")

        assert len(refreshed) == 1
        assert len(service.get_cached_recommendations("user_bride")) == 1
        assert mock_llm.call_count == 2


class TestLearning:
    """Test interaction recording and feedback."""

    def test_interaction_logged(self, service, session, bride, groom):
        service.record_user_interaction("user_bride", "user_groom", "view", {"source": "search"})

        [activity] = session.scalars(select(UserActivity)).all()
        assert activity.activity_type == "view"
        assert activity.activity_data == {"source": "search"}

    def test_interaction_builds_learning(self, service, bride, groom):
        service.record_user_interaction("user_bride", "user_groom", "view")
        service.record_user_interaction("user_bride", "user_groom", "interest")

        learning = service.get_learning_data("user_bride")

        assert learning.viewed_profiles == 1
        assert learning.sent_interests == 1
        assert learning.locations == ["Madhubani"]
        assert learning.education_levels == ["Post Graduate"]
        assert learning.occupations == ["Engineer"]

    def test_learning_shapes_recommendations(self, service, bride, groom, other_groom):
        """Test the learned education taste filters later recommendations."""
        service.record_user_interaction("user_bride", "user_groom", "view")

        recommendations = service.get_personalized_recommendations("user_bride")

        assert [r.candidate_user_id for r in recommendations] == ["user_groom"]

    def test_unknown_interaction(self, service, bride):
        with pytest.raises(RecommendationServiceError) as exc_info:
            service.record_user_interaction("user_bride", "user_groom", "poke")

        assert exc_info.value.error_type == ErrorType.VALIDATION

    def test_feedback_stored(self, service, session, bride, groom):
        service.record_match_feedback("user_bride", "user_groom", "good", ["Same village"])

        [row] = session.scalars(select(MatchAnalytics).where(MatchAnalytics.kind == "feedback")).all()
        assert row.feedback == "good"
        assert row.reasons == ["Same village"]

    def test_feedback_updates_average(self, service, bride, groom):
        service.record_user_interaction("user_bride", "user_groom", "view")
        service.compatibility.calculate_profile_compatibility(bride, groom)

        service.record_match_feedback("user_bride", "user_groom", "excellent")

        assert service.get_learning_data("user_bride").average_compatibility_of_interests == 42.5


class TestTrending:
    """Test get_trending_matches()."""

    def test_verified_recent_profiles_only(self, service, session, bride, groom, other_groom):
        groom.is_verified = True
        other_groom.is_verified = True
        other_groom.last_active_at = utcnow() - timedelta(days=10)
        session.commit()

        assert [p.user_id for p in service.get_trending_matches("user_bride")] == ["user_groom"]

    def test_views_break_ties(self, service, session, bride, groom, other_groom):
        now = utcnow()
        for profile in (groom, other_groom):
            profile.is_verified = True
            profile.last_active_at = now
        other_groom.profile_view_count = 5
        session.commit()

        assert [p.user_id for p in service.get_trending_matches("user_bride")] == ["user_groom2", "user_groom"]
