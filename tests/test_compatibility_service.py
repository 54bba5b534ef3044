"""CompatibilityService unit tests.

Tests cover:
- Rule-based breakdown builders for each dimension
- Confidence, priority and recommendation reason helpers
- Scoring through the AI flow with a mock LLM, storage and caching
- Recommendation generation and per-member analytics
"""

import json
from datetime import timedelta

import pytest

from nikah.db import utcnow
from nikah.models import CompatibilityRecord, UserProfile
from nikah.services.compatibility_service import (
    CompatibilityService,
    CompatibilityServiceError,
    build_education_compatibility,
    build_family_compatibility,
    build_lifestyle_compatibility,
    build_location_compatibility,
    build_personality_compatibility,
    build_religious_compatibility,
    calculate_confidence_level,
    determine_priority,
    improvement_suggestions,
    occupation_group,
)

from conftest import COMPATIBILITY_RESPONSE


def person(**fields) -> UserProfile:
    return UserProfile(**fields)


@pytest.fixture
def service(session, mock_llm) -> CompatibilityService:
    return CompatibilityService(session, llm_service=mock_llm)


# ============================================================================
# Breakdown builders
# ============================================================================

class TestLocation:
    """Test build_location_compatibility()."""

    def test_same_village(self):
        a = person(village="Bhaurah", block="Rajnagar", district="Madhubani")
        b = person(village="Bhaurah", block="Rajnagar", district="Madhubani")

        assert build_location_compatibility(a, b, 95).distance == "same_village"

    def test_same_block(self, bride, groom):
        result = build_location_compatibility(bride, groom, 90)

        assert result.distance == "same_block"
        assert result.score == 90

    def test_same_district(self):
        a = person(block="Rajnagar", district="Madhubani")
        b = person(block="Benipatti", district="Madhubani")

        result = build_location_compatibility(a, b, 80)

        assert result.distance == "same_district"
        assert "Madhubani" in result.explanation

    def test_nearby_district(self, bride, other_groom):
        assert build_location_compatibility(bride, other_groom, 70).distance == "nearby_district"

    def test_missing_village_is_not_a_match(self):
        a = person(village=None, block="A", district="Madhubani")
        b = person(village=None, block="B", district="Patna")

        assert build_location_compatibility(a, b, 20).distance == "distant"


class TestEducation:
    """Test build_education_compatibility()."""

    @pytest.mark.parametrize("a,b,expected", [
        ("Graduate", "Graduate", "exact"),
        ("Graduate", "Post Graduate", "compatible"),
        ("Intermediate", "Post Graduate", "complementary"),
        ("Graduate", "Doctorate", "different"),
    ])
    def test_level_match(self, a, b, expected):
        result = build_education_compatibility(person(education=a), person(education=b), 70)

        assert result.level_match == expected


class TestReligious:
    """Test build_religious_compatibility()."""

    def test_same_sect_same_practice(self, bride, groom):
        result = build_religious_compatibility(bride, groom, 95)

        assert result.sect_match
        assert result.practice_level == "very_similar"

    def test_same_sect_different_practice(self):
        a = person(sect="Sunni", religious_practice="Five times daily")
        b = person(sect="Sunni", religious_practice="Fridays")

        assert build_religious_compatibility(a, b, 80).practice_level == "similar"

    def test_different_sect(self):
        result = build_religious_compatibility(person(sect="Sunni"), person(sect="Shia"), 40)

        assert not result.sect_match
        assert result.practice_level == "different"
        assert "Sunni vs Shia" in result.explanation


class TestFamilyLifestylePersonality:
    """Test the remaining builders."""

    def test_family_similar_backgrounds(self, bride, groom):
        # "family" and "rajnagar" are shared
        result = build_family_compatibility(bride, groom, 80)

        assert result.background_match == "similar"
        assert result.family_type_match
        assert "joint" in result.explanation

    def test_family_different_types(self):
        a = person(family_background="", family_type="joint")
        b = person(family_background="", family_type="nuclear")

        result = build_family_compatibility(a, b, 50)

        assert result.background_match == "complementary"
        assert not result.family_type_match

    def test_lifestyle_compatible_fields(self, bride, groom):
        result = build_lifestyle_compatibility(bride, groom, 75)

        assert result.occupation_match == "compatible"
        assert result.skills_overlap == 50
        assert "Some shared skills" in result.explanation

    def test_lifestyle_same_field_no_skills(self):
        result = build_lifestyle_compatibility(person(occupation="Doctor"), person(occupation="Doctor"), 60)

        assert result.occupation_match == "same_field"
        assert result.skills_overlap == 0

    def test_occupation_groups(self):
        assert occupation_group("Teacher") == "professional"
        assert occupation_group("Banking") == "service"
        assert occupation_group("Farmer") == "other"

    def test_personality_identical_bios(self):
        bio = "Calm person who loves reading history books"
        result = build_personality_compatibility(person(bio=bio), person(bio=bio), 85)

        assert result.bio_similarity == 100
        assert result.communication_style == "very_compatible"

    def test_personality_empty_bio(self):
        result = build_personality_compatibility(person(bio=None), person(bio="Hello there"), 50)

        assert result.bio_similarity == 0
        assert result.communication_style == "challenging"


class TestHelpers:
    """Test confidence, priority and suggestions."""

    def test_confidence_high_for_complete_profiles(self, bride, groom):
        assert calculate_confidence_level(bride, groom, 85) == "high"

    def test_confidence_low_score(self, bride, groom):
        assert calculate_confidence_level(bride, groom, 40) == "low"

    def test_confidence_incomplete_profiles(self):
        a = person(is_profile_complete=False, is_verified=False)
        b = person(is_profile_complete=False, is_verified=False)

        assert calculate_confidence_level(a, b, 95) == "low"

    def test_confidence_verification_lifts(self):
        a = person(is_profile_complete=True, is_verified=True)
        b = person(is_profile_complete=False, is_verified=False)

        # 0.75 + 0.1
        assert calculate_confidence_level(a, b, 95) == "medium"

    @pytest.mark.parametrize("score,priority", [(85, "high"), (84.9, "medium"), (70, "medium"), (69, "low")])
    def test_priority(self, score, priority):
        assert determine_priority(score) == priority

    def test_suggestions_without_scores(self):
        assert improvement_suggestions([]) == ["Complete your profile to get better match recommendations"]


# ============================================================================
# Service
# ============================================================================

class TestCompatibilityService:
    """Test scoring and storage with a mock LLM."""

    def test_calculate(self, service, bride, groom, mock_llm):
        score = service.calculate_profile_compatibility(bride, groom)

        assert score.overall == 85
        assert score.breakdown.location.score == 90
        assert score.breakdown.location.distance == "same_block"
        assert score.breakdown.religious.score == 95
        assert score.confidence_level == "high"
        assert score.match_reasons == ["Same district", "Shared religious practice"]
        assert "Imran Ahmad" in mock_llm.prompts[0]

    def test_preferences_sent(self, service, bride, groom, mock_llm):
        from nikah.models import PartnerPreferences

        service.calculate_profile_compatibility(bride, groom, PartnerPreferences(age_min=26, sect=["Sunni"]))

        assert '"age_min": 26' in mock_llm.prompts[0]
        assert "Cultural Context: madhubani" in mock_llm.prompts[0]

    def test_score_is_cached(self, service, session, bride, groom):
        service.calculate_profile_compatibility(bride, groom)

        cached = service.get_cached_compatibility("user_bride", "user_groom")

        assert cached is not None
        assert cached.overall == 85
        assert cached.breakdown.family.background_match == "similar"
        assert service.get_cached_compatibility("user_groom", "user_bride") is None

    def test_expired_cache_ignored(self, service, session, bride, groom):
        service.calculate_profile_compatibility(bride, groom)
        record = session.query(CompatibilityRecord).one()
        record.expires_at = utcnow() - timedelta(seconds=1)
        session.commit()

        assert service.get_cached_compatibility("user_bride", "user_groom") is None

    def test_flow_failure(self, service, bride, groom, mock_llm):
        mock_llm.response = "not json"

        with pytest.raises(CompatibilityServiceError) as exc_info:
            service.calculate_profile_compatibility(bride, groom)

        assert exc_info.value.status_code == 502

    def test_recommendations(self, service, bride, groom, other_groom):
        recommendations = service.generate_match_recommendations(bride, [groom, other_groom])

        assert len(recommendations) == 2
        assert recommendations[0].priority == "high"
        assert recommendations[0].recommendation_reason == (
            "High compatibility (85%) based on: Same district, Shared religious practice"
        )
        stored = service.get_match_recommendations("user_bride")
        assert {r.candidate_user_id for r in stored} == {"user_groom", "user_groom2"}

    def test_recommendations_below_threshold_dropped(self, service, bride, groom, mock_llm):
        mock_llm.response = json.dumps({**COMPATIBILITY_RESPONSE, "compatibility_score": 55})

        assert service.generate_match_recommendations(bride, [groom]) == []

    def test_failed_candidate_skipped(self, service, bride, groom, other_groom, mock_llm):
        mock_llm.should_fail = True
        mock_llm.max_failures = 1

        recommendations = service.generate_match_recommendations(bride, [groom, other_groom])

        assert [r.candidate_user_id for r in recommendations] == ["user_groom2"]

    def test_analytics(self, service, bride, groom, other_groom):
        service.calculate_profile_compatibility(bride, groom)
        service.calculate_profile_compatibility(bride, other_groom)

        analytics = service.get_user_match_analytics("user_bride")

        assert analytics["total_matches"] == 2
        assert analytics["high_compatibility_matches"] == 2
        assert analytics["average_compatibility_score"] == 85
        assert analytics["top_matching_factors"][0] == "Same district"
        assert analytics["improvement_suggestions"] == [
            "Highlight your educational achievements and career goals more clearly"
        ]

    def test_analytics_empty(self, service):
        analytics = service.get_user_match_analytics("nobody")

        assert analytics["total_matches"] == 0
        assert analytics["average_compatibility_score"] == 0
