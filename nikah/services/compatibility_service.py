"""Compatibility Service - AI compatibility scoring between two profiles.

This module handles:
- Asking the compatibility flow for per-dimension scores
- Building the rule-based breakdown explanations around those scores
- Storing scores and recommendations, and summarising them per member

Interface Contract:
- calculate_profile_compatibility(user, candidate, preferences) -> CompatibilityScore
- get_cached_compatibility(user_id, candidate_user_id) -> CompatibilityScore | None
- generate_match_recommendations(user, candidates, preferences) -> list[Recommendation]
- get_match_recommendations(user_id, limit) -> list[Recommendation]
- get_user_match_analytics(user_id) -> dict
- All methods raise CompatibilityServiceError on failure
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import CULTURAL_CONTEXT
from nikah.ai.flows import AIFlowError, CompatibilityInput, calculate_compatibility
from nikah.db import utcnow
from nikah.errors import ErrorType, NikahError
from nikah.models import (
    CompatibilityBreakdown,
    CompatibilityRecord,
    CompatibilityScore,
    ConfidenceLevel,
    EducationCompatibility,
    FamilyCompatibility,
    LifestyleCompatibility,
    LocationCompatibility,
    MatchRecommendation,
    PartnerPreferences,
    PersonalityCompatibility,
    Recommendation,
    RecommendationPriority,
    ReligiousCompatibility,
    UserProfile,
)
from nikah.models.profile import NEARBY_DISTRICTS

logger = logging.getLogger(__name__)

SCORE_TTL = timedelta(days=30)
RECOMMENDATION_TTL = timedelta(days=7)
RECOMMENDATION_THRESHOLD = 60
HIGH_COMPATIBILITY = 80
ANALYTICS_SAMPLE = 100

EDUCATION_HIERARCHY = {
    "High School": 1,
    "Intermediate": 2,
    "Diploma": 2,
    "Graduate": 3,
    "Bachelor's Degree": 3,
    "Post Graduate": 4,
    "Master's Degree": 4,
    "Professional Degree": 5,
    "Doctorate": 6,
}

OCCUPATION_GROUPS = {
    "professional": ("Doctor", "Engineer", "Teacher", "Lawyer"),
    "business": ("Business", "Entrepreneur", "Trader"),
    "service": ("Government Job", "Private Job", "Banking"),
}

CONCERN_SUGGESTIONS = (
    ("location", "Consider expanding your location preferences to nearby districts"),
    ("education", "Highlight your educational achievements and career goals more clearly"),
    ("religious", "Provide more details about your religious practices and beliefs"),
    ("family", "Add more information about your family background and values"),
)


class CompatibilityServiceError(NikahError):
    """Raised when compatibility service fails."""
    error_type = ErrorType.AI


# ============================================================================
# Breakdown builders
# ============================================================================

def _same(a: str | None, b: str | None) -> bool:
    return bool(a) and a == b


def build_location_compatibility(user: UserProfile, candidate: UserProfile, score: float) -> LocationCompatibility:
    if _same(user.village, candidate.village):
        distance = "same_village"
        explanation = "Both from the same village, ensuring close family proximity and cultural familiarity."
    elif _same(user.block, candidate.block):
        distance = "same_block"
        explanation = "Both from the same block, providing good accessibility and shared local culture."
    elif _same(user.district, candidate.district):
        distance = "same_district"
        explanation = f"Both from {user.district} district, sharing regional culture and traditions."
    elif candidate.district in NEARBY_DISTRICTS:
        distance = "nearby_district"
        explanation = "From nearby districts, manageable distance with similar cultural background."
    else:
        distance = "distant"
        explanation = "Different regions may require more planning for family visits and cultural adaptation."
    return LocationCompatibility(score=score, distance=distance, explanation=explanation)


def build_education_compatibility(user: UserProfile, candidate: UserProfile, score: float) -> EducationCompatibility:
    if user.education == candidate.education:
        return EducationCompatibility(
            score=score,
            level_match="exact",
            explanation="Same educational background provides shared academic experiences and perspectives.",
        )

    diff = abs(EDUCATION_HIERARCHY.get(user.education, 0) - EDUCATION_HIERARCHY.get(candidate.education, 0))
    if diff <= 1:
        level_match = "compatible"
        explanation = "Similar educational levels support mutual understanding and shared goals."
    elif diff == 2:
        level_match = "complementary"
        explanation = "Different but complementary educational backgrounds can bring diverse perspectives."
    else:
        level_match = "different"
        explanation = "Significant educational differences may require understanding and adaptation."
    return EducationCompatibility(score=score, level_match=level_match, explanation=explanation)


def build_religious_compatibility(user: UserProfile, candidate: UserProfile, score: float) -> ReligiousCompatibility:
    sect_match = user.sect == candidate.sect
    if not sect_match:
        return ReligiousCompatibility(
            score=score,
            sect_match=False,
            practice_level="different",
            explanation=(
                f"Different sects ({user.sect} vs {candidate.sect}) may require family discussions "
                "and mutual understanding."
            ),
        )

    explanation = f"Both follow {user.sect} sect, ensuring aligned religious practices and beliefs. "
    if (user.religious_practice or "").lower() == (candidate.religious_practice or "").lower():
        practice_level = "very_similar"
        explanation += "Very similar religious practice levels."
    else:
        practice_level = "similar"
        explanation += "Similar religious commitment with minor differences."
    return ReligiousCompatibility(score=score, sect_match=True, practice_level=practice_level, explanation=explanation)


def build_family_compatibility(user: UserProfile, candidate: UserProfile, score: float) -> FamilyCompatibility:
    user_bg = (user.family_background or "").lower()
    candidate_bg = (candidate.family_background or "").lower()
    common = [word for word in user_bg.split(" ") if len(word) > 3 and word in candidate_bg]

    if len(common) > 3:
        background_match = "very_similar"
        explanation = "Very similar family backgrounds and values. "
    elif len(common) > 1:
        background_match = "similar"
        explanation = "Similar family backgrounds with shared values. "
    else:
        background_match = "complementary"
        explanation = "Different but potentially complementary family backgrounds. "

    family_type_match = user.family_type == candidate.family_type
    if family_type_match:
        explanation += f"Both prefer {user.family_type} family structure."
    else:
        explanation += "Different family type preferences may need discussion."
    return FamilyCompatibility(
        score=score,
        background_match=background_match,
        family_type_match=family_type_match,
        explanation=explanation,
    )


def occupation_group(occupation: str | None) -> str:
    for group, members in OCCUPATION_GROUPS.items():
        if occupation in members:
            return group
    return "other"


def build_lifestyle_compatibility(user: UserProfile, candidate: UserProfile, score: float) -> LifestyleCompatibility:
    if user.occupation == candidate.occupation:
        occupation_match = "same_field"
        explanation = "Same occupation provides shared professional understanding. "
    elif occupation_group(user.occupation) == occupation_group(candidate.occupation):
        occupation_match = "compatible"
        explanation = "Compatible professional fields with similar work cultures. "
    else:
        occupation_match = "complementary"
        explanation = "Different but complementary professional backgrounds. "

    user_skills = list(user.skills or [])
    candidate_skills = set(candidate.skills or [])
    overlap = (
        sum(1 for skill in user_skills if skill in candidate_skills) / len(user_skills) * 100
        if user_skills else 0
    )
    if overlap > 50:
        explanation += "Strong overlap in skills and interests."
    elif overlap > 20:
        explanation += "Some shared skills and interests."
    else:
        explanation += "Different skill sets can bring complementary strengths."
    return LifestyleCompatibility(
        score=score,
        occupation_match=occupation_match,
        skills_overlap=round(overlap),
        explanation=explanation,
    )


def build_personality_compatibility(user: UserProfile, candidate: UserProfile, score: float) -> PersonalityCompatibility:
    user_words = [w for w in (user.bio or "").lower().split(" ") if len(w) > 3]
    candidate_words = {w for w in (candidate.bio or "").lower().split(" ") if len(w) > 3}
    similarity = (
        sum(1 for w in user_words if w in candidate_words) / len(user_words) * 100
        if user_words else 0
    )

    if similarity > 30:
        style = "very_compatible"
        explanation = "Very similar communication styles and personality traits evident from profiles."
    elif similarity > 15:
        style = "compatible"
        explanation = "Compatible communication styles with shared personality aspects."
    elif similarity > 5:
        style = "neutral"
        explanation = "Neutral compatibility - different but potentially complementary personalities."
    else:
        style = "challenging"
        explanation = "Different communication styles may require patience and understanding."
    return PersonalityCompatibility(
        score=score,
        bio_similarity=round(similarity),
        communication_style=style,
        explanation=explanation,
    )


def calculate_confidence_level(user: UserProfile, candidate: UserProfile, score: float) -> str:
    completeness = ((1 if user.is_profile_complete else 0.5) + (1 if candidate.is_profile_complete else 0.5)) / 2
    confidence = completeness + (0.1 if user.is_verified else 0) + (0.1 if candidate.is_verified else 0)
    if confidence >= 0.9 and score >= 70:
        return ConfidenceLevel.HIGH.value
    if confidence >= 0.7 and score >= 50:
        return ConfidenceLevel.MEDIUM.value
    return ConfidenceLevel.LOW.value


def determine_priority(score: float) -> str:
    if score >= 85:
        return RecommendationPriority.HIGH.value
    if score >= 70:
        return RecommendationPriority.MEDIUM.value
    return RecommendationPriority.LOW.value


def recommendation_reason(score: CompatibilityScore) -> str:
    top = score.match_reasons[:2]
    return f"High compatibility ({score.overall:g}%) based on: {', '.join(top)}"


def improvement_suggestions(scores: list[CompatibilityScore]) -> list[str]:
    if not scores:
        return ["Complete your profile to get better match recommendations"]

    concerns = Counter(c for s in scores for c in s.potential_concerns)
    suggestions: list[str] = []
    for concern, _ in concerns.most_common(3):
        lower = concern.lower()
        for keyword, suggestion in CONCERN_SUGGESTIONS:
            if keyword in lower:
                suggestions.append(suggestion)
                break

    average = sum(s.overall for s in scores) / len(scores)
    if average < 60:
        suggestions.append("Complete your profile with more detailed information to improve match quality")
    return suggestions[:3]


# ============================================================================
# Service
# ============================================================================

class CompatibilityService:
    """Scores profile pairs with the AI flow and persists the results."""

    def __init__(self, session: Session, llm_service=None, cultural_context: str = CULTURAL_CONTEXT):
        self.session = session
        self._llm = llm_service
        self.cultural_context = cultural_context

    @property
    def llm(self):
        """Lazy load LLM service."""
        if self._llm is None:
            from nikah.services.llm_service import LLMService
            self._llm = LLMService.get_instance()
        return self._llm

    def calculate_profile_compatibility(
        self,
        user: UserProfile,
        candidate: UserProfile,
        preferences: PartnerPreferences | None = None,
    ) -> CompatibilityScore:
        """Score a candidate for a member.

        Args:
            user: The member looking for matches
            candidate: The profile being evaluated
            preferences: The member's partner preferences, if known

        Returns:
            CompatibilityScore: Overall score, breakdown and confidence

        Raises:
            CompatibilityServiceError: If the AI flow fails
        """
        data = CompatibilityInput(
            user_profile=json.dumps(user.to_ai_dict()),
            candidate_profile=json.dumps(candidate.to_ai_dict()),
            user_preferences=json.dumps(preferences.to_dict()) if preferences else None,
            cultural_context=self.cultural_context,
        )
        try:
            result = calculate_compatibility(data, llm=self.llm)
        except AIFlowError as e:
            raise CompatibilityServiceError(f"Compatibility scoring failed: {e}") from e

        score = CompatibilityScore(
            overall=result.compatibility_score,
            breakdown=CompatibilityBreakdown(
                location=build_location_compatibility(user, candidate, result.location_score),
                education=build_education_compatibility(user, candidate, result.education_score),
                religious=build_religious_compatibility(user, candidate, result.religious_score),
                family=build_family_compatibility(user, candidate, result.family_score),
                lifestyle=build_lifestyle_compatibility(user, candidate, result.lifestyle_score),
                personality=build_personality_compatibility(user, candidate, result.personality_score),
            ),
            explanation=result.explanation,
            match_reasons=list(result.match_reasons),
            potential_concerns=list(result.potential_concerns),
            confidence_level=calculate_confidence_level(user, candidate, result.compatibility_score),
        )
        logger.info("[compatibility] %s -> %s overall=%s", user.user_id, candidate.user_id, score.overall)
        self._store_score(user.user_id, candidate.user_id, score)
        return score

    def get_cached_compatibility(self, user_id: str, candidate_user_id: str) -> CompatibilityScore | None:
        record = self.session.scalars(
            select(CompatibilityRecord)
            .where(
                CompatibilityRecord.user_id == user_id,
                CompatibilityRecord.candidate_user_id == candidate_user_id,
                CompatibilityRecord.expires_at > utcnow(),
            )
            .order_by(CompatibilityRecord.created_at.desc())
            .limit(1)
        ).first()
        if record is None:
            return None
        try:
            return CompatibilityScore.from_dict(record.score_data)
        except (KeyError, TypeError) as e:
            logger.warning("[compatibility] unreadable cached score id=%s: %s", record.id, e)
            return None

    def generate_match_recommendations(
        self,
        user: UserProfile,
        candidates: list[UserProfile],
        preferences: PartnerPreferences | None = None,
    ) -> list[Recommendation]:
        recommendations: list[Recommendation] = []
        for candidate in candidates:
            try:
                score = self.calculate_profile_compatibility(user, candidate, preferences)
            except Exception as e:
                logger.warning("[compatibility] skipping candidate %s: %s", candidate.id, e)
                continue
            if score.overall < RECOMMENDATION_THRESHOLD:
                continue

            now = utcnow()
            recommendation = Recommendation(
                profile_id=candidate.id,
                user_id=user.user_id,
                candidate_user_id=candidate.user_id,
                compatibility_score=score,
                recommendation_reason=recommendation_reason(score),
                priority=determine_priority(score.overall),
                generated_at=now,
                expires_at=now + RECOMMENDATION_TTL,
            )
            recommendations.append(recommendation)
            self._store_recommendation(recommendation)

        recommendations.sort(key=lambda r: r.compatibility_score.overall, reverse=True)
        return recommendations

    def get_match_recommendations(self, user_id: str, limit: int = 10) -> list[Recommendation]:
        rows = self.session.scalars(
            select(MatchRecommendation)
            .where(MatchRecommendation.user_id == user_id, MatchRecommendation.expires_at > utcnow())
            .order_by(MatchRecommendation.compatibility_score.desc())
            .limit(limit)
        )
        return [row.to_recommendation() for row in rows]

    def get_user_match_analytics(self, user_id: str) -> dict[str, Any]:
        records = self.session.scalars(
            select(CompatibilityRecord).where(CompatibilityRecord.user_id == user_id).limit(ANALYTICS_SAMPLE)
        )
        scores = [CompatibilityScore.from_dict(r.score_data) for r in records]
        total = len(scores)
        average = sum(s.overall for s in scores) / total if total else 0
        reasons = Counter(reason for s in scores for reason in s.match_reasons)

        return {
            "user_id": user_id,
            "total_matches": total,
            "high_compatibility_matches": sum(1 for s in scores if s.overall >= HIGH_COMPATIBILITY),
            "average_compatibility_score": round(average),
            "top_matching_factors": [reason for reason, _ in reasons.most_common(5)],
            "improvement_suggestions": improvement_suggestions(scores),
            "last_analyzed_at": utcnow().isoformat(),
        }

    def _store_score(self, user_id: str, candidate_user_id: str, score: CompatibilityScore) -> None:
        now = utcnow()
        try:
            self.session.add(CompatibilityRecord(
                user_id=user_id,
                candidate_user_id=candidate_user_id,
                score_data=score.to_dict(),
                overall_score=score.overall,
                confidence_level=score.confidence_level,
                created_at=now,
                expires_at=now + SCORE_TTL,
            ))
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.warning("[compatibility] failed to store score: %s", e)

    def _store_recommendation(self, recommendation: Recommendation) -> None:
        try:
            self.session.add(MatchRecommendation(
                user_id=recommendation.user_id,
                profile_id=recommendation.profile_id,
                candidate_user_id=recommendation.candidate_user_id,
                compatibility_data=recommendation.compatibility_score.to_dict(),
                compatibility_score=recommendation.compatibility_score.overall,
                recommendation_reason=recommendation.recommendation_reason,
                priority=recommendation.priority,
                generated_at=recommendation.generated_at,
                expires_at=recommendation.expires_at,
            ))
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.warning("[compatibility] failed to store recommendation: %s", e)
