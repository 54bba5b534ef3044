"""Compatibility scores, stored recommendations and match analytics.

The breakdown types are plain dataclasses; the tables keep them as JSON.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field as dataclass_field
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from nikah.db import Base, new_id, utcnow


class ConfidenceLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecommendationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AnalyticsKind(str, Enum):
    LEARNING = "learning"
    FEEDBACK = "feedback"
    SESSION = "recommendation_generation"


@dataclass
class LocationCompatibility:
    score: float
    distance: str  # same_village, same_block, same_district, nearby_district, distant
    explanation: str


@dataclass
class EducationCompatibility:
    score: float
    level_match: str  # exact, compatible, complementary, different
    explanation: str


@dataclass
class ReligiousCompatibility:
    score: float
    sect_match: bool
    practice_level: str  # very_similar, similar, somewhat_different, different
    explanation: str


@dataclass
class FamilyCompatibility:
    score: float
    background_match: str  # very_similar, similar, complementary, different
    family_type_match: bool
    explanation: str


@dataclass
class LifestyleCompatibility:
    score: float
    occupation_match: str  # same_field, compatible, complementary, different
    skills_overlap: int
    explanation: str


@dataclass
class PersonalityCompatibility:
    score: float
    bio_similarity: int
    communication_style: str  # very_compatible, compatible, neutral, challenging
    explanation: str


@dataclass
class CompatibilityBreakdown:
    location: LocationCompatibility
    education: EducationCompatibility
    religious: ReligiousCompatibility
    family: FamilyCompatibility
    lifestyle: LifestyleCompatibility
    personality: PersonalityCompatibility

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompatibilityBreakdown":
        return cls(
            location=LocationCompatibility(**data["location"]),
            education=EducationCompatibility(**data["education"]),
            religious=ReligiousCompatibility(**data["religious"]),
            family=FamilyCompatibility(**data["family"]),
            lifestyle=LifestyleCompatibility(**data["lifestyle"]),
            personality=PersonalityCompatibility(**data["personality"]),
        )


@dataclass
class CompatibilityScore:
    """Overall score plus the per-dimension breakdown."""
    overall: float
    breakdown: CompatibilityBreakdown
    explanation: str
    match_reasons: list[str] = dataclass_field(default_factory=list)
    potential_concerns: list[str] = dataclass_field(default_factory=list)
    confidence_level: str = ConfidenceLevel.LOW.value

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompatibilityScore":
        return cls(
            overall=data.get("overall", 0),
            breakdown=CompatibilityBreakdown.from_dict(data["breakdown"]),
            explanation=data.get("explanation", ""),
            match_reasons=list(data.get("match_reasons", [])),
            potential_concerns=list(data.get("potential_concerns", [])),
            confidence_level=data.get("confidence_level", ConfidenceLevel.LOW.value),
        )


@dataclass
class Recommendation:
    """A candidate worth showing, with why."""
    profile_id: str
    user_id: str
    candidate_user_id: str
    compatibility_score: CompatibilityScore
    recommendation_reason: str
    priority: str
    generated_at: datetime
    expires_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "profile_id": self.profile_id,
            "user_id": self.user_id,
            "candidate_user_id": self.candidate_user_id,
            "compatibility_score": self.compatibility_score.to_dict(),
            "recommendation_reason": self.recommendation_reason,
            "priority": self.priority,
            "generated_at": self.generated_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }


@dataclass
class LearningData:
    """What a member's browsing says about their taste."""
    user_id: str
    age_min: int = 22
    age_max: int = 35
    education_levels: list[str] = dataclass_field(default_factory=list)
    occupations: list[str] = dataclass_field(default_factory=list)
    locations: list[str] = dataclass_field(default_factory=list)
    sects: list[str] = dataclass_field(default_factory=list)
    viewed_profiles: int = 0
    sent_interests: int = 0
    accepted_interests: int = 0
    average_compatibility_of_interests: float = 0.0

    @property
    def success_rate(self) -> float:
        return self.accepted_interests / max(self.sent_interests, 1)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LearningData":
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


class CompatibilityRecord(Base):
    __tablename__ = "compatibility_scores"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    candidate_user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    score_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    overall_score: Mapped[float] = mapped_column(Float, nullable=False)
    confidence_level: Mapped[str] = mapped_column(String(8), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)


class MatchRecommendation(Base):
    __tablename__ = "match_recommendations"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    profile_id: Mapped[str] = mapped_column(String(32), nullable=False)
    candidate_user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    compatibility_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    compatibility_score: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    recommendation_reason: Mapped[str] = mapped_column(Text, default="")
    priority: Mapped[str] = mapped_column(String(8), nullable=False)
    generated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    def to_recommendation(self) -> Recommendation:
        return Recommendation(
            profile_id=self.profile_id,
            user_id=self.user_id,
            candidate_user_id=self.candidate_user_id,
            compatibility_score=CompatibilityScore.from_dict(self.compatibility_data),
            recommendation_reason=self.recommendation_reason,
            priority=self.priority,
            generated_at=self.generated_at,
            expires_at=self.expires_at,
        )


class MatchAnalytics(Base):
    """Learning snapshots, feedback and recommendation sessions share one table."""
    __tablename__ = "match_analytics"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    match_user_id: Mapped[str | None] = mapped_column(String(32))
    feedback: Mapped[str | None] = mapped_column(String(16))
    reasons: Mapped[list | None] = mapped_column(JSON)
    learning_data: Mapped[dict | None] = mapped_column(JSON)
    recommendation_count: Mapped[int | None] = mapped_column(Integer)
    average_compatibility: Mapped[float | None] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
