"""Service layer - Business logic modules.

Each service wraps one SQLAlchemy session and commits its own changes.
"""

from .llm_service import LLMService
from .notification_service import NotificationService
from .mutual_match import MutualMatchDetector
from .interest_service import InterestService
from .profile_service import ProfileService
from .compatibility_service import CompatibilityService
from .recommendation_service import RecommendationService
from .moderation_service import ModerationService
from .verification_service import VerificationService
from .content_service import ContentService
from .status_service import StatusService

__all__ = [
    "LLMService",
    "NotificationService",
    "MutualMatchDetector",
    "InterestService",
    "ProfileService",
    "CompatibilityService",
    "RecommendationService",
    "ModerationService",
    "VerificationService",
    "ContentService",
    "StatusService",
]
