"""Data models for the matrimony backend."""

from nikah.models.profile import (
    Account,
    PartnerPreferences,
    ProfileVisibility,
    Role,
    UserProfile,
)
from nikah.models.interest import (
    Interest,
    InterestStatus,
    InterestType,
    MutualMatch,
)
from nikah.models.notification import (
    Notification,
    NotificationPriority,
    NotificationType,
)
from nikah.models.moderation import (
    ModerationAction,
    ModerationHistory,
    ReportCategory,
    ReportPriority,
    ReportStatus,
    UserReport,
    UserSuspension,
    VerificationRequest,
    VerificationStatus,
)
from nikah.models.content import ContentType, IslamicContent
from nikah.models.compatibility import (
    AnalyticsKind,
    CompatibilityBreakdown,
    CompatibilityRecord,
    CompatibilityScore,
    ConfidenceLevel,
    EducationCompatibility,
    FamilyCompatibility,
    LearningData,
    LifestyleCompatibility,
    LocationCompatibility,
    MatchAnalytics,
    MatchRecommendation,
    PersonalityCompatibility,
    Recommendation,
    RecommendationPriority,
    ReligiousCompatibility,
)
from nikah.models.status import UserActivity, UserStatus
from nikah.models.offline import CachedEntry, OfflineAction, StoredPreference

__all__ = [
    # Profiles
    "Account",
    "PartnerPreferences",
    "ProfileVisibility",
    "Role",
    "UserProfile",
    # Interests
    "Interest",
    "InterestStatus",
    "InterestType",
    "MutualMatch",
    # Notifications
    "Notification",
    "NotificationPriority",
    "NotificationType",
    # Moderation
    "ModerationAction",
    "ModerationHistory",
    "ReportCategory",
    "ReportPriority",
    "ReportStatus",
    "UserReport",
    "UserSuspension",
    "VerificationRequest",
    "VerificationStatus",
    # Content
    "ContentType",
    "IslamicContent",
    # Compatibility
    "AnalyticsKind",
    "CompatibilityBreakdown",
    "CompatibilityRecord",
    "CompatibilityScore",
    "ConfidenceLevel",
    "EducationCompatibility",
    "FamilyCompatibility",
    "LearningData",
    "LifestyleCompatibility",
    "LocationCompatibility",
    "MatchAnalytics",
    "MatchRecommendation",
    "PersonalityCompatibility",
    "Recommendation",
    "RecommendationPriority",
    "ReligiousCompatibility",
    # Status
    "UserActivity",
    "UserStatus",
    # Offline
    "CachedEntry",
    "OfflineAction",
    "StoredPreference",
]
