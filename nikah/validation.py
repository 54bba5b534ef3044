"""Request validation and text sanitising.

Incoming JSON bodies are parsed into pydantic models. ``validate_payload``
turns a pydantic ``ValidationError`` into ``ValidationFailedError`` with a
field-level error list the client can render next to each input.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from nikah.errors import ValidationFailedError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^(\+91|91)?[6-9]\d{9}$")
NAME_PATTERN = re.compile(r"^[a-zA-Z\s.']+$")
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])")

_DANGEROUS_PATTERNS = [
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"on\w+\s*=\s*[\"'][^\"']*[\"']", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
    re.compile(r"\.\.[/\\]"),
]
_HTML_TAG = re.compile(r"<[^>]*>")
_EMPTY_LINES = re.compile(r"^\s*[\r\n]", re.MULTILINE)

MIN_AGE = 18
MAX_AGE = 100

ModelT = TypeVar("ModelT", bound=BaseModel)


def sanitize_text(value: str | None, *, max_length: int | None = None, remove_empty_lines: bool = False) -> str:
    """Strip markup and script vectors from free text."""
    if not isinstance(value, str):
        return ""
    text = unicodedata.normalize("NFC", value).strip()
    if remove_empty_lines:
        text = _EMPTY_LINES.sub("", text)
    for pattern in _DANGEROUS_PATTERNS:
        text = pattern.sub("", text)
    text = _HTML_TAG.sub("", text)
    if max_length and len(text) > max_length:
        text = text[:max_length]
    return text


def sanitize_search_query(query: str | None) -> str:
    return sanitize_text(query, max_length=100)


def sanitize_message(message: str | None) -> str:
    return sanitize_text(message, max_length=500, remove_empty_lines=True)


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value or ""))


def is_valid_phone(value: str) -> bool:
    return bool(PHONE_PATTERN.match(value or ""))


def calculate_age(date_of_birth: date, today: date | None = None) -> int:
    today = today or date.today()
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def validate_payload(model: type[ModelT], data: dict[str, Any] | None) -> ModelT:
    """Parse ``data`` into ``model`` or raise ``ValidationFailedError``."""
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"]) or "body",
                "message": err["msg"].removeprefix("Value error, "),
                "code": err["type"].upper(),
            }
            for err in e.errors()
        ]
        first = errors[0]["message"] if errors else "Invalid input"
        raise ValidationFailedError(first, errors) from e


# ============================================================================
# Auth
# ============================================================================

class LoginRequest(BaseModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        v = v.strip().lower()
        if not is_valid_email(v):
            raise ValueError("Please enter a valid email address")
        return v


class RegisterRequest(LoginRequest):
    name: str = Field(min_length=2, max_length=50)
    password: str = Field(min_length=8)
    confirm_password: str

    @field_validator("password")
    @classmethod
    def _strong_password(cls, v: str) -> str:
        if not PASSWORD_PATTERN.match(v):
            raise ValueError(
                "Password must contain upper and lower case letters, a number and a special character"
            )
        return v

    @model_validator(mode="after")
    def _passwords_match(self) -> "RegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


# ============================================================================
# Profiles
# ============================================================================

class PartnerPreferencesInput(BaseModel):
    age_min: int = Field(default=18, ge=MIN_AGE, le=MAX_AGE)
    age_max: int = Field(default=50, ge=MIN_AGE, le=MAX_AGE)
    education: list[str] = Field(default_factory=list)
    occupation: list[str] = Field(default_factory=list)
    location: list[str] = Field(default_factory=list)
    sect: list[str] = Field(default_factory=list)
    marital_status: list[str] = Field(default_factory=list)
    family_type: list[str] = Field(default_factory=list)
    must_have_photo: bool = False
    verified_only: bool = False

    @model_validator(mode="after")
    def _range(self) -> "PartnerPreferencesInput":
        if self.age_min > self.age_max:
            raise ValueError("Minimum age cannot exceed maximum age")
        return self


class ProfileCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=50)
    date_of_birth: date
    gender: Literal["male", "female"]
    district: str = Field(min_length=2, max_length=50)
    block: str = Field(min_length=2, max_length=50)
    village: str | None = Field(default=None, max_length=100)
    education: str = Field(min_length=2, max_length=100)
    occupation: str = Field(min_length=2, max_length=100)
    sect: Literal["Sunni", "Shia", "Other"]
    sub_sect: str | None = None
    biradari: str | None = None
    religious_practice: str = Field(default="", max_length=255)
    family_background: str = Field(default="", max_length=1000)
    bio: str = Field(default="", max_length=500)
    email: str | None = None
    phone: str | None = None
    skills: list[str] = Field(default_factory=list)
    family_type: Literal["nuclear", "joint"] | None = None
    marital_status: Literal["single", "divorced", "widowed"] = "single"
    looking_for: PartnerPreferencesInput | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        if not NAME_PATTERN.match(v):
            raise ValueError("Name format is invalid")
        return v

    @field_validator("date_of_birth")
    @classmethod
    def _adult(cls, v: date) -> date:
        age = calculate_age(v)
        if age < MIN_AGE:
            raise ValueError(f"Age must be at least {MIN_AGE} years")
        if age > MAX_AGE:
            raise ValueError(f"Age must not exceed {MAX_AGE} years")
        return v

    @field_validator("email")
    @classmethod
    def _email(cls, v: str | None) -> str | None:
        if v and not is_valid_email(v):
            raise ValueError("Please enter a valid email address")
        return v or None

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str | None) -> str | None:
        if v and not is_valid_phone(v.replace(" ", "")):
            raise ValueError("Please enter a valid Indian phone number")
        return v.replace(" ", "") if v else None


class ProfileUpdateRequest(BaseModel):
    """Every field optional; only the ones sent are applied."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str | None = Field(default=None, min_length=2, max_length=50)
    district: str | None = Field(default=None, min_length=2, max_length=50)
    block: str | None = Field(default=None, min_length=2, max_length=50)
    village: str | None = Field(default=None, max_length=100)
    education: str | None = Field(default=None, min_length=2, max_length=100)
    occupation: str | None = Field(default=None, min_length=2, max_length=100)
    sect: Literal["Sunni", "Shia", "Other"] | None = None
    sub_sect: str | None = None
    biradari: str | None = None
    religious_practice: str | None = Field(default=None, max_length=255)
    family_background: str | None = Field(default=None, max_length=1000)
    bio: str | None = Field(default=None, max_length=500)
    phone: str | None = None
    skills: list[str] | None = None
    family_type: Literal["nuclear", "joint"] | None = None
    marital_status: Literal["single", "divorced", "widowed"] | None = None
    profile_picture_id: str | None = None
    looking_for: PartnerPreferencesInput | None = None
    location_preference: list[str] | None = None
    education_preference: list[str] | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str | None) -> str | None:
        if v is not None and not NAME_PATTERN.match(v):
            raise ValueError("Name format is invalid")
        return v

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str | None) -> str | None:
        if v and not is_valid_phone(v.replace(" ", "")):
            raise ValueError("Please enter a valid Indian phone number")
        return v.replace(" ", "") if v else None


class VisibilityRequest(BaseModel):
    profile_visibility: Literal["public", "members", "private"] | None = None
    is_photo_blurred: bool | None = None


class SearchRequest(BaseModel):
    gender: Literal["male", "female"] | None = None
    age_min: int | None = Field(default=None, ge=MIN_AGE, le=MAX_AGE)
    age_max: int | None = Field(default=None, ge=MIN_AGE, le=MAX_AGE)
    districts: list[str] | None = None
    education_levels: list[str] | None = None
    sects: list[str] | None = None
    occupations: list[str] | None = None
    marital_status: list[str] | None = None
    is_verified: bool | None = None
    has_photo: bool | None = None
    query: str | None = None
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


# ============================================================================
# Interests, reports, verification
# ============================================================================

class InterestRequest(BaseModel):
    receiver_id: str = Field(min_length=1)
    type: Literal["proposal", "favorite", "contact_request"] = "proposal"
    message: str | None = Field(default=None, max_length=500)


class InterestResponseRequest(BaseModel):
    response: Literal["accepted", "declined"]


class ReportRequest(BaseModel):
    reported_user_id: str = Field(min_length=1)
    category: Literal[
        "inappropriate_content", "fake_profile", "harassment", "spam", "inappropriate_photos",
        "scam_fraud", "underage", "violence_threats", "hate_speech", "other",
    ]
    reason: str = Field(min_length=3, max_length=255)
    description: str = Field(default="", max_length=2000)
    evidence: list[str] = Field(default_factory=list)
    is_anonymous: bool = False


class ModerationActionRequest(BaseModel):
    action: Literal[
        "no_action", "warning_sent", "content_removed", "profile_suspended",
        "account_banned", "profile_restricted", "verification_revoked",
    ]
    resolution: str = Field(min_length=1)
    notify_reporter: bool = False
    notify_reported: bool = False
    suspension_duration: int | None = Field(default=None, ge=1, le=365)


class BulkModerationRequest(BaseModel):
    report_ids: list[str] = Field(min_length=1)
    action: Literal["resolve", "dismiss", "escalate"]
    resolution: str | None = None


class VerificationSubmitRequest(BaseModel):
    document_type: Literal["aadhaar", "pan", "voter_id", "passport", "driving_license"]
    document_id: str | None = None


class VerificationReviewRequest(BaseModel):
    decision: Literal["approved", "rejected"]
    notes: str | None = None
    rejection_reason: str | None = None

    @model_validator(mode="after")
    def _reason_when_rejected(self) -> "VerificationReviewRequest":
        if self.decision == "rejected" and not self.rejection_reason:
            raise ValueError("A rejection reason is required")
        return self


# ============================================================================
# Content
# ============================================================================

class ContentCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    type: Literal["Quran", "Hadith", "Quote"]
    source: str = Field(min_length=1, max_length=255)
    english_text: str = Field(min_length=1, max_length=2000)
    arabic_text: str | None = Field(default=None, max_length=2000)
    urdu_text: str | None = Field(default=None, max_length=2000)
    hindi_text: str | None = Field(default=None, max_length=2000)
    attribution: str | None = Field(default=None, max_length=255)
    category: str = Field(default="marriage", max_length=64)
    tags: list[str] = Field(default_factory=list)
    display_order: int = Field(default=0, ge=0)


class ContentUpdateRequest(BaseModel):
    """Partial update; ``is_active`` alone just toggles visibility."""
    model_config = ConfigDict(str_strip_whitespace=True)

    type: Literal["Quran", "Hadith", "Quote"] | None = None
    source: str | None = Field(default=None, min_length=1, max_length=255)
    english_text: str | None = Field(default=None, min_length=1, max_length=2000)
    arabic_text: str | None = Field(default=None, max_length=2000)
    urdu_text: str | None = Field(default=None, max_length=2000)
    hindi_text: str | None = Field(default=None, max_length=2000)
    attribution: str | None = Field(default=None, max_length=255)
    category: str | None = Field(default=None, max_length=64)
    tags: list[str] | None = None
    display_order: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class FeedbackRequest(BaseModel):
    match_user_id: str = Field(min_length=1)
    feedback: Literal["excellent", "good", "average", "poor"]
    reasons: list[str] = Field(default_factory=list)


class InteractionRequest(BaseModel):
    target_user_id: str = Field(min_length=1)
    interaction_type: Literal["view", "interest", "favorite", "skip", "block"]
    context_data: dict[str, Any] = Field(default_factory=dict)
