"""Account and profile models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field as dataclass_field
from datetime import date, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from nikah.db import Base, new_id, utcnow


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    MODERATOR = "moderator"
    SUPER_ADMIN = "super_admin"


STAFF_ROLES = {Role.ADMIN.value, Role.MODERATOR.value, Role.SUPER_ADMIN.value}


class ProfileVisibility(str, Enum):
    PUBLIC = "public"
    MEMBERS = "members"
    PRIVATE = "private"


GENDERS = ("male", "female")
SECTS = ("Sunni", "Shia", "Other")
MARITAL_STATUSES = ("single", "divorced", "widowed")
FAMILY_TYPES = ("nuclear", "joint")

DISTRICTS = ("Madhubani", "Darbhanga", "Sitamarhi", "Samastipur", "Muzaffarpur")
NEARBY_DISTRICTS = ("Darbhanga", "Sitamarhi", "Samastipur")
EDUCATION_LEVELS = (
    "High School", "Intermediate", "Graduate", "Post Graduate",
    "Professional Degree", "Doctorate", "Diploma", "Other",
)
OCCUPATIONS = (
    "Student", "Teacher", "Engineer", "Doctor", "Business",
    "Government Job", "Private Job", "Farmer", "Homemaker", "Other",
)


@dataclass
class PartnerPreferences:
    """What a member is looking for, stored as ``UserProfile.looking_for``."""
    age_min: int = 18
    age_max: int = 50
    education: list[str] = dataclass_field(default_factory=list)
    occupation: list[str] = dataclass_field(default_factory=list)
    location: list[str] = dataclass_field(default_factory=list)
    sect: list[str] = dataclass_field(default_factory=list)
    marital_status: list[str] = dataclass_field(default_factory=list)
    family_type: list[str] = dataclass_field(default_factory=list)
    must_have_photo: bool = False
    verified_only: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "PartnerPreferences":
        data = data or {}
        age_range = data.get("age_range") or {}
        return cls(
            age_min=int(data.get("age_min", age_range.get("min", 18))),
            age_max=int(data.get("age_max", age_range.get("max", 50))),
            education=list(data.get("education", [])),
            occupation=list(data.get("occupation", [])),
            location=list(data.get("location", [])),
            sect=list(data.get("sect", [])),
            marital_status=list(data.get("marital_status", [])),
            family_type=list(data.get("family_type", [])),
            must_have_photo=bool(data.get("must_have_photo", False)),
            verified_only=bool(data.get("verified_only", False)),
        )


class Account(Base):
    """Login identity. A profile hangs off ``Account.id`` as ``user_id``."""
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=Role.USER.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.pop("password_hash", None)
        return data


class UserProfile(Base):
    """Matrimony profile."""
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date)
    gender: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(20))

    # Geography
    district: Mapped[str] = mapped_column(String(64), nullable=False, default="Madhubani", index=True)
    block: Mapped[str | None] = mapped_column(String(64))
    village: Mapped[str | None] = mapped_column(String(128))

    # Education & career
    education: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    occupation: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    skills: Mapped[list] = mapped_column(JSON, default=list)

    # Religious & cultural
    sect: Mapped[str] = mapped_column(String(16), nullable=False, default="Sunni")
    sub_sect: Mapped[str | None] = mapped_column(String(64))
    biradari: Mapped[str | None] = mapped_column(String(64))
    religious_practice: Mapped[str] = mapped_column(String(255), default="")
    family_background: Mapped[str] = mapped_column(Text, default="")

    # Personal
    bio: Mapped[str] = mapped_column(Text, default="")
    family_type: Mapped[str | None] = mapped_column(String(16))
    marital_status: Mapped[str] = mapped_column(String(16), default="single")

    # Settings
    profile_picture_id: Mapped[str | None] = mapped_column(String(64))
    is_photo_blurred: Mapped[bool] = mapped_column(Boolean, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    is_profile_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    profile_visibility: Mapped[str] = mapped_column(String(16), default=ProfileVisibility.MEMBERS.value)

    # Partner preferences, see ``PartnerPreferences``
    looking_for: Mapped[dict | None] = mapped_column(JSON)
    location_preference: Mapped[list | None] = mapped_column(JSON)
    education_preference: Mapped[list | None] = mapped_column(JSON)

    # Moderation flags
    is_suspended: Mapped[bool] = mapped_column(Boolean, default=False)
    suspension_end_date: Mapped[datetime | None] = mapped_column(DateTime)
    is_banned: Mapped[bool] = mapped_column(Boolean, default=False)
    banned_at: Mapped[datetime | None] = mapped_column(DateTime)
    is_restricted: Mapped[bool] = mapped_column(Boolean, default=False)

    # System
    profile_view_count: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    last_active_at: Mapped[datetime | None] = mapped_column(DateTime, default=utcnow, index=True)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if isinstance(self.date_of_birth, date):
            data["date_of_birth"] = self.date_of_birth.isoformat()
        return data

    def to_public_dict(self, *, show_photo: bool) -> dict[str, Any]:
        """Card shown to other members: no contact details, photo id only when allowed."""
        data = self.to_dict()
        for key in ("email", "phone", "date_of_birth", "looking_for", "location_preference",
                    "education_preference", "is_banned", "banned_at", "is_restricted",
                    "is_suspended", "suspension_end_date"):
            data.pop(key, None)
        if not show_photo:
            data["profile_picture_id"] = None
        return data

    def to_ai_dict(self) -> dict[str, Any]:
        """Fields sent to the matching model."""
        return {
            "name": self.name,
            "age": self.age,
            "gender": self.gender,
            "district": self.district,
            "block": self.block,
            "village": self.village,
            "education": self.education,
            "occupation": self.occupation,
            "skills": list(self.skills or []),
            "sect": self.sect,
            "biradari": self.biradari,
            "religious_practice": self.religious_practice,
            "family_background": self.family_background,
            "family_type": self.family_type,
            "marital_status": self.marital_status,
            "bio": self.bio,
            "is_verified": self.is_verified,
        }
