"""ProfileService unit tests.

Tests cover:
- Create / update / delete with completeness scoring
- Search filters, text search and location search
- Photo privacy and profile visibility
- View counting and stats
"""

from datetime import date

import pytest

from nikah.errors import NotFoundError, PermissionDeniedError, ValidationFailedError
from nikah.models import Interest, Notification
from nikah.services.profile_service import (
    ProfileServiceError,
    SearchFilters,
    calculate_profile_completion,
    nearby_districts,
    opposite_gender,
)
from nikah.validation import ProfileCreateRequest, validate_payload

from conftest import api_profile, profile_data


def accept_both_ways(session, a, b):
    session.add_all([
        Interest(sender_id=a, receiver_id=b, status="accepted"),
        Interest(sender_id=b, receiver_id=a, status="accepted"),
    ])
    session.commit()


# ============================================================================
# CRUD
# ============================================================================

class TestCreateProfile:
    """Test ProfileService.create_profile()."""

    def test_defaults(self, bride):
        """Test privacy-friendly defaults on a new profile."""
        assert bride.is_photo_blurred is True
        assert bride.profile_visibility == "members"
        assert bride.is_verified is False
        assert bride.is_active is True
        assert bride.profile_view_count == 0

    def test_age_from_date_of_birth(self, bride):
        today = date.today()
        expected = today.year - 1998 - ((today.month, today.day) < (5, 14))

        assert bride.age == expected

    def test_complete_profile_flag(self, bride):
        assert bride.is_profile_complete is True

    def test_from_pydantic_request(self, profile_service):
        request = validate_payload(ProfileCreateRequest, api_profile(
            looking_for={"age_min": 25, "age_max": 32, "sect": ["Sunni"]},
        ))

        profile = profile_service.create_profile("user_x", request)

        assert profile.looking_for["age_min"] == 25
        assert profile.looking_for["sect"] == ["Sunni"]

    def test_text_is_sanitised(self, profile_service):
        profile = profile_service.create_profile("user_x", profile_data(bio="Hello <script>x()</script>world"))

        assert profile.bio == "Hello world"

    def test_one_profile_per_account(self, profile_service, bride):
        with pytest.raises(ProfileServiceError):
            profile_service.create_profile("user_bride", profile_data())

    def test_underage(self, profile_service):
        today = date.today()
        with pytest.raises(ValidationFailedError):
            profile_service.create_profile("user_x", profile_data(date_of_birth=date(today.year - 15, 1, 1)))


class TestUpdateProfile:
    """Test updates and completeness."""

    def test_update_fields(self, profile_service, bride):
        profile = profile_service.update_profile("user_bride", {"occupation": "Doctor", "bio": "<i>New</i> bio"})

        assert profile.occupation == "Doctor"
        assert profile.bio == "New bio"

    def test_update_ignores_identity_fields(self, profile_service, bride):
        profile = profile_service.update_profile("user_bride", {"user_id": "someone_else", "id": "x"})

        assert profile.user_id == "user_bride"
        assert profile.id == bride.id

    def test_completeness_recomputed(self, profile_service, bride):
        profile = profile_service.update_profile("user_bride", {"bio": "", "family_background": "", "education": ""})

        assert profile.is_profile_complete is False

    def test_update_missing_profile(self, profile_service):
        with pytest.raises(NotFoundError):
            profile_service.update_profile("nobody", {"bio": "x"})

    def test_delete(self, profile_service, bride):
        profile_service.delete_profile("user_bride")

        assert profile_service.get_profile("user_bride") is None


class TestHelpers:
    """Test module helpers."""

    def test_completion_weighting(self):
        required_only = {
            "name": "A", "age": 25, "gender": "male", "district": "Madhubani", "education": "Graduate",
            "occupation": "Teacher", "sect": "Sunni", "bio": "bio", "family_background": "family",
        }

        assert calculate_profile_completion(required_only) == 70
        assert calculate_profile_completion({}) == 0

    def test_empty_lists_do_not_count(self):
        assert calculate_profile_completion({"skills": []}) == 0

    def test_nearby_districts(self):
        assert "Darbhanga" in nearby_districts("Madhubani")
        assert nearby_districts("Patna") == ["Patna"]

    def test_opposite_gender(self):
        assert opposite_gender("male") == "female"
        assert opposite_gender("female") == "male"


# ============================================================================
# Search
# ============================================================================

class TestSearch:
    """Test profile search."""

    def test_gender_filter(self, profile_service, bride, groom, other_groom):
        result = profile_service.search_profiles(SearchFilters(gender="male"))

        assert {p.user_id for p in result.profiles} == {"user_groom", "user_groom2"}
        assert result.total == 2

    def test_age_filter(self, profile_service, bride, groom, other_groom):
        result = profile_service.search_profiles(SearchFilters(gender="male", age_min=groom.age + 1))

        assert [p.user_id for p in result.profiles] == ["user_groom2"]

    def test_district_and_education(self, profile_service, bride, groom, other_groom):
        result = profile_service.search_profiles(SearchFilters(districts=["Darbhanga"], education_levels=["Doctorate"]))

        assert [p.user_id for p in result.profiles] == ["user_groom2"]

    def test_excludes_users(self, profile_service, bride, groom, other_groom):
        result = profile_service.search_profiles(SearchFilters(exclude_user_ids=["user_bride", "user_groom"]))

        assert [p.user_id for p in result.profiles] == ["user_groom2"]

    def test_inactive_hidden(self, profile_service, session, bride, groom):
        groom.is_active = False
        session.commit()

        result = profile_service.search_profiles()

        assert [p.user_id for p in result.profiles] == ["user_bride"]

    @pytest.mark.parametrize("flag", ["is_suspended", "is_restricted"])
    def test_sanctioned_hidden(self, profile_service, session, bride, groom, other_groom, flag):
        setattr(groom, flag, True)
        session.commit()

        result = profile_service.search_profiles(SearchFilters(gender="male"))

        assert [p.user_id for p in result.profiles] == ["user_groom2"]
        assert profile_service.search_profiles_with_text("ENGINEER").profiles == []

    def test_has_photo(self, profile_service, session, bride, groom):
        groom.profile_picture_id = "photo-1"
        session.commit()

        assert [p.user_id for p in profile_service.search_profiles(SearchFilters(has_photo=True)).profiles] == ["user_groom"]
        assert [p.user_id for p in profile_service.search_profiles(SearchFilters(has_photo=False)).profiles] == ["user_bride"]

    def test_paging(self, profile_service, bride, groom, other_groom):
        first = profile_service.search_profiles(SearchFilters(limit=2))
        second = profile_service.search_profiles(SearchFilters(limit=2, offset=2))

        assert len(first.profiles) == 2
        assert first.has_more
        assert len(second.profiles) == 1
        assert not second.has_more

    def test_limit_capped(self, profile_service, bride):
        assert profile_service.search_profiles(SearchFilters(limit=1000)).total == 1

    def test_text_search(self, profile_service, bride, groom, other_groom):
        result = profile_service.search_profiles_with_text("hospital")

        assert [p.user_id for p in result.profiles] == ["user_groom2"]

    def test_text_search_case_insensitive(self, profile_service, bride, groom):
        result = profile_service.search_profiles_with_text("ENGINEER")

        assert [p.user_id for p in result.profiles] == ["user_groom"]

    def test_location_search_includes_neighbours(self, profile_service, bride, groom, other_groom):
        nearby = profile_service.get_profiles_by_location("Madhubani", filters=SearchFilters(gender="male"))
        exact = profile_service.get_profiles_by_location("Madhubani", include_nearby=False, filters=SearchFilters(gender="male"))

        assert nearby.total == 2
        assert [p.user_id for p in exact.profiles] == ["user_groom"]


# ============================================================================
# Privacy & views
# ============================================================================

class TestPhotoPermission:
    """Test photo privacy rules."""

    def test_owner(self, profile_service, bride):
        permission = profile_service.check_photo_permission("user_bride", "user_bride")

        assert permission.can_view_original
        assert permission.reason == "owner"

    def test_admin(self, profile_service, bride):
        permission = profile_service.check_photo_permission("admin_1", "user_bride", "admin")

        assert permission.reason == "admin"

    def test_blurred_for_strangers(self, profile_service, bride, groom):
        permission = profile_service.check_photo_permission("user_groom", "user_bride")

        assert not permission.can_view_original
        assert permission.reason == "restricted"

    def test_one_sided_interest_not_enough(self, profile_service, session, bride, groom):
        session.add(Interest(sender_id="user_groom", receiver_id="user_bride", status="accepted"))
        session.commit()

        assert not profile_service.check_photo_permission("user_groom", "user_bride").can_view_original

    def test_mutual_interest_reveals(self, profile_service, session, bride, groom):
        accept_both_ways(session, "user_groom", "user_bride")

        permission = profile_service.check_photo_permission("user_groom", "user_bride")

        assert permission.can_view_original
        assert permission.reason == "mutual_interest"

    def test_unblurred(self, profile_service, bride, groom):
        profile_service.update_visibility_settings("user_bride", is_photo_blurred=False)

        assert profile_service.check_photo_permission("user_groom", "user_bride").reason == "unblurred"


class TestViewProfile:
    """Test visibility and view counting."""

    def test_member_view_counts_and_notifies(self, profile_service, session, bride, groom):
        data = profile_service.view_profile("user_groom", bride.id)

        assert data["photo_access"] == "restricted"
        assert "phone" not in data
        session.refresh(bride)
        assert bride.profile_view_count == 1
        [notification] = session.query(Notification).filter_by(user_id="user_bride").all()
        assert notification.type == "profile_view"
        assert "Imran Ahmad" in notification.message

    def test_owner_view_not_counted(self, profile_service, session, bride):
        data = profile_service.view_profile("user_bride", bride.id)

        assert data["photo_access"] == "owner"
        assert "date_of_birth" in data
        session.refresh(bride)
        assert bride.profile_view_count == 0

    def test_private_profile(self, profile_service, session, bride, groom):
        profile_service.update_visibility_settings("user_bride", profile_visibility="private")

        with pytest.raises(PermissionDeniedError):
            profile_service.view_profile("user_groom", bride.id)

        accept_both_ways(session, "user_groom", "user_bride")
        assert profile_service.view_profile("user_groom", bride.id)["photo_access"] == "mutual_interest"

    def test_banned_profile_hidden(self, profile_service, session, bride, groom):
        bride.is_banned = True
        session.commit()

        with pytest.raises(PermissionDeniedError):
            profile_service.view_profile("user_groom", bride.id)

    def test_missing_profile(self, profile_service):
        with pytest.raises(NotFoundError):
            profile_service.view_profile("user_groom", "missing")

    def test_stats(self, profile_service, session, bride, groom):
        session.add(Interest(sender_id="user_groom", receiver_id="user_bride"))
        session.commit()
        profile_service.increment_view_count(bride.id, "user_groom")

        stats = profile_service.get_profile_stats("user_bride")

        assert stats["view_count"] == 1
        assert stats["interests_received"] == 1
        assert stats["interests_sent"] == 0
        assert stats["profile_completion"] >= 80
