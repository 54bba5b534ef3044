"""Shared test configuration and fixtures."""

import json
from datetime import date

import pytest

from nikah.db import Database
from nikah.services.llm_service import LLMService
from nikah.services.notification_service import NotificationService
from nikah.services.profile_service import ProfileService


COMPATIBILITY_RESPONSE = {
    "compatibility_score": 85,
    "explanation": "Both are from Madhubani and share Sunni practice.",
    "match_reasons": ["Same district", "Shared religious practice"],
    "potential_concerns": ["Different education levels"],
    "recommendation_level": "highly_recommended",
    "location_score": 90,
    "education_score": 70,
    "religious_score": 95,
    "family_score": 80,
    "lifestyle_score": 75,
    "personality_score": 85,
}


# ============================================================================
# Mock Services
# ============================================================================

class MockLLMService:
    """Mock LLM service for tests.

    Set ``response`` to control the reply. Set ``should_fail`` together with
    ``max_failures`` to simulate failures.
    """

    def __init__(self):
        self.response = json.dumps(COMPATIBILITY_RESPONSE)
        self.should_fail = False
        self.fail_count = 0
        self.max_failures = 0
        self.call_count = 0
        self.prompts = []

    def call(self, prompt: str, *, json_mode: bool = False) -> str:
        self.call_count += 1
        self.prompts.append(prompt)

        if self.should_fail:
            if self.fail_count < self.max_failures:
                self.fail_count += 1
                raise Exception("Mock LLM failure")

        return self.response

    def reset(self):
        """Reset counters."""
        self.call_count = 0
        self.fail_count = 0
        self.prompts = []


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def database() -> Database:
    """Fresh in-memory database with every table created."""
    db = Database("sqlite://")
    db.create_all()
    yield db
    db.drop_all()
    db.engine.dispose()


@pytest.fixture
def session(database):
    s = database.session()
    yield s
    s.close()


@pytest.fixture
def notifications(session) -> NotificationService:
    return NotificationService(session)


@pytest.fixture
def profile_service(session, notifications) -> ProfileService:
    return ProfileService(session, notifications)


# ============================================================================
# Profile Fixtures
# ============================================================================

def profile_data(**overrides) -> dict:
    """Valid profile payload; override any field per test."""
    data = {
        "name": "Ayesha Khatoon",
        "date_of_birth": date(1998, 5, 14),
        "gender": "female",
        "district": "Madhubani",
        "block": "Rajnagar",
        "village": "Bhaurah",
        "education": "Graduate",
        "occupation": "Teacher",
        "sect": "Sunni",
        "religious_practice": "Regular prayers",
        "family_background": "Respected family of teachers from Rajnagar",
        "bio": "Teacher at the village school, fond of reading and cooking.",
        "skills": ["teaching", "cooking"],
        "family_type": "joint",
        "marital_status": "single",
    }
    data.update(overrides)
    return data


@pytest.fixture
def bride(profile_service):
    """Female member in Madhubani."""
    return profile_service.create_profile("user_bride", profile_data())


@pytest.fixture
def groom(profile_service):
    """Male member in Madhubani."""
    return profile_service.create_profile("user_groom", profile_data(
        name="Imran Ahmad",
        date_of_birth=date(1995, 2, 3),
        gender="male",
        village="Jhanjharpur",
        education="Post Graduate",
        occupation="Engineer",
        family_background="Business family settled in Rajnagar for generations",
        bio="Software engineer working in Patna, visits home every month.",
        skills=["programming", "cooking"],
    ))


@pytest.fixture
def other_groom(profile_service):
    """Male member in a neighbouring district."""
    return profile_service.create_profile("user_groom2", profile_data(
        name="Salman Raza",
        date_of_birth=date(1993, 8, 21),
        gender="male",
        district="Darbhanga",
        block="Benipur",
        village=None,
        education="Doctorate",
        occupation="Doctor",
        bio="Doctor at the district hospital.",
        skills=["medicine"],
    ))


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def mock_llm() -> MockLLMService:
    """Mock LLM returning a valid compatibility reply."""
    return MockLLMService()


@pytest.fixture
def mock_llm_with_suggestions(mock_llm: MockLLMService) -> MockLLMService:
    mock_llm.response = '{"suggestions": "Add your family type and a photo."}'
    return mock_llm


# ============================================================================
# Flask
# ============================================================================

@pytest.fixture
def app(database, mock_llm):
    from app import app as flask_app

    flask_app.config.update(TESTING=True, DATABASE=database, LLM_SERVICE=mock_llm)
    LLMService.set_instance(mock_llm)
    yield flask_app
    flask_app.config.update(DATABASE=None, LLM_SERVICE=None)
    LLMService.reset()


@pytest.fixture
def client(app):
    return app.test_client()


STRONG_PASSWORD = "Secret@123"


def register(client, email: str, name: str = "Test User"):
    return client.post("/api/auth/register", json={
        "email": email,
        "name": name,
        "password": STRONG_PASSWORD,
        "confirm_password": STRONG_PASSWORD,
    })


def api_profile(**overrides) -> dict:
    """Profile payload as JSON (date as ISO string)."""
    data = profile_data(**overrides)
    if isinstance(data["date_of_birth"], date):
        data["date_of_birth"] = data["date_of_birth"].isoformat()
    return data
