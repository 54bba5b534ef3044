"""AI flows - prompt templates with schema-checked structured output.

Each flow renders a prompt from a pydantic input model, asks the model for a
JSON object and validates the reply against a pydantic output model.

Interface Contract:
- generate_profile_suggestions(ProfileSuggestionsInput) -> ProfileSuggestionsOutput
- explain_match(ExplainMatchInput) -> ExplainMatchOutput
- calculate_compatibility(CompatibilityInput) -> CompatibilityOutput
- All flows raise AIFlowError on a failed call or malformed output
"""

from __future__ import annotations

import json
import logging
import re
from typing import Literal, TypeVar

from pydantic import BaseModel, Field, ValidationError

from nikah.errors import ErrorType, NikahError

logger = logging.getLogger(__name__)

CulturalContext = Literal["madhubani", "bihar", "general"]
RecommendationLevel = Literal["highly_recommended", "recommended", "consider", "not_recommended"]

OutputT = TypeVar("OutputT", bound=BaseModel)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class AIFlowError(NikahError):
    """Raised when a flow cannot produce schema-valid output."""
    error_type = ErrorType.AI


# ============================================================================
# Schemas
# ============================================================================

class ProfileSuggestionsInput(BaseModel):
    profile_details: str = Field(
        description="Profile details: education, occupation, religious practice, family background, village, sect, skills."
    )


class ProfileSuggestionsOutput(BaseModel):
    suggestions: str = Field(description="Suggestions for improving the profile or highlighting missing information.")


class ExplainMatchInput(BaseModel):
    user_profile: str
    match_profile: str


class ExplainMatchOutput(BaseModel):
    explanation: str = Field(description="Why the match was suggested.")


class CompatibilityInput(BaseModel):
    user_profile: str = Field(description="JSON of the profile seeking matches")
    candidate_profile: str = Field(description="JSON of the candidate profile to evaluate")
    user_preferences: str | None = Field(default=None, description="JSON of the user's partner preferences")
    cultural_context: CulturalContext = "madhubani"


class CompatibilityOutput(BaseModel):
    compatibility_score: float = Field(ge=0, le=100)
    explanation: str
    match_reasons: list[str]
    potential_concerns: list[str]
    recommendation_level: RecommendationLevel
    location_score: float = Field(ge=0, le=100)
    education_score: float = Field(ge=0, le=100)
    religious_score: float = Field(ge=0, le=100)
    family_score: float = Field(ge=0, le=100)
    lifestyle_score: float = Field(ge=0, le=100)
    personality_score: float = Field(ge=0, le=100)


# ============================================================================
# Prompts
# ============================================================================

PROFILE_SUGGESTIONS_PROMPT = """You are an AI assistant helping users create a complete and effective profile on a matrimony app.

Based on the initial profile details provided, suggest specific improvements or highlight missing information to make the profile more compelling.

Profile Details: {profile_details}"""

EXPLAIN_MATCH_PROMPT = """You are an expert matchmaker. Explain why the following two profiles are a good match, highlighting shared values, interests, and criteria.

Current User Profile: {user_profile}
Suggested Match Profile: {match_profile}"""

COMPATIBILITY_PROMPT = """You are an expert matrimony matchmaker specializing in Islamic matrimony in the Madhubani district of Bihar, India.

Analyze the compatibility between these two profiles and provide a comprehensive compatibility assessment.

User Profile (seeking matches): {user_profile}
Candidate Profile (to evaluate): {candidate_profile}
User Preferences: {user_preferences}
Cultural Context: {cultural_context}

Consider these factors in your analysis:

1. LOCATION COMPATIBILITY (Weight: High for Madhubani context)
   - Same village/block/district preference
   - Travel distance and family proximity
   - Cultural familiarity within Madhubani region

2. EDUCATION COMPATIBILITY (Weight: High)
   - Educational level matching or complementarity
   - Career aspirations alignment

3. RELIGIOUS COMPATIBILITY (Weight: Very High for Islamic matrimony)
   - Sect matching (Sunni/Shia/Other)
   - Religious practice level alignment
   - Family religious background

4. FAMILY COMPATIBILITY (Weight: High in Indian context)
   - Family background and social status
   - Family type (nuclear/joint) preferences
   - Biradari/community matching if applicable

5. LIFESTYLE COMPATIBILITY (Weight: Medium)
   - Occupation compatibility
   - Skills and interests overlap

6. PERSONALITY COMPATIBILITY (Weight: Medium)
   - Communication style from bio analysis
   - Values and personality traits

Provide specific scores (0-100) for each category and an overall compatibility score.
Give practical, culturally-sensitive explanations that would help users understand the match quality.
Be honest about potential concerns while highlighting positive aspects."""

_OUTPUT_INSTRUCTIONS = """

Return a JSON object matching this JSON schema:
{schema}

Return ONLY the JSON object, no additional text."""


# ============================================================================
# Flow runner
# ============================================================================

def _default_llm():
    from nikah.services.llm_service import LLMService
    return LLMService.get_instance()


def strip_code_fences(text: str) -> str:
    """Drop a surrounding ```json fence if the model added one."""
    return _FENCE.sub("", text.strip()).strip()


def parse_output(raw: str, output_model: type[OutputT], flow: str) -> OutputT:
    try:
        data = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as e:
        raise AIFlowError(f"{flow}: invalid JSON response: {e}") from e
    try:
        return output_model.model_validate(data)
    except ValidationError as e:
        raise AIFlowError(f"{flow}: response does not match schema: {e.error_count()} error(s)", details=e.errors(include_url=False)) from e


def run_flow(prompt: str, output_model: type[OutputT], *, flow: str, llm=None) -> OutputT:
    llm = llm or _default_llm()
    full_prompt = prompt + _OUTPUT_INSTRUCTIONS.format(
        schema=json.dumps(output_model.model_json_schema(), indent=2)
    )
    logger.info("[ai] %s prompt_chars=%d", flow, len(full_prompt))
    try:
        raw = llm.call(full_prompt, json_mode=True)
    except NikahError as e:
        raise AIFlowError(f"{flow}: {e}") from e
    except Exception as e:
        raise AIFlowError(f"{flow}: model call failed: {e}") from e
    return parse_output(raw, output_model, flow)


# ============================================================================
# Flows
# ============================================================================

def generate_profile_suggestions(data: ProfileSuggestionsInput, *, llm=None) -> ProfileSuggestionsOutput:
    prompt = PROFILE_SUGGESTIONS_PROMPT.format(profile_details=data.profile_details)
    return run_flow(prompt, ProfileSuggestionsOutput, flow="profile_suggestions", llm=llm)


def explain_match(data: ExplainMatchInput, *, llm=None) -> ExplainMatchOutput:
    prompt = EXPLAIN_MATCH_PROMPT.format(user_profile=data.user_profile, match_profile=data.match_profile)
    return run_flow(prompt, ExplainMatchOutput, flow="explain_match", llm=llm)


def calculate_compatibility(data: CompatibilityInput, *, llm=None) -> CompatibilityOutput:
    prompt = COMPATIBILITY_PROMPT.format(
        user_profile=data.user_profile,
        candidate_profile=data.candidate_profile,
        user_preferences=data.user_preferences or "Not specified",
        cultural_context=data.cultural_context,
    )
    return run_flow(prompt, CompatibilityOutput, flow="compatibility", llm=llm)
