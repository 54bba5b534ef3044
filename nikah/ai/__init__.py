"""Generative-AI flows used by matching and profile tooling."""

from nikah.ai.flows import (
    AIFlowError,
    CompatibilityInput,
    CompatibilityOutput,
    ExplainMatchInput,
    ExplainMatchOutput,
    ProfileSuggestionsInput,
    ProfileSuggestionsOutput,
    calculate_compatibility,
    explain_match,
    generate_profile_suggestions,
)

__all__ = [
    "AIFlowError",
    "CompatibilityInput",
    "CompatibilityOutput",
    "ExplainMatchInput",
    "ExplainMatchOutput",
    "ProfileSuggestionsInput",
    "ProfileSuggestionsOutput",
    "calculate_compatibility",
    "explain_match",
    "generate_profile_suggestions",
]
