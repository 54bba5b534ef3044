"""LLM Service - Abstraction layer for AI model calls.

This module provides a unified interface for calling different LLM providers
(Gemini, OpenAI) with consistent error handling. The AI flows only ever see
``BaseLLMService.call``.

Interface Contract:
- call(prompt, json_mode=False) -> str (raw text)
- All methods raise LLMServiceError on failure
- Callers should not depend on specific LLM provider details
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod

import google.generativeai as genai
from openai import OpenAI

from config import DEFAULT_MODEL, LLM_PROVIDER, OPENAI_MODEL
from nikah.errors import ErrorType, NikahError

logger = logging.getLogger(__name__)


class LLMServiceError(NikahError):
    """Raised when LLM call fails."""
    error_type = ErrorType.AI


class BaseLLMService(ABC):
    """Abstract base class for LLM services."""

    @abstractmethod
    def call(self, prompt: str, *, json_mode: bool = False) -> str:
        """Call the LLM with a prompt.

        Args:
            prompt: The prompt to send to the LLM
            json_mode: If True, ask the provider for a JSON response

        Returns:
            str: The LLM response text

        Raises:
            LLMServiceError: If the call fails
        """


class GeminiService(BaseLLMService):
    """Google Gemini LLM service implementation."""

    def __init__(self, model: str = DEFAULT_MODEL):
        self.model = model
        self._configured = False

    def _configure(self) -> None:
        """Configure Gemini API (lazy initialization)."""
        if self._configured:
            return
        api_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        if not api_key:
            raise LLMServiceError("GEMINI_API_KEY or GOOGLE_API_KEY environment variable not set")
        genai.configure(api_key=api_key)
        self._configured = True

    def call(self, prompt: str, *, json_mode: bool = False) -> str:
        """Call Gemini model."""
        self._configure()
        try:
            gen_config = None
            if json_mode:
                gen_config = genai.GenerationConfig(response_mime_type="application/json")
            model = genai.GenerativeModel(self.model)
            response = model.generate_content(prompt, generation_config=gen_config)
            return response.text
        except Exception as e:
            raise LLMServiceError(f"Gemini call failed: {e}") from e


class OpenAIService(BaseLLMService):
    """OpenAI LLM service implementation."""

    def __init__(self, model: str = OPENAI_MODEL):
        self.model = model
        self._client: OpenAI | None = None

    def _get_client(self) -> OpenAI:
        """Get or create OpenAI client (lazy initialization)."""
        if self._client is None:
            api_key = os.environ.get("OPENAI_API_KEY")
            if not api_key:
                raise LLMServiceError("OPENAI_API_KEY environment variable not set")
            self._client = OpenAI(api_key=api_key)
        return self._client

    def call(self, prompt: str, *, json_mode: bool = False) -> str:
        """Call OpenAI model."""
        client = self._get_client()
        try:
            kwargs = {}
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            response = client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                **kwargs,
            )
            return response.choices[0].message.content or ""
        except Exception as e:
            raise LLMServiceError(f"OpenAI call failed: {e}") from e


def create_llm_service(provider: str = LLM_PROVIDER) -> BaseLLMService:
    """Build the service for a provider name."""
    if provider == "openai":
        return OpenAIService()
    if provider == "gemini":
        return GeminiService()
    raise LLMServiceError(f"Unknown LLM provider: {provider}")


class LLMService:
    """Facade for LLM services with provider switching."""

    _instance: BaseLLMService | None = None

    @classmethod
    def get_instance(cls) -> BaseLLMService:
        """Get the configured LLM service instance."""
        if cls._instance is None:
            cls._instance = create_llm_service()
            logger.info("[llm] using provider=%s", LLM_PROVIDER)
        return cls._instance

    @classmethod
    def set_instance(cls, service: BaseLLMService) -> None:
        """Set a custom LLM service (useful for testing)."""
        cls._instance = service

    @classmethod
    def reset(cls) -> None:
        """Reset to default service."""
        cls._instance = None


def call_llm(prompt: str, *, json_mode: bool = False) -> str:
    """Call the default LLM service."""
    return LLMService.get_instance().call(prompt, json_mode=json_mode)
