"""
Fireworks AI client for chat completion.
Provides wrapper around the Fireworks API with retry logic.
"""

import logging
from functools import lru_cache
from typing import Dict, List, Optional

from fireworks.client import Fireworks
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_not_exception_type

from booking_intake.config import get_settings


logger = logging.getLogger(__name__)


class LLMNotConfigured(Exception):
    """Raised when a completion is requested without an API key."""


class FireworksClient:
    """
    Wrapper for Fireworks AI chat completions.
    Used as the text-completion collaborator of the conversational extractor.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """Initialize from settings; the SDK client is created on first use."""
        settings = get_settings()
        self.api_key = settings.fireworks_api_key if api_key is None else api_key
        self.llm_model = model or settings.fireworks_llm_model
        self._client: Optional[Fireworks] = None

    @property
    def client(self) -> Fireworks:
        if not self.api_key:
            raise LLMNotConfigured("FIREWORKS_API_KEY is not set")
        if self._client is None:
            self._client = Fireworks(api_key=self.api_key)
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        retry=retry_if_not_exception_type(LLMNotConfigured),
        reraise=True,
    )
    def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.1,
        json_mode: bool = True,
        max_tokens: int = 1024,
    ) -> str:
        """
        Run a chat completion.

        Args:
            messages: Chat messages (role/content dicts)
            temperature: Sampling temperature (lower = more deterministic)
            json_mode: Ask the model for a JSON object response
            max_tokens: Maximum tokens to generate

        Returns:
            Raw text of the first choice
        """
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = self.client.chat.completions.create(
            model=self.llm_model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )
        return response.choices[0].message.content or ""


@lru_cache()
def get_fireworks_client() -> FireworksClient:
    """Get cached Fireworks client instance."""
    return FireworksClient()
