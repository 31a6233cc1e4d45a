"""Video Content Moderator - Moderation LLM Client
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Sends the moderation prompt to a hosted LLM and returns its raw text.

Supports:
- Google Gemini (gemini-2.0-flash)
- Anthropic (Claude Sonnet)
- OpenAI (GPT-4o)

There is no heuristic fallback for generation: if no provider is
configured or the call fails, LLMError is raised and the endpoint
reports an upstream failure.
"""

import logging
from typing import Optional

from anthropic import AsyncAnthropic
from google import genai
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "gemini": "gemini-2.0-flash",
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o",
}

SUPPORTED_PROVIDERS = tuple(DEFAULT_MODELS)

MAX_OUTPUT_TOKENS = 2048
TEMPERATURE = 0.2


class LLMError(Exception):
    """The LLM could not produce a moderation response."""


class ModerationLLM:
    """
    Provider-pluggable async LLM caller used by the moderation endpoint.
    """

    def __init__(
        self,
        gemini_api_key: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        provider: str = "auto",
        model: Optional[str] = None,
    ):
        """
        Initialize the moderation LLM client.

        Args:
            gemini_api_key: Google Gemini API key
            anthropic_api_key: Anthropic API key
            openai_api_key: OpenAI API key
            provider: "gemini", "anthropic", "openai", or "auto" (first configured key wins)
            model: Override model name (default: per-provider default)
        """
        self._keys = {
            "gemini": gemini_api_key,
            "anthropic": anthropic_api_key,
            "openai": openai_api_key,
        }
        self._client = None

        provider = (provider or "auto").lower()
        if provider == "auto":
            self.provider = next((name for name in SUPPORTED_PROVIDERS if self._keys[name]), "none")
        elif provider in SUPPORTED_PROVIDERS:
            self.provider = provider
        else:
            logger.warning(f"Unknown LLM provider '{provider}', moderation disabled")
            self.provider = "none"

        self.model = model or DEFAULT_MODELS.get(self.provider, "none")

        self._init_client()

        logger.info(f"Moderation LLM initialized: provider={self.provider}, model={self.model}")

    def _init_client(self):
        """Create the SDK client for the selected provider if its key is set."""
        api_key = self._keys.get(self.provider)
        if not api_key:
            if self.provider != "none":
                logger.warning(f"No API key configured for LLM provider '{self.provider}'")
            return

        if self.provider == "gemini":
            self._client = genai.Client(api_key=api_key)
        elif self.provider == "anthropic":
            self._client = AsyncAnthropic(api_key=api_key)
        elif self.provider == "openai":
            self._client = AsyncOpenAI(api_key=api_key)

    @property
    def is_enabled(self) -> bool:
        """Check if an LLM provider is available."""
        return self._client is not None

    async def generate(self, prompt: str) -> str:
        """
        Run the prompt through the configured provider.

        Returns:
            The model's raw text response.

        Raises:
            LLMError: no provider configured, SDK failure, or empty response.
        """
        if not self.is_enabled:
            raise LLMError("No LLM provider configured")

        try:
            if self.provider == "gemini":
                text = await self._generate_with_gemini(prompt)
            elif self.provider == "anthropic":
                text = await self._generate_with_anthropic(prompt)
            else:
                text = await self._generate_with_openai(prompt)
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(f"{self.provider} request failed: {e}") from e

        if not text or not text.strip():
            raise LLMError(f"{self.provider} returned an empty response")

        logger.info(f"LLM moderation response received: provider={self.provider}, chars={len(text)}")
        return text

    async def _generate_with_gemini(self, prompt: str) -> str:
        """Call Gemini API."""
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
        )
        return response.text or ""

    async def _generate_with_anthropic(self, prompt: str) -> str:
        """Call Anthropic API."""
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=MAX_OUTPUT_TOKENS,
            messages=[{"role": "user", "content": prompt}],
            temperature=TEMPERATURE,
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )

    async def _generate_with_openai(self, prompt: str) -> str:
        """Call OpenAI API."""
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=TEMPERATURE,
            max_tokens=MAX_OUTPUT_TOKENS,
        )
        return response.choices[0].message.content or ""
