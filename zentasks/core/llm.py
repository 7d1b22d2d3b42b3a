"""
Zen Tasks — LLM Provider Abstraction.

`LLMClient` routes completions to the configured provider and parses the
reply as JSON. Provider is selected on first use from the LLM_PROVIDER
setting. Supports: anthropic (default), openai, gemini, cohere.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

# Type alias for provider implementations
_ProviderFn = Callable[[str, str, str, str, int], Awaitable[str]]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class LLMResponseError(Exception):
    """Base class for unusable LLM output."""


class LLMParseError(LLMResponseError):
    """The reply could not be parsed as the expected JSON at all."""


class IncompleteResponseError(LLMResponseError):
    """The reply parsed, but lacks fields the caller needs.

    Callers treat this as a normal "nothing to do" outcome.
    """


# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _complete_anthropic(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        system=system,
        messages=[{"role": "user", "content": user_message}],
    )
    return "\n".join(block.text for block in response.content if block.type == "text")


async def _complete_openai(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.choices[0].message.content


async def _complete_gemini(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    gm = genai.GenerativeModel(
        model_name=model,
        system_instruction=system,
    )
    response = await gm.generate_content_async(
        user_message,
        generation_config=genai.types.GenerationConfig(max_output_tokens=max_tokens),
    )
    return response.text


async def _complete_cohere(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import cohere

    client = cohere.AsyncClientV2(api_key=api_key)
    response = await client.chat(
        model=model,
        max_tokens=max_tokens,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.message.content[0].text


_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "anthropic": (_complete_anthropic, "claude-haiku-4-5-20251001"),
    "openai":    (_complete_openai,    "gpt-4o-mini"),
    "gemini":    (_complete_gemini,    "gemini-2.0-flash"),
    "cohere":    (_complete_cohere,    "command-a-03-2025"),
}


# ---------------------------------------------------------------------------
# Response cleaning
# ---------------------------------------------------------------------------

_FENCE_OPEN = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def clean_llm_response(raw_text: str) -> str:
    """Remove markdown code fences (with an optional language tag)."""
    cleaned = raw_text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
        cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_json_response(raw_text: str) -> Any:
    """Parse an LLM reply as JSON, stripping code fences first.

    Raises LLMParseError on anything that is not valid JSON.
    """
    cleaned = clean_llm_response(raw_text or "")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse LLM response as JSON: %s — raw: '%s'", exc, raw_text)
        raise LLMParseError(f"Failed to parse JSON: {exc}") from exc


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class LLMClient:
    """LLMPort implementation backed by one of the supported providers."""

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
    ) -> None:
        if provider is None or api_key is None:
            from zentasks.config import settings
            provider = provider or settings.LLM_PROVIDER
            model = model or settings.LLM_MODEL
            api_key = api_key or settings.LLM_API_KEY

        provider_name = provider.lower()
        if provider_name not in _PROVIDERS:
            raise ValueError(
                f"Unknown LLM_PROVIDER={provider_name!r}. "
                f"Supported: {', '.join(_PROVIDERS)}"
            )

        self._provider_fn, default_model = _PROVIDERS[provider_name]
        self._model = model or default_model
        self._api_key = api_key
        logger.info("LLM provider: %s, model: %s", provider_name, self._model)

    async def complete(self, system: str, user_message: str, max_tokens: int = 1024) -> str:
        """Send a prompt to the provider and return the response text.

        Raises on API errors — callers should handle exceptions.
        """
        return await self._provider_fn(self._api_key, self._model, system, user_message, max_tokens)

    async def complete_json(self, system: str, user_message: str, max_tokens: int = 1024) -> Any:
        raw = await self.complete(system, user_message, max_tokens)
        logger.debug("LLM raw response: %s", raw)
        return parse_json_response(raw)
