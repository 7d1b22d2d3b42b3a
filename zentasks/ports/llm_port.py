"""LLM port — abstract interface for JSON-returning completions.

Core modules depend on this protocol so they can be exercised with a fake
that returns canned decisions.
"""

from __future__ import annotations

from typing import Any, Protocol


class LLMPort(Protocol):
    """Abstract LLM interface used by core modules."""

    async def complete_json(
        self, system: str, user_message: str, max_tokens: int = 1024
    ) -> Any:
        """Return the model's reply parsed as JSON.

        Raises LLMParseError when the reply is not valid JSON.
        """
        ...
