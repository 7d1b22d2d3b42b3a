"""Notification port — abstract interface for sending messages to users.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules."""

    async def send_message(self, chat_id: str, text: str) -> None: ...

    async def send_nudge(self, chat_id: str, nudge_id: str, text: str) -> str:
        """Send a nudge with response buttons; returns the platform message id."""
        ...

    async def answer_callback(self, callback_id: str, text: str | None = None) -> None: ...
