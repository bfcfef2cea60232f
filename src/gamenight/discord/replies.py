"""Interaction response envelopes.

Every router handler returns exactly one ``InteractionReply``. The endpoint
serializes ``envelope()`` as the HTTP response and, if present, schedules
``follow_up`` to run after the response has been sent (recording posts,
patching a deferred response, fanning out edits).
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import discord

# Message flags (not all are exposed as plain ints by discord.py).
EPHEMERAL = 1 << 6
IS_COMPONENTS_V2 = 1 << 15

FollowUp = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class InteractionReply:
    response_type: discord.InteractionResponseType
    data: dict[str, Any] | None = None
    follow_up: FollowUp | None = None

    def envelope(self) -> dict[str, Any]:
        body: dict[str, Any] = {"type": self.response_type.value}
        if self.data is not None:
            body["data"] = self.data
        return body

    @classmethod
    def pong(cls) -> InteractionReply:
        return cls(discord.InteractionResponseType.pong)

    @classmethod
    def message(
        cls,
        data: dict[str, Any],
        *,
        follow_up: FollowUp | None = None,
    ) -> InteractionReply:
        return cls(discord.InteractionResponseType.channel_message, data, follow_up)

    @classmethod
    def private(cls, content: str, *, follow_up: FollowUp | None = None) -> InteractionReply:
        """A message only the invoking user can see."""
        return cls(
            discord.InteractionResponseType.channel_message,
            {"content": content, "flags": EPHEMERAL},
            follow_up,
        )

    @classmethod
    def deferred_message(cls, follow_up: FollowUp) -> InteractionReply:
        """Show the "thinking" state. The follow-up must patch the original response."""
        return cls(discord.InteractionResponseType.deferred_channel_message, None, follow_up)

    @classmethod
    def deferred_update(cls, follow_up: FollowUp | None = None) -> InteractionReply:
        """Acknowledge a component click without changing its message yet."""
        return cls(discord.InteractionResponseType.deferred_message_update, None, follow_up)

    @classmethod
    def update(
        cls,
        data: dict[str, Any],
        *,
        follow_up: FollowUp | None = None,
    ) -> InteractionReply:
        """Replace the message the component or modal was attached to."""
        return cls(discord.InteractionResponseType.message_update, data, follow_up)

    @classmethod
    def modal(cls, data: dict[str, Any]) -> InteractionReply:
        return cls(discord.InteractionResponseType.modal, data)
