"""Outbound Discord REST calls (send / edit / delete messages, interaction webhooks).

Rate limiting: a 429 is retried after Discord's ``retry_after`` hint, up to
``max_retries`` times. Error code 30046 (too many edits to a message older
than one hour) is raised as EditQuotaExceeded so the synchronizer can
recreate the post; every other failure is a TransportError.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from gamenight.core.errors import EditQuotaExceeded, TransportError

if TYPE_CHECKING:
    from gamenight.config import Settings

logger = logging.getLogger(__name__)

EDIT_QUOTA_ERROR_CODE = 30046
MAX_RETRY_AFTER_SECONDS = 10.0
USER_AGENT = "DiscordBot (https://github.com/gamenight/gamenight, 0.1.0)"


@dataclass(frozen=True)
class SentMessage:
    """Where a message landed."""

    message_id: str
    channel_id: str


class MessageTransport(Protocol):
    """What the router and synchronizer need from Discord."""

    async def send(self, channel_id: str, payload: dict[str, Any]) -> SentMessage: ...

    async def edit(self, channel_id: str, message_id: str, payload: dict[str, Any]) -> None: ...

    async def delete(self, channel_id: str, message_id: str) -> None: ...

    async def get_original(self, interaction_token: str) -> SentMessage: ...

    async def edit_original(
        self, interaction_token: str, payload: dict[str, Any]
    ) -> SentMessage: ...


def _retry_after(response: httpx.Response) -> float:
    try:
        delay = float(response.json().get("retry_after", 1.0))
    except (ValueError, AttributeError):
        delay = float(response.headers.get("Retry-After", 1.0))
    return min(max(delay, 0.0), MAX_RETRY_AFTER_SECONDS)


def _error_from(response: httpx.Response, action: str) -> TransportError:
    code: int | None = None
    detail = response.text
    try:
        body = response.json()
        code = body.get("code")
        detail = body.get("message", detail)
    except (ValueError, AttributeError):
        pass
    msg = f"{action} failed: HTTP {response.status_code} {detail}"
    if code == EDIT_QUOTA_ERROR_CODE:
        return EditQuotaExceeded(msg, status=response.status_code, code=code)
    return TransportError(msg, status=response.status_code, code=code)


def _sent(body: dict[str, Any]) -> SentMessage:
    return SentMessage(message_id=str(body["id"]), channel_id=str(body["channel_id"]))


class DiscordTransport:
    """httpx-backed implementation of MessageTransport."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        application_id: str,
        max_retries: int = 3,
    ) -> None:
        self.client = client
        self.application_id = application_id
        self.max_retries = max_retries

    @classmethod
    def from_settings(cls, settings: Settings) -> DiscordTransport:
        client = httpx.AsyncClient(
            base_url=settings.discord_api_base,
            timeout=httpx.Timeout(10.0, connect=3.0),
            headers={
                "Authorization": f"Bot {settings.discord_bot_token}",
                "User-Agent": USER_AGENT,
            },
        )
        return cls(
            client,
            application_id=settings.discord_application_id,
            max_retries=settings.discord_max_retries,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        action: str,
        payload: dict[str, Any] | None = None,
    ) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = await self.client.request(method, path, json=payload)
            except httpx.HTTPError as exc:
                msg = f"{action} failed: {exc}"
                raise TransportError(msg) from exc

            if response.status_code == 429 and attempt < self.max_retries:
                delay = _retry_after(response)
                attempt += 1
                logger.warning(
                    "discord_rate_limited action=%s retry_in=%.2fs attempt=%d",
                    action,
                    delay,
                    attempt,
                )
                await asyncio.sleep(delay)
                continue

            if response.is_error:
                raise _error_from(response, action)
            return response

    def _webhook_path(self, interaction_token: str) -> str:
        return f"/webhooks/{self.application_id}/{interaction_token}/messages/@original"

    async def send(self, channel_id: str, payload: dict[str, Any]) -> SentMessage:
        response = await self._request(
            "POST", f"/channels/{channel_id}/messages", "send", payload
        )
        return _sent(response.json())

    async def edit(self, channel_id: str, message_id: str, payload: dict[str, Any]) -> None:
        await self._request(
            "PATCH", f"/channels/{channel_id}/messages/{message_id}", "edit", payload
        )

    async def delete(self, channel_id: str, message_id: str) -> None:
        await self._request("DELETE", f"/channels/{channel_id}/messages/{message_id}", "delete")

    async def get_original(self, interaction_token: str) -> SentMessage:
        """The message created by an interaction's initial response."""
        response = await self._request("GET", self._webhook_path(interaction_token), "get_original")
        return _sent(response.json())

    async def edit_original(self, interaction_token: str, payload: dict[str, Any]) -> SentMessage:
        """Patch the initial response (used to complete a deferred response)."""
        response = await self._request(
            "PATCH", self._webhook_path(interaction_token), "edit_original", payload
        )
        return _sent(response.json())
