"""Post synchronization: push an entity's current rendering to every post of it.

Fan-out is per post and independent. A post whose edit hits Discord's
edit quota is deleted and sent again (the ledger retires the old post row and
records the new one); any other failure is logged and the remaining posts
are still processed. ``sync`` never raises.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from gamenight.core.errors import EditQuotaExceeded, GamenightError, TransportError
from gamenight.discord.helpers import db_session

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from gamenight.db.models import PostRow
    from gamenight.discord.transport import MessageTransport

logger = logging.getLogger(__name__)

RenderPost = Callable[["PostRow"], dict[str, Any]]


class SyncStatus(StrEnum):
    EDITED = "edited"
    RECREATED = "recreated"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncOutcome:
    post_id: str
    status: SyncStatus
    message_id: str
    replacement_post_id: str | None = None
    error: str = ""


class PostSynchronizer:
    def __init__(self, transport: MessageTransport, engine: AsyncEngine) -> None:
        self.transport = transport
        self.engine = engine

    async def sync(self, posts: Sequence[PostRow], render: RenderPost) -> list[SyncOutcome]:
        """Edit every post with ``render(post)``. One outcome per post, in order."""
        outcomes = [await self._sync_one(post, render) for post in posts]
        failed = sum(1 for o in outcomes if o.status is SyncStatus.FAILED)
        recreated = sum(1 for o in outcomes if o.status is SyncStatus.RECREATED)
        logger.info(
            "posts_synced total=%d recreated=%d failed=%d",
            len(outcomes),
            recreated,
            failed,
        )
        return outcomes

    async def _sync_one(self, post: PostRow, render: RenderPost) -> SyncOutcome:
        try:
            payload = render(post)
            await self.transport.edit(post.channel_id, post.message_id, payload)
        except EditQuotaExceeded:
            logger.info(
                "post_edit_quota_exceeded post=%s message=%s, recreating",
                post.id,
                post.message_id,
            )
            return await self._recreate(post, payload)
        except TransportError as exc:
            logger.warning("post_edit_failed post=%s message=%s: %s", post.id, post.message_id, exc)
            return SyncOutcome(post.id, SyncStatus.FAILED, post.message_id, error=str(exc))
        except Exception as exc:  # one post must not stop the fan-out
            logger.exception("post_sync_error post=%s", post.id)
            return SyncOutcome(post.id, SyncStatus.FAILED, post.message_id, error=str(exc))
        return SyncOutcome(post.id, SyncStatus.EDITED, post.message_id)

    async def _recreate(self, post: PostRow, payload: dict[str, Any]) -> SyncOutcome:
        """Delete the stale message, send a fresh one, and record it in the ledger."""
        try:
            await self.transport.delete(post.channel_id, post.message_id)
        except TransportError as exc:
            # Already gone, or not ours to delete.
            logger.warning(
                "post_delete_failed post=%s message=%s: %s", post.id, post.message_id, exc
            )

        try:
            sent = await self.transport.send(post.channel_id, payload)
        except TransportError as exc:
            logger.warning(
                "post_resend_failed post=%s channel=%s: %s", post.id, post.channel_id, exc
            )
            return SyncOutcome(post.id, SyncStatus.FAILED, post.message_id, error=str(exc))

        try:
            async with db_session(self.engine) as repo:
                replacement = await repo.replace_post(post.id, sent.message_id, sent.channel_id)
        except (SQLAlchemyError, GamenightError) as exc:
            logger.exception(
                "post_replace_record_failed post=%s message=%s", post.id, sent.message_id
            )
            return SyncOutcome(post.id, SyncStatus.FAILED, sent.message_id, error=str(exc))

        logger.info(
            "post_recreated post=%s replacement=%s message=%s",
            post.id,
            replacement.id,
            sent.message_id,
        )
        return SyncOutcome(
            post.id,
            SyncStatus.RECREATED,
            sent.message_id,
            replacement_post_id=replacement.id,
        )
