"""Interaction routing: classify an inbound interaction and dispatch it.

Each request is classified once (handshake, command, component click, modal
submit), then dispatched to exactly one handler. Handlers return an
``InteractionReply``; work that needs the posted message id, or that edits
other posts, is returned as the reply's follow-up and runs after Discord has
its acknowledgment.

Protocol errors (unknown interaction type, command, or custom_id) propagate
to the HTTP layer. Everything raised inside a handler is turned into a
private error message here.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from functools import partial
from typing import TYPE_CHECKING, Any, Protocol

import discord

from gamenight.core.aggregate import partition_poll_votes, partition_votes
from gamenight.core.errors import (
    NotFound,
    NotRegistered,
    TransportError,
    UnknownAction,
    UnknownCommand,
    UnknownInteractionType,
    ValidationError,
)
from gamenight.core.timeslots import format_window, parse_window
from gamenight.db.models import PostType
from gamenight.discord.actions import COMPONENT_KINDS, Action, ActionKind, decode_action
from gamenight.discord.components import (
    GameSuggestion,
    ValidationFailure,
    build_list_summary,
    build_lfg_post,
    build_poll_post,
    build_rsvp_panel,
    build_time_slot_modal,
    build_voters_panel,
    refresh_tally,
    validate_suggestion,
)
from gamenight.discord.helpers import db_session
from gamenight.discord.replies import FollowUp, InteractionReply
from gamenight.discord.sync import PostSynchronizer

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from gamenight.core.resolver import ResolvedLink
    from gamenight.db.models import GameRow, PostRow
    from gamenight.db.repository import Repository
    from gamenight.discord.transport import MessageTransport, SentMessage
    from gamenight.models.interaction import Interaction

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "❌ Something went wrong!"
MISSING_URL_MESSAGE = "❌ Please provide a game_url."

Handler = Callable[[], Awaitable[InteractionReply]]
# Persist the new post once Discord tells us where the message landed.
RecordPost = Callable[["SentMessage"], Awaitable[None]]
Publish = Callable[[GameSuggestion], Awaitable[tuple[dict[str, Any], RecordPost]]]


class InteractionKind(StrEnum):
    HANDSHAKE = "handshake"
    COMMAND = "command"
    COMPONENT_CLICK = "component_click"
    MODAL_SUBMIT = "modal_submit"


_KIND_BY_TYPE: dict[int, InteractionKind] = {
    discord.InteractionType.ping.value: InteractionKind.HANDSHAKE,
    discord.InteractionType.application_command.value: InteractionKind.COMMAND,
    discord.InteractionType.component.value: InteractionKind.COMPONENT_CLICK,
    discord.InteractionType.modal_submit.value: InteractionKind.MODAL_SUBMIT,
}


class CommandName(StrEnum):
    LFG = "lfg"
    LIST = "list"
    POLL = "poll"


class LinkResolver(Protocol):
    async def resolve(self, url: str) -> ResolvedLink | None: ...


def classify(interaction: Interaction) -> InteractionKind:
    """Map the payload ``type`` to an InteractionKind. Raises UnknownInteractionType."""
    try:
        return _KIND_BY_TYPE[interaction.type]
    except KeyError:
        msg = f"Unsupported interaction type {interaction.type}"
        raise UnknownInteractionType(msg) from None


def _guarded(follow_up: FollowUp, interaction_id: str) -> FollowUp:
    """Wrap a follow-up so its failure is logged instead of escaping the task."""

    async def run() -> None:
        try:
            await follow_up()
        except Exception:  # follow-ups run detached from the request
            logger.exception("follow_up_failed interaction=%s", interaction_id)

    return run


class InteractionRouter:
    """Dispatches interactions to the command and component handlers."""

    def __init__(
        self,
        engine: AsyncEngine,
        transport: MessageTransport,
        resolver: LinkResolver,
        *,
        resolve_budget: float = 2.0,
    ) -> None:
        self.engine = engine
        self.transport = transport
        self.resolver = resolver
        self.resolve_budget = resolve_budget
        self.synchronizer = PostSynchronizer(transport, engine)

        self._commands: dict[CommandName, Callable[[Interaction], Awaitable[InteractionReply]]] = {
            CommandName.LFG: self._lfg,
            CommandName.LIST: self._list,
            CommandName.POLL: self._poll,
        }
        self._actions: dict[
            ActionKind, Callable[[Interaction, Action], Awaitable[InteractionReply]]
        ] = {
            ActionKind.VOTE_YES: self._vote,
            ActionKind.VOTE_NO: self._vote,
            ActionKind.DETAILS: self._details,
            ActionKind.ADD_TIME: self._add_time,
            ActionKind.RSVP: self._rsvp,
            ActionKind.POLL_VOTE: self._poll_vote,
            ActionKind.TIME_SLOT: self._time_slot,
        }

    # --- Dispatch ---

    async def handle(self, interaction: Interaction) -> InteractionReply:
        """Produce the single reply for *interaction*.

        Raises ProtocolError subclasses for payloads we cannot route; every
        other failure becomes a private error message.
        """
        kind = classify(interaction)
        if kind is InteractionKind.HANDSHAKE:
            return InteractionReply.pong()

        handler = self._dispatch(kind, interaction)
        try:
            reply = await handler()
        except ValidationError as exc:
            logger.info("interaction_rejected id=%s reason=%s", interaction.id, exc)
            return InteractionReply.private(f"❌ {exc}")
        except (NotRegistered, NotFound) as exc:
            logger.warning("interaction_lookup_failed id=%s kind=%s: %s", interaction.id, kind, exc)
            return InteractionReply.private(GENERIC_FAILURE)
        except Exception:  # the request must still get a reply
            logger.exception("interaction_failed id=%s kind=%s", interaction.id, kind)
            return InteractionReply.private(GENERIC_FAILURE)

        if reply.follow_up is not None:
            reply = dataclasses.replace(
                reply, follow_up=_guarded(reply.follow_up, interaction.id)
            )
        return reply

    def _dispatch(self, kind: InteractionKind, interaction: Interaction) -> Handler:
        data = interaction.data
        if kind is InteractionKind.COMMAND:
            name = data.name if data else None
            try:
                command = CommandName(name or "")
            except ValueError:
                msg = f"Unknown command {name!r}"
                raise UnknownCommand(msg) from None
            return partial(self._commands[command], interaction)

        custom_id = (data.custom_id if data else None) or ""
        action = decode_action(custom_id)
        if kind is InteractionKind.COMPONENT_CLICK:
            allowed = COMPONENT_KINDS
        else:
            allowed = frozenset({ActionKind.TIME_SLOT})
        if action.kind not in allowed:
            msg = f"custom_id {custom_id!r} is not valid for a {kind}"
            raise UnknownAction(msg)
        return partial(self._actions[action.kind], interaction, action)

    # --- Commands ---

    async def _lfg(self, interaction: Interaction) -> InteractionReply:
        return await self._suggest(interaction, partial(self._publish_lfg, interaction))

    async def _poll(self, interaction: Interaction) -> InteractionReply:
        return await self._suggest(interaction, partial(self._publish_poll, interaction))

    async def _list(self, interaction: Interaction) -> InteractionReply:
        async with db_session(self.engine) as repo:
            summaries = await repo.get_listed_votes()
        return InteractionReply.message(build_list_summary(summaries))

    async def _suggest(self, interaction: Interaction, publish: Publish) -> InteractionReply:
        """Resolve the shared link and publish on the immediate or deferred path.

        Resolution that finishes inside the budget is answered with the post
        itself; otherwise Discord gets a deferred response and the follow-up
        patches it once resolution completes.
        """
        url = interaction.option("game_url")
        if not url:
            return InteractionReply.private(MISSING_URL_MESSAGE)

        task = asyncio.ensure_future(self.resolver.resolve(url))
        try:
            resolved = await asyncio.wait_for(asyncio.shield(task), self.resolve_budget)
        except TimeoutError:
            logger.info("resolve_deferred url=%s budget=%.1fs", url, self.resolve_budget)
            return InteractionReply.deferred_message(
                partial(self._finish_deferred, interaction, url, task, publish)
            )

        suggestion = validate_suggestion(
            url, resolved, interaction.option("game_name"), interaction.option("image_url")
        )
        if isinstance(suggestion, ValidationFailure):
            logger.info("suggestion_rejected url=%s", url)
            return InteractionReply.private(suggestion.message)

        payload, record = await publish(suggestion)

        async def follow_up() -> None:
            sent = await self._original_message(interaction)
            if sent is not None:
                await record(sent)

        return InteractionReply.message(payload, follow_up=follow_up)

    async def _finish_deferred(
        self,
        interaction: Interaction,
        url: str,
        task: asyncio.Future[ResolvedLink | None],
        publish: Publish,
    ) -> None:
        try:
            resolved = await task
            suggestion = validate_suggestion(
                url, resolved, interaction.option("game_name"), interaction.option("image_url")
            )
            if isinstance(suggestion, ValidationFailure):
                await self.transport.edit_original(
                    interaction.token, {"content": suggestion.message}
                )
                return
            payload, record = await publish(suggestion)
            await record(await self.transport.edit_original(interaction.token, payload))
        except Exception:  # the deferred response must not stay "thinking"
            logger.exception("deferred_publish_failed interaction=%s url=%s", interaction.id, url)
            try:
                await self.transport.edit_original(interaction.token, {"content": GENERIC_FAILURE})
            except TransportError as exc:
                logger.warning(
                    "deferred_patch_failed interaction=%s status=%s: %s",
                    interaction.id,
                    exc.status,
                    exc,
                )

    async def _original_message(self, interaction: Interaction) -> SentMessage | None:
        """Look up where the immediate response landed, retrying once."""
        for attempt in (1, 2):
            try:
                return await self.transport.get_original(interaction.token)
            except TransportError as exc:
                logger.warning(
                    "original_lookup_failed interaction=%s attempt=%d status=%s: %s",
                    interaction.id,
                    attempt,
                    exc.status,
                    exc,
                )
        logger.error(
            "post_unrecorded interaction=%s token=%s", interaction.id, interaction.token
        )
        return None

    async def _publish_lfg(
        self, interaction: Interaction, suggestion: GameSuggestion
    ) -> tuple[dict[str, Any], RecordPost]:
        author = interaction.actor
        async with db_session(self.engine) as repo:
            game = await repo.get_or_create_game(
                suggestion.title, suggestion.url, suggestion.image_url
            )
            partition = partition_votes(await repo.get_game_votes(game.id))

        payload = build_lfg_post(
            game_id=game.id,
            url=game.url,
            image_url=game.image_url or suggestion.image_url,
            author_user_id=author.id,
            partition=partition,
        )

        async def record(sent: SentMessage) -> None:
            async with db_session(self.engine) as repo:
                post = await repo.add_post(
                    game.id, sent.message_id, sent.channel_id, PostType.LFG, author.id
                )
            logger.info(
                "post_recorded type=lfg game=%s post=%s message=%s",
                game.id,
                post.id,
                sent.message_id,
            )

        return payload, record

    async def _publish_poll(
        self, interaction: Interaction, suggestion: GameSuggestion
    ) -> tuple[dict[str, Any], RecordPost]:
        author = interaction.actor
        description = interaction.option("description") or ""
        async with db_session(self.engine) as repo:
            player = await repo.register_player(author.id, author.display_name)
            game = await repo.get_or_create_game(
                suggestion.title, suggestion.url, suggestion.image_url
            )
            poll = await repo.create_poll(game.id, player.id, description)

        payload = build_poll_post(
            poll_id=poll.id,
            title=game.title,
            url=game.url,
            description=description,
            image_url=game.image_url or suggestion.image_url,
            slots=[],
            rsvps={},
        )

        async def record(sent: SentMessage) -> None:
            async with db_session(self.engine) as repo:
                post = await repo.add_post(
                    game.id,
                    sent.message_id,
                    sent.channel_id,
                    PostType.POLL,
                    author.id,
                    poll_id=poll.id,
                )
            logger.info(
                "post_recorded type=poll poll=%s post=%s message=%s",
                poll.id,
                post.id,
                sent.message_id,
            )

        return payload, record

    # --- Component clicks ---

    async def _vote(self, interaction: Interaction, action: Action) -> InteractionReply:
        """Record the vote, refresh the clicked message's tally, then sync the other posts."""
        interested = action.kind is ActionKind.VOTE_YES
        voter = interaction.actor
        async with db_session(self.engine) as repo:
            game = await self._game_for_click(repo, interaction, action)
            await repo.register_player(voter.id, voter.display_name)
            await repo.cast_vote(voter.id, game.id, interested)
            partition = partition_votes(await repo.get_game_votes(game.id))
            posts = await repo.get_posts_for_game(game.id)
        logger.info("vote_cast game=%s user=%s interested=%s", game.id, voter.id, interested)

        data = None
        if interaction.message is not None:
            data = refresh_tally(interaction.message.components, partition)
            if data is not None:
                posts = [p for p in posts if p.message_id != interaction.message.id]

        def render(post: PostRow) -> dict[str, Any]:
            return build_lfg_post(
                game_id=game.id,
                url=game.url,
                image_url=game.image_url,
                author_user_id=post.author_user_id,
                partition=partition,
            )

        follow_up = partial(self._sync, posts, render) if posts else None
        if data is None:
            return InteractionReply.deferred_update(follow_up)
        return InteractionReply.update(data, follow_up=follow_up)

    async def _game_for_click(
        self, repo: Repository, interaction: Interaction, action: Action
    ) -> GameRow:
        """The game behind a clicked post, falling back to the id carried in the button."""
        if interaction.message is not None:
            try:
                return await repo.get_game_for_message(interaction.message.id)
            except NotFound:
                logger.info("vote_on_unrecorded_message message=%s", interaction.message.id)
        game = await repo.get_game(action.ref)
        if game is None:
            msg = f"Game {action.ref} not found"
            raise NotFound(msg)
        return game

    async def _details(self, interaction: Interaction, action: Action) -> InteractionReply:
        async with db_session(self.engine) as repo:
            game = await repo.get_game(action.ref)
            if game is None:
                msg = f"Game {action.ref} not found"
                raise NotFound(msg)
            partition = partition_votes(await repo.get_game_votes(game.id))
        return InteractionReply.message(build_voters_panel(game.title, partition))

    async def _add_time(self, interaction: Interaction, action: Action) -> InteractionReply:
        async with db_session(self.engine) as repo:
            if await repo.get_poll(action.ref) is None:
                msg = f"Poll {action.ref} not found"
                raise NotFound(msg)
        return InteractionReply.modal(build_time_slot_modal(action.ref))

    async def _rsvp(self, interaction: Interaction, action: Action) -> InteractionReply:
        async with db_session(self.engine) as repo:
            if await repo.get_poll(action.ref) is None:
                msg = f"Poll {action.ref} not found"
                raise NotFound(msg)
            slots = await repo.get_timeslots(action.ref)
        return InteractionReply.message(build_rsvp_panel(slots))

    async def _poll_vote(self, interaction: Interaction, action: Action) -> InteractionReply:
        if action.choice is None:
            msg = f"poll_vote for slot {action.ref} carries no choice"
            raise UnknownAction(msg)
        voter = interaction.actor
        async with db_session(self.engine) as repo:
            await repo.register_player(voter.id, voter.display_name)
            timeslot = await repo.cast_poll_vote(voter.id, action.ref, action.choice)
            payload, posts = await self._poll_view(repo, timeslot.poll_id)
        logger.info(
            "poll_vote_cast poll=%s slot=%s user=%s choice=%s",
            timeslot.poll_id,
            action.ref,
            voter.id,
            action.choice,
        )
        follow_up = partial(self._sync, posts, lambda _post: payload) if posts else None
        return InteractionReply.deferred_update(follow_up)

    # --- Modal submit ---

    async def _time_slot(self, interaction: Interaction, action: Action) -> InteractionReply:
        values = interaction.modal_values()
        window = parse_window(values.get("start_time", ""), values.get("end_time", ""))
        async with db_session(self.engine) as repo:
            slot = await repo.add_timeslot(action.ref, window.start, window.end)
            payload, posts = await self._poll_view(repo, action.ref)
        logger.info("timeslot_added poll=%s slot=%s", action.ref, slot.id)

        if interaction.message is not None:
            posts = [p for p in posts if p.message_id != interaction.message.id]
        follow_up = partial(self._sync, posts, lambda _post: payload) if posts else None
        if interaction.message is None:
            added = format_window(window.start, window.end)
            return InteractionReply.private(f"✅ Time slot added: {added}", follow_up=follow_up)
        return InteractionReply.update(payload, follow_up=follow_up)

    # --- Shared ---

    async def _poll_view(
        self, repo: Repository, poll_id: str
    ) -> tuple[dict[str, Any], list[PostRow]]:
        """The poll's current rendering and the posts that show it."""
        poll = await repo.get_poll(poll_id)
        if poll is None:
            msg = f"Poll {poll_id} not found"
            raise NotFound(msg)
        game = await repo.get_game(poll.game_id)
        if game is None:
            msg = f"Poll {poll_id} references missing game {poll.game_id}"
            raise NotFound(msg)
        slots = await repo.get_timeslots(poll_id)
        rsvps = partition_poll_votes(await repo.get_poll_votes(poll_id))
        posts = await repo.get_posts_for_poll(poll_id)
        payload = build_poll_post(
            poll_id=poll.id,
            title=game.title,
            url=game.url,
            description=poll.description,
            image_url=game.image_url,
            slots=slots,
            rsvps=rsvps,
        )
        return payload, posts

    async def _sync(
        self, posts: list[PostRow], render: Callable[[PostRow], dict[str, Any]]
    ) -> None:
        await self.synchronizer.sync(posts, render)
