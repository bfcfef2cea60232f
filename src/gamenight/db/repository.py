"""Repository pattern for database access.

Wraps SQLAlchemy async sessions. Players and games are get-or-create on their
natural keys; votes and poll votes are single-statement upserts so that two
interactions racing on the same key serialize to last-write-wins instead of
inserting twice. The post ledger is append-only.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import case, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from gamenight.core.aggregate import CastPollVote, CastVote, GameVoteSummary
from gamenight.core.errors import NotFound, NotRegistered
from gamenight.db.models import (
    GameRow,
    PlayerRow,
    PollRow,
    PollVoteRow,
    PostRow,
    PostType,
    RsvpChoice,
    SessionPlayerRow,
    SessionRow,
    TimeslotRow,
    VoteRow,
)

logger = logging.getLogger(__name__)


class Repository:
    """Async repository for all database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- Players ---

    async def register_player(self, user_id: str, username: str) -> PlayerRow:
        """Create the player on first sight; refresh the username otherwise."""
        stmt = (
            sqlite_insert(PlayerRow)
            .values(user_id=user_id, username=username)
            .on_conflict_do_update(index_elements=["user_id"], set_={"username": username})
        )
        await self.session.execute(stmt)
        result = await self.session.execute(
            select(PlayerRow)
            .where(PlayerRow.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def get_player_by_user_id(self, user_id: str) -> PlayerRow | None:
        """Look up a player by their Discord user ID."""
        stmt = (
            select(PlayerRow)
            .where(PlayerRow.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    # --- Games ---

    async def get_or_create_game(
        self,
        title: str,
        url: str,
        image_url: str | None = None,
    ) -> GameRow:
        """Resolve a game by title, creating it if no game has that title.

        An existing title keeps its stored url and image. If *url* already
        backs a game under another title, that game is returned instead of
        failing on the url uniqueness constraint.
        """
        stmt = (
            sqlite_insert(GameRow)
            .values(title=title, url=url, image_url=image_url)
            .on_conflict_do_nothing()
        )
        await self.session.execute(stmt)

        game = await self.get_game_by_title(title)
        if game is not None:
            return game

        result = await self.session.execute(select(GameRow).where(GameRow.url == url))
        game = result.scalar_one()
        logger.info("game_url_already_listed url=%s title=%s requested=%s", url, game.title, title)
        return game

    async def get_game(self, game_id: str) -> GameRow | None:
        return await self.session.get(GameRow, game_id)

    async def get_game_by_title(self, title: str) -> GameRow | None:
        result = await self.session.execute(select(GameRow).where(GameRow.title == title))
        return result.scalar_one_or_none()

    # --- Posts ---

    async def add_post(
        self,
        game_id: str,
        message_id: str,
        channel_id: str,
        post_type: PostType = PostType.LFG,
        author_user_id: str = "",
        poll_id: str | None = None,
    ) -> PostRow:
        row = PostRow(
            game_id=game_id,
            poll_id=poll_id,
            message_id=message_id,
            channel_id=channel_id,
            post_type=post_type,
            author_user_id=author_user_id,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_post_by_message(self, message_id: str) -> PostRow:
        """Find the post for a Discord message. Raises NotFound."""
        result = await self.session.execute(
            select(PostRow).where(PostRow.message_id == message_id)
        )
        post = result.scalar_one_or_none()
        if post is None:
            msg = f"No post recorded for message {message_id}"
            raise NotFound(msg)
        return post

    async def get_game_for_message(self, message_id: str) -> GameRow:
        """Post → game lookup. Raises NotFound."""
        post = await self.get_post_by_message(message_id)
        game = await self.get_game(post.game_id)
        if game is None:
            msg = f"Post {post.id} references missing game {post.game_id}"
            raise NotFound(msg)
        return game

    async def get_poll_for_message(self, message_id: str) -> PollRow:
        """Post → poll lookup. Raises NotFound."""
        post = await self.get_post_by_message(message_id)
        poll = await self.get_poll(post.poll_id) if post.poll_id else None
        if poll is None:
            msg = f"Message {message_id} is not a poll post"
            raise NotFound(msg)
        return poll

    async def get_posts_for_game(
        self,
        game_id: str,
        post_type: PostType = PostType.LFG,
    ) -> list[PostRow]:
        """Active (non-retired) posts for a game, oldest first."""
        stmt = (
            select(PostRow)
            .where(
                PostRow.game_id == game_id,
                PostRow.post_type == post_type,
                PostRow.retired_at.is_(None),
            )
            .order_by(PostRow.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_posts_for_poll(self, poll_id: str) -> list[PostRow]:
        """Active posts rendering a poll, oldest first."""
        stmt = (
            select(PostRow)
            .where(PostRow.poll_id == poll_id, PostRow.retired_at.is_(None))
            .order_by(PostRow.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def replace_post(self, post_id: str, message_id: str, channel_id: str) -> PostRow:
        """Retire a post whose message was recreated and append its replacement."""
        old = await self.session.get(PostRow, post_id)
        if old is None:
            msg = f"Post {post_id} not found"
            raise NotFound(msg)

        replacement = await self.add_post(
            game_id=old.game_id,
            message_id=message_id,
            channel_id=channel_id,
            post_type=PostType(old.post_type),
            author_user_id=old.author_user_id,
            poll_id=old.poll_id,
        )
        old.retired_at = datetime.now(UTC)
        old.replaced_by_id = replacement.id
        await self.session.flush()
        return replacement

    # --- Votes ---

    async def cast_vote(self, user_id: str, game_id: str, interested: bool) -> None:
        """Upsert a player's vote on a game (last write wins).

        Raises NotRegistered if the player or the game does not exist.
        """
        player = await self.get_player_by_user_id(user_id)
        if player is None:
            msg = f"Player {user_id} not registered"
            raise NotRegistered(msg)
        if await self.get_game(game_id) is None:
            msg = f"Game {game_id} not found"
            raise NotRegistered(msg)

        now = datetime.now(UTC)
        value = 1 if interested else 0
        stmt = (
            sqlite_insert(VoteRow)
            .values(
                player_id=player.id,
                game_id=game_id,
                vote=value,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=["player_id", "game_id"],
                set_={"vote": value, "updated_at": now},
            )
        )
        await self.session.execute(stmt)

    async def get_game_votes(self, game_id: str) -> list[CastVote]:
        """All votes on a game, in the order they were first cast."""
        stmt = (
            select(PlayerRow.user_id, VoteRow.vote, VoteRow.updated_at)
            .join(PlayerRow, PlayerRow.id == VoteRow.player_id)
            .where(VoteRow.game_id == game_id)
            .order_by(VoteRow.created_at, PlayerRow.user_id)
        )
        result = await self.session.execute(stmt)
        return [
            CastVote(user_id=user_id, interested=vote == 1, voted_at=updated_at)
            for user_id, vote, updated_at in result.all()
        ]

    async def get_listed_votes(self) -> list[GameVoteSummary]:
        """Every game with its vote counts, most interested first."""
        interested = func.coalesce(func.sum(case((VoteRow.vote == 1, 1), else_=0)), 0)
        not_interested = func.coalesce(func.sum(case((VoteRow.vote == 0, 1), else_=0)), 0)
        stmt = (
            select(
                GameRow.id,
                GameRow.title,
                GameRow.url,
                interested.label("interested"),
                not_interested.label("not_interested"),
            )
            .outerjoin(VoteRow, VoteRow.game_id == GameRow.id)
            .group_by(GameRow.id)
            .order_by(interested.desc(), GameRow.title)
        )
        result = await self.session.execute(stmt)
        return [
            GameVoteSummary(
                game_id=row.id,
                title=row.title,
                url=row.url,
                interested=int(row.interested),
                not_interested=int(row.not_interested),
            )
            for row in result.all()
        ]

    # --- Polls / Timeslots ---

    async def create_poll(
        self,
        game_id: str,
        creator_player_id: str,
        description: str = "",
    ) -> PollRow:
        row = PollRow(game_id=game_id, creator_player_id=creator_player_id, description=description)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_poll(self, poll_id: str) -> PollRow | None:
        return await self.session.get(PollRow, poll_id)

    async def add_timeslot(self, poll_id: str, start: datetime, end: datetime) -> TimeslotRow:
        """Append a candidate time window to a poll. Raises NotFound for a missing poll."""
        if await self.get_poll(poll_id) is None:
            msg = f"Poll {poll_id} not found"
            raise NotFound(msg)
        row = TimeslotRow(poll_id=poll_id, start_time=start, end_time=end)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_timeslots(self, poll_id: str) -> list[TimeslotRow]:
        """A poll's timeslots in chronological order."""
        stmt = (
            select(TimeslotRow)
            .where(TimeslotRow.poll_id == poll_id)
            .order_by(TimeslotRow.start_time, TimeslotRow.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def cast_poll_vote(
        self,
        user_id: str,
        timeslot_id: str,
        choice: RsvpChoice,
    ) -> TimeslotRow:
        """Upsert a player's RSVP on a timeslot (last write wins).

        Returns the timeslot so callers can find its poll. Raises
        NotRegistered if the player or the timeslot does not exist.
        """
        player = await self.get_player_by_user_id(user_id)
        if player is None:
            msg = f"Player {user_id} not registered"
            raise NotRegistered(msg)
        timeslot = await self.session.get(TimeslotRow, timeslot_id)
        if timeslot is None:
            msg = f"Timeslot {timeslot_id} not found"
            raise NotRegistered(msg)

        now = datetime.now(UTC)
        stmt = (
            sqlite_insert(PollVoteRow)
            .values(
                timeslot_id=timeslot_id,
                player_id=player.id,
                choice=choice.value,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=["timeslot_id", "player_id"],
                set_={"choice": choice.value, "updated_at": now},
            )
        )
        await self.session.execute(stmt)
        return timeslot

    async def get_poll_votes(self, poll_id: str) -> list[CastPollVote]:
        """All RSVPs across a poll's timeslots, in the order they were first cast."""
        stmt = (
            select(
                PollVoteRow.timeslot_id,
                PlayerRow.user_id,
                PollVoteRow.choice,
                PollVoteRow.updated_at,
            )
            .join(TimeslotRow, TimeslotRow.id == PollVoteRow.timeslot_id)
            .join(PlayerRow, PlayerRow.id == PollVoteRow.player_id)
            .where(TimeslotRow.poll_id == poll_id)
            .order_by(PollVoteRow.created_at, PlayerRow.user_id)
        )
        result = await self.session.execute(stmt)
        return [
            CastPollVote(
                timeslot_id=timeslot_id,
                user_id=user_id,
                choice=RsvpChoice(choice),
                voted_at=updated_at,
            )
            for timeslot_id, user_id, choice, updated_at in result.all()
        ]

    # --- Sessions ---

    async def create_session(
        self,
        game_title: str,
        time_from: datetime,
        time_to: datetime,
    ) -> SessionRow:
        """Schedule a session for a game by title. Raises NotFound for an unknown title."""
        game = await self.get_game_by_title(game_title)
        if game is None:
            msg = f'Game "{game_title}" not found'
            raise NotFound(msg)
        row = SessionRow(game_id=game.id, time_from=time_from, time_to=time_to)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_all_sessions(self) -> list[dict]:
        """All sessions with their game title, earliest first."""
        stmt = (
            select(SessionRow, GameRow.title)
            .join(GameRow, GameRow.id == SessionRow.game_id)
            .order_by(SessionRow.time_from)
        )
        result = await self.session.execute(stmt)
        return [
            {
                "id": row.id,
                "game": title,
                "time_from": row.time_from,
                "time_to": row.time_to,
                "created_at": row.created_at,
            }
            for row, title in result.all()
        ]

    async def add_player_to_session(self, session_id: str, user_id: str) -> dict:
        """Join a player to a session (idempotent). Raises NotRegistered."""
        player = await self.get_player_by_user_id(user_id)
        if player is None:
            msg = f"Player {user_id} not registered"
            raise NotRegistered(msg)
        if await self.session.get(SessionRow, session_id) is None:
            msg = f"Session {session_id} not found"
            raise NotFound(msg)

        await self.session.execute(
            sqlite_insert(SessionPlayerRow)
            .values(session_id=session_id, player_id=player.id)
            .on_conflict_do_nothing()
        )
        result = await self.session.execute(
            select(SessionPlayerRow.joined_at).where(
                SessionPlayerRow.session_id == session_id,
                SessionPlayerRow.player_id == player.id,
            )
        )
        return {"username": player.username, "joined_at": result.scalar_one()}

    async def get_players_in_session(self, session_id: str) -> list[dict]:
        stmt = (
            select(PlayerRow.username, SessionPlayerRow.joined_at)
            .join(PlayerRow, PlayerRow.id == SessionPlayerRow.player_id)
            .where(SessionPlayerRow.session_id == session_id)
            .order_by(SessionPlayerRow.joined_at)
        )
        result = await self.session.execute(stmt)
        return [
            {"username": username, "joined_at": joined_at} for username, joined_at in result.all()
        ]
