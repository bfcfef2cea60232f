"""SQLAlchemy ORM models for the Gamenight database.

Players, games, and posts are create-once. Votes and poll votes are the only
rows updated in place (upserts keyed on their composite primary keys). Posts
are never deleted: when an external message is recreated the old row is
retired and a replacement row is appended.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class PostType(StrEnum):
    LFG = "lfg"
    LIST = "list"
    POLL = "poll"


class RsvpChoice(StrEnum):
    YES = "yes"
    MAYBE = "maybe"
    NO = "no"


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class PlayerRow(Base):
    """A Discord user who has voted or created something."""

    __tablename__ = "players"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)


class GameRow(Base):
    __tablename__ = "games"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    url: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)


class PostRow(Base):
    """Ledger entry linking a game (or poll) to one rendered Discord message."""

    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    game_id: Mapped[str] = mapped_column(ForeignKey("games.id"), nullable=False)
    poll_id: Mapped[str | None] = mapped_column(ForeignKey("polls.id"), nullable=True)
    message_id: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    channel_id: Mapped[str] = mapped_column(String(30), nullable=False)
    post_type: Mapped[str] = mapped_column(String(10), nullable=False, default=PostType.LFG)
    author_user_id: Mapped[str] = mapped_column(String(30), nullable=False, default="")
    retired_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    replaced_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    __table_args__ = (
        Index("ix_posts_game_id", "game_id"),
        Index("ix_posts_poll_id", "poll_id"),
    )


class VoteRow(Base):
    """A player's interest in a game. One mutable row per (player, game)."""

    __tablename__ = "votes"

    player_id: Mapped[str] = mapped_column(ForeignKey("players.id"), primary_key=True)
    game_id: Mapped[str] = mapped_column(ForeignKey("games.id"), primary_key=True)
    vote: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)


class PollRow(Base):
    __tablename__ = "polls"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    game_id: Mapped[str] = mapped_column(ForeignKey("games.id"), nullable=False)
    creator_player_id: Mapped[str] = mapped_column(ForeignKey("players.id"), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)


class TimeslotRow(Base):
    __tablename__ = "timeslots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    poll_id: Mapped[str] = mapped_column(ForeignKey("polls.id"), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    __table_args__ = (Index("ix_timeslots_poll_id", "poll_id"),)


class PollVoteRow(Base):
    """A player's RSVP for one timeslot. One mutable row per (timeslot, player)."""

    __tablename__ = "poll_votes"

    timeslot_id: Mapped[str] = mapped_column(ForeignKey("timeslots.id"), primary_key=True)
    player_id: Mapped[str] = mapped_column(ForeignKey("players.id"), primary_key=True)
    choice: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)


class SessionRow(Base):
    """A scheduled play session. Not yet reachable from any command."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    game_id: Mapped[str] = mapped_column(ForeignKey("games.id"), nullable=False)
    time_from: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    time_to: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)


class SessionPlayerRow(Base):
    __tablename__ = "session_players"

    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id"), primary_key=True)
    player_id: Mapped[str] = mapped_column(ForeignKey("players.id"), primary_key=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
