"""Vote aggregation: turn raw vote rows into display-ready partitions.

Everything here is a pure function of its input. Counts shown to users are
always recomputed from the current Vote / PollVote rows; nothing in this
module caches state between calls.

Ordering: a player's position in a bucket is the position of their first row
in the input, so the output is stable for a given input sequence. When a
player has more than one row (should not happen given the store's primary
keys, but handled anyway) only their latest row counts.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from gamenight.db.models import RsvpChoice

NOBODY_YET = "Nobody yet"


@dataclass(frozen=True)
class CastVote:
    """One interest vote, keyed by the voter's Discord user id."""

    user_id: str
    interested: bool
    voted_at: datetime


@dataclass(frozen=True)
class CastPollVote:
    """One RSVP on a timeslot, keyed by the voter's Discord user id."""

    timeslot_id: str
    user_id: str
    choice: RsvpChoice
    voted_at: datetime


@dataclass(frozen=True)
class VotePartition:
    """Interested / not-interested voters for a single game."""

    interested: tuple[str, ...] = ()
    not_interested: tuple[str, ...] = ()

    @property
    def total(self) -> int:
        return len(self.interested) + len(self.not_interested)


@dataclass(frozen=True)
class RsvpPartition:
    """Yes / maybe / no voters for a single timeslot."""

    yes: tuple[str, ...] = ()
    maybe: tuple[str, ...] = ()
    no: tuple[str, ...] = ()

    @property
    def total(self) -> int:
        return len(self.yes) + len(self.maybe) + len(self.no)

    def bucket(self, choice: RsvpChoice) -> tuple[str, ...]:
        return getattr(self, choice.value)


def _is_newer(row: CastVote | CastPollVote, current: CastVote | CastPollVote | None) -> bool:
    # ">=" so that, on equal timestamps, the later row in the input wins.
    return current is None or row.voted_at >= current.voted_at


def partition_votes(votes: Iterable[CastVote]) -> VotePartition:
    """Split a game's votes into interested / not-interested buckets.

    Every voter lands in exactly one bucket, decided by their latest vote.
    """
    latest: dict[str, CastVote] = {}
    for vote in votes:
        if _is_newer(vote, latest.get(vote.user_id)):
            latest[vote.user_id] = vote

    interested = tuple(v.user_id for v in latest.values() if v.interested)
    not_interested = tuple(v.user_id for v in latest.values() if not v.interested)
    return VotePartition(interested=interested, not_interested=not_interested)


def partition_poll_votes(votes: Iterable[CastPollVote]) -> dict[str, RsvpPartition]:
    """Group RSVPs per timeslot into yes / maybe / no buckets.

    Timeslots without any RSVP are absent from the result; callers should
    treat a missing key as an empty ``RsvpPartition``.
    """
    latest: dict[tuple[str, str], CastPollVote] = {}
    for vote in votes:
        key = (vote.timeslot_id, vote.user_id)
        if _is_newer(vote, latest.get(key)):
            latest[key] = vote

    per_slot: dict[str, list[CastPollVote]] = {}
    for vote in latest.values():
        per_slot.setdefault(vote.timeslot_id, []).append(vote)

    return {
        slot_id: RsvpPartition(
            yes=tuple(v.user_id for v in slot_votes if v.choice == RsvpChoice.YES),
            maybe=tuple(v.user_id for v in slot_votes if v.choice == RsvpChoice.MAYBE),
            no=tuple(v.user_id for v in slot_votes if v.choice == RsvpChoice.NO),
        )
        for slot_id, slot_votes in per_slot.items()
    }


def mention(user_id: str) -> str:
    """Discord mention token for a user id."""
    return f"<@{user_id}>"


def mention_list(user_ids: Iterable[str]) -> str:
    """Comma-separated mentions, or the placeholder for an empty bucket."""
    return ", ".join(mention(uid) for uid in user_ids) or NOBODY_YET


@dataclass(frozen=True)
class GameVoteSummary:
    """Per-game vote counts for the list view."""

    game_id: str
    title: str
    url: str
    interested: int
    not_interested: int
