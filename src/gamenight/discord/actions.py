"""Component custom_id codec.

Every button and modal we send carries a custom_id of the form
``<kind>_<ref>`` (or ``poll_vote_<choice>_<ref>`` for RSVP buttons). The
router decodes it exactly once into an ``Action`` and dispatches on
``Action.kind``; an id that matches no kind is rejected with UnknownAction.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from gamenight.core.errors import UnknownAction
from gamenight.db.models import RsvpChoice


class ActionKind(StrEnum):
    VOTE_YES = "vote_yes"
    VOTE_NO = "vote_no"
    DETAILS = "details"
    ADD_TIME = "add_time"
    RSVP = "RSVP"
    POLL_VOTE = "poll_vote"
    TIME_SLOT = "time_slot"  # modal submission, not a button


# Kinds triggered by clicking a message component.
COMPONENT_KINDS: frozenset[ActionKind] = frozenset(ActionKind) - {ActionKind.TIME_SLOT}

# Longest prefix first so "poll_vote_" is never read as some shorter kind.
_PREFIXES: tuple[ActionKind, ...] = tuple(sorted(ActionKind, key=len, reverse=True))


@dataclass(frozen=True)
class Action:
    """A decoded custom_id.

    ``ref`` is a game id (vote_*, details), a poll id (add_time, RSVP,
    time_slot), or a timeslot id (poll_vote). ``choice`` is set only for
    poll_vote.
    """

    kind: ActionKind
    ref: str
    choice: RsvpChoice | None = None

    @property
    def custom_id(self) -> str:
        return encode_action(self.kind, self.ref, self.choice)


def encode_action(kind: ActionKind, ref: str, choice: RsvpChoice | None = None) -> str:
    if kind is ActionKind.POLL_VOTE:
        if choice is None:
            msg = "poll_vote actions need a choice"
            raise ValueError(msg)
        return f"{kind}_{choice}_{ref}"
    return f"{kind}_{ref}"


def decode_action(custom_id: str) -> Action:
    """Parse a custom_id into an Action. Raises UnknownAction."""
    for kind in _PREFIXES:
        prefix = f"{kind}_"
        if not custom_id.startswith(prefix):
            continue
        rest = custom_id[len(prefix) :]
        if kind is ActionKind.POLL_VOTE:
            raw_choice, _, ref = rest.partition("_")
            try:
                choice = RsvpChoice(raw_choice)
            except ValueError:
                break
            if ref:
                return Action(kind=kind, ref=ref, choice=choice)
            break
        if rest:
            return Action(kind=kind, ref=rest)
        break

    msg = f"Unrecognized custom_id {custom_id!r}"
    raise UnknownAction(msg)
