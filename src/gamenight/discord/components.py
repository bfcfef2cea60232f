"""Message payload builders for Gamenight.

Builds the JSON message bodies (components, embeds, modals) for game
suggestions, the vote list, polls, and the RSVP panel. Each builder takes
fully-resolved data and returns a dict ready to be sent as interaction
response data or as a REST message body. Nothing here performs I/O.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import discord

from gamenight.core.aggregate import (
    GameVoteSummary,
    RsvpPartition,
    VotePartition,
    mention,
    mention_list,
)
from gamenight.core.timeslots import FORMAT_HINT, format_window
from gamenight.db.models import RsvpChoice
from gamenight.discord.actions import ActionKind, encode_action
from gamenight.discord.replies import EPHEMERAL, IS_COMPONENTS_V2

if TYPE_CHECKING:
    from gamenight.core.resolver import ResolvedLink
    from gamenight.db.models import TimeslotRow

LIST_COLOR = 0x5865F2
POLL_COLOR = 0x57F287

LIST_TITLE = "Server Game Votes"
NO_GAMES_MESSAGE = "📭 No games have been suggested yet."
TALLY_PREFIX = "✅ Interested:"
TIMESLOT_FIELD = "Time slots"
NO_SLOTS_TEXT = "No time slots yet. Click **Add time slot** to propose one."

MISSING_NAME_MESSAGE = (
    "❌ If the game is not from steam you must provide a game name "
    "by adding the game_name argument in the command."
)
MISSING_IMAGE_MESSAGE = (
    "❌ If the game is not from steam or youtube you must provide an image "
    "by adding the image_url argument in the command."
)

# Discord limits
MAX_ACTION_ROWS = 5
MAX_BUTTONS_PER_ROW = 5
MAX_EMBED_FIELDS = 25
MAX_FIELD_VALUE = 1024

_RSVP_LABELS: dict[RsvpChoice, tuple[str, discord.ButtonStyle]] = {
    RsvpChoice.YES: ("✅ Yes", discord.ButtonStyle.success),
    RsvpChoice.MAYBE: ("🤔 Maybe", discord.ButtonStyle.secondary),
    RsvpChoice.NO: ("❌ No", discord.ButtonStyle.danger),
}


# ---------------------------------------------------------------------------
# Suggestion validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GameSuggestion:
    """A suggestion with every field needed to render a post."""

    title: str
    url: str
    image_url: str


@dataclass(frozen=True)
class ValidationFailure:
    """Why a suggestion cannot be rendered. ``message`` is shown to the user."""

    message: str


def validate_suggestion(
    url: str,
    resolved: ResolvedLink | None,
    game_name: str | None = None,
    image_url: str | None = None,
) -> GameSuggestion | ValidationFailure:
    """Combine the resolved link with the caller-supplied name and image.

    A title recognized from the link wins over ``game_name``; the same for
    the image. Anything still missing afterwards is a validation failure.
    """
    title = (resolved.title if resolved else None) or game_name
    image = (resolved.image_url if resolved else None) or image_url
    if not title:
        return ValidationFailure(MISSING_NAME_MESSAGE)
    if not image:
        return ValidationFailure(MISSING_IMAGE_MESSAGE)
    return GameSuggestion(title=title, url=url, image_url=image)


# ---------------------------------------------------------------------------
# Component primitives
# ---------------------------------------------------------------------------


def text_display(content: str) -> dict[str, Any]:
    return {"type": discord.ComponentType.text_display.value, "content": content}


def action_row(*components: dict[str, Any]) -> dict[str, Any]:
    return {"type": discord.ComponentType.action_row.value, "components": list(components)}


def button(custom_id: str, label: str, style: discord.ButtonStyle) -> dict[str, Any]:
    return {
        "type": discord.ComponentType.button.value,
        "custom_id": custom_id,
        "label": label,
        "style": style.value,
    }


def text_input(custom_id: str, label: str, placeholder: str = "") -> dict[str, Any]:
    return {
        "type": discord.ComponentType.text_input.value,
        "custom_id": custom_id,
        "label": label,
        "style": discord.TextStyle.short.value,
        "placeholder": placeholder,
        "required": True,
        "min_length": 1,
        "max_length": 40,
    }


# ---------------------------------------------------------------------------
# LFG post
# ---------------------------------------------------------------------------


def format_tally(partition: VotePartition) -> str:
    """The vote-tally block shown under an LFG post."""
    return (
        f"{TALLY_PREFIX} {mention_list(partition.interested)}\n"
        f"❌ Not Interested: {mention_list(partition.not_interested)}"
    )


def build_lfg_post(
    *,
    game_id: str,
    url: str,
    image_url: str | None,
    author_user_id: str,
    partition: VotePartition,
) -> dict[str, Any]:
    """Header, media, tally, and the two vote buttons (components v2)."""
    who = mention(author_user_id) if author_user_id else "someone"
    components: list[dict[str, Any]] = [
        text_display(f"@here, seems like {who} wants you to check a game out ! {url}"),
    ]
    if image_url:
        components.append(
            {
                "type": discord.ComponentType.media_gallery.value,
                "items": [{"media": {"url": image_url}}],
            }
        )
    components.append(text_display(format_tally(partition)))
    components.append(
        action_row(
            button(
                encode_action(ActionKind.VOTE_YES, game_id),
                "Interested 👍",
                discord.ButtonStyle.success,
            ),
            button(
                encode_action(ActionKind.VOTE_NO, game_id),
                "Not Interested 👎",
                discord.ButtonStyle.danger,
            ),
        )
    )
    return {"flags": IS_COMPONENTS_V2, "components": components}


def refresh_tally(
    components: Sequence[dict[str, Any]],
    partition: VotePartition,
) -> dict[str, Any] | None:
    """Copy of a posted LFG message with only its tally block replaced.

    Returns None when the message carries no tally block.
    """
    found = False
    updated: list[dict[str, Any]] = []
    for component in components:
        if component.get("type") == discord.ComponentType.text_display.value and str(
            component.get("content", "")
        ).startswith(TALLY_PREFIX):
            component = {**component, "content": format_tally(partition)}
            found = True
        updated.append(component)
    if not found:
        return None
    return {"flags": IS_COMPONENTS_V2, "components": updated}


def build_voters_panel(title: str, partition: VotePartition) -> dict[str, Any]:
    """Private "See Voters" answer for one game. Mentions do not ping."""
    return {
        "content": f"**{title}**\n{format_tally(partition)}",
        "flags": EPHEMERAL,
        "allowed_mentions": {"parse": []},
    }


# ---------------------------------------------------------------------------
# List view
# ---------------------------------------------------------------------------


def build_list_summary(summaries: Sequence[GameVoteSummary]) -> dict[str, Any]:
    """One embed field per game plus a "See Voters" button per game.

    Discord caps embeds at 25 fields and messages at 5 rows of 5 buttons,
    so only the first 25 games are listed.
    """
    if not summaries:
        return {"content": NO_GAMES_MESSAGE}

    shown = list(summaries[:MAX_EMBED_FIELDS])
    embed = {
        "title": LIST_TITLE,
        "color": LIST_COLOR,
        "fields": [
            {
                "name": f"{i}. {g.title}",
                "value": f"[🔗]({g.url})\t✅ {g.interested}\t❌ {g.not_interested}",
                "inline": False,
            }
            for i, g in enumerate(shown, start=1)
        ],
    }
    if len(summaries) > len(shown):
        embed["footer"] = {"text": f"…and {len(summaries) - len(shown)} more"}

    buttons = [
        button(
            encode_action(ActionKind.DETAILS, g.game_id),
            f"{i}. See Voters",
            discord.ButtonStyle.primary,
        )
        for i, g in enumerate(shown, start=1)
    ]
    rows = [
        action_row(*buttons[start : start + MAX_BUTTONS_PER_ROW])
        for start in range(0, len(buttons), MAX_BUTTONS_PER_ROW)
    ]
    return {"embeds": [embed], "components": rows[:MAX_ACTION_ROWS]}


# ---------------------------------------------------------------------------
# Polls
# ---------------------------------------------------------------------------


def format_slot_line(index: int, slot: TimeslotRow, rsvp: RsvpPartition) -> str:
    window = format_window(slot.start_time, slot.end_time)
    return f"**{index}.** {window} · ✅ {len(rsvp.yes)} · 🤔 {len(rsvp.maybe)} · ❌ {len(rsvp.no)}"


def format_slot_listing(
    slots: Sequence[TimeslotRow],
    rsvps: Mapping[str, RsvpPartition],
) -> str:
    """The poll's timeslot field, truncated to fit an embed field."""
    if not slots:
        return NO_SLOTS_TEXT

    lines: list[str] = []
    used = 0
    for index, slot in enumerate(slots, start=1):
        line = format_slot_line(index, slot, rsvps.get(slot.id, RsvpPartition()))
        # Keep room for the "…and N more" tail.
        if lines and used + len(line) + 1 > MAX_FIELD_VALUE - 20:
            lines.append(f"…and {len(slots) - index + 1} more")
            break
        lines.append(line)
        used += len(line) + 1
    return "\n".join(lines)


def build_poll_post(
    *,
    poll_id: str,
    title: str,
    url: str,
    description: str,
    image_url: str | None,
    slots: Sequence[TimeslotRow],
    rsvps: Mapping[str, RsvpPartition],
) -> dict[str, Any]:
    """Poll embed with its timeslot listing and the add-slot / RSVP buttons."""
    embed: dict[str, Any] = {
        "title": f"📅 {title}",
        "url": url,
        "description": description or "When should we play?",
        "color": POLL_COLOR,
        "fields": [
            {
                "name": TIMESLOT_FIELD,
                "value": format_slot_listing(slots, rsvps),
                "inline": False,
            }
        ],
    }
    if image_url:
        embed["thumbnail"] = {"url": image_url}

    return {
        "embeds": [embed],
        "components": [
            action_row(
                button(
                    encode_action(ActionKind.ADD_TIME, poll_id),
                    "Add time slot 🕒",
                    discord.ButtonStyle.primary,
                ),
                button(
                    encode_action(ActionKind.RSVP, poll_id),
                    "RSVP ✋",
                    discord.ButtonStyle.success,
                ),
            )
        ],
    }


def build_rsvp_panel(slots: Sequence[TimeslotRow]) -> dict[str, Any]:
    """Private yes/maybe/no buttons, one row per timeslot (first five slots)."""
    if not slots:
        return {
            "content": "No time slots yet. Use **Add time slot** on the poll first.",
            "flags": EPHEMERAL,
        }

    shown = list(slots[:MAX_ACTION_ROWS])
    lines = ["Pick your availability:"]
    lines.extend(
        f"**{i}.** {format_window(slot.start_time, slot.end_time)}"
        for i, slot in enumerate(shown, start=1)
    )
    if len(slots) > len(shown):
        lines.append(f"Showing the first {len(shown)} of {len(slots)} slots.")

    rows = [
        action_row(
            *(
                button(
                    encode_action(ActionKind.POLL_VOTE, slot.id, choice),
                    f"{i}. {label}",
                    style,
                )
                for choice, (label, style) in _RSVP_LABELS.items()
            )
        )
        for i, slot in enumerate(shown, start=1)
    ]
    return {"content": "\n".join(lines), "flags": EPHEMERAL, "components": rows}


def build_time_slot_modal(poll_id: str) -> dict[str, Any]:
    """Two-field form for proposing a new timeslot."""
    return {
        "custom_id": encode_action(ActionKind.TIME_SLOT, poll_id),
        "title": "Add a time slot",
        "components": [
            action_row(text_input("start_time", f"Start ({FORMAT_HINT})", "2025-01-05 20:00")),
            action_row(text_input("end_time", f"End ({FORMAT_HINT})", "2025-01-05 23:00")),
        ],
    }
