"""Tests for message payload builders."""

from datetime import datetime, timedelta
from types import SimpleNamespace

from gamenight.core.aggregate import GameVoteSummary, RsvpPartition, VotePartition
from gamenight.core.resolver import LinkKind, ResolvedLink
from gamenight.discord.components import (
    MAX_EMBED_FIELDS,
    MAX_FIELD_VALUE,
    MISSING_IMAGE_MESSAGE,
    MISSING_NAME_MESSAGE,
    NO_GAMES_MESSAGE,
    GameSuggestion,
    ValidationFailure,
    build_lfg_post,
    build_list_summary,
    build_poll_post,
    build_rsvp_panel,
    build_time_slot_modal,
    build_voters_panel,
    format_slot_listing,
    format_tally,
    refresh_tally,
    validate_suggestion,
)
from gamenight.discord.replies import EPHEMERAL, IS_COMPONENTS_V2

PORTAL_URL = "https://store.steampowered.com/app/620/Portal_2/"


def _slot(slot_id: str, day: int) -> SimpleNamespace:
    start = datetime(2025, 1, day, 20, 0)
    return SimpleNamespace(id=slot_id, start_time=start, end_time=start + timedelta(hours=3))


def _buttons(payload: dict) -> list[dict]:
    return [
        child
        for row in payload["components"]
        if row["type"] == 1
        for child in row["components"]
    ]


class TestValidateSuggestion:
    def test_unrecognized_link_without_name_fails(self):
        result = validate_suggestion("https://example.com/game", None)
        assert isinstance(result, ValidationFailure)
        assert result.message == MISSING_NAME_MESSAGE

    def test_unrecognized_link_without_image_fails(self):
        result = validate_suggestion("https://example.com/game", None, game_name="Thing")
        assert result == ValidationFailure(MISSING_IMAGE_MESSAGE)

    def test_caller_fields_complete_unrecognized_link(self):
        result = validate_suggestion(
            "https://example.com/game", None, game_name="Thing", image_url="https://img/x.png"
        )
        assert result == GameSuggestion("Thing", "https://example.com/game", "https://img/x.png")

    def test_video_link_needs_a_name(self):
        resolved = ResolvedLink(LinkKind.YOUTUBE, None, "https://img.youtube.com/vi/abc/0.jpg")
        result = validate_suggestion("https://youtu.be/abc", resolved)
        assert result == ValidationFailure(MISSING_NAME_MESSAGE)
        named = validate_suggestion("https://youtu.be/abc", resolved, game_name="Trailer")
        assert isinstance(named, GameSuggestion)
        assert named.image_url == "https://img.youtube.com/vi/abc/0.jpg"

    def test_resolved_title_wins(self):
        resolved = ResolvedLink(LinkKind.STEAM, "Portal 2", "https://img/h.jpg")
        result = validate_suggestion(PORTAL_URL, resolved, game_name="Other")
        assert isinstance(result, GameSuggestion)
        assert result.title == "Portal 2"


class TestLfgPost:
    def test_fresh_post_layout(self):
        payload = build_lfg_post(
            game_id="g-1",
            url=PORTAL_URL,
            image_url="https://img/h.jpg",
            author_user_id="u-1",
            partition=VotePartition(),
        )
        assert payload["flags"] == IS_COMPONENTS_V2
        types = [c["type"] for c in payload["components"]]
        assert types == [10, 12, 10, 1]
        assert "<@u-1>" in payload["components"][0]["content"]
        assert payload["components"][1]["items"][0]["media"]["url"] == "https://img/h.jpg"
        assert payload["components"][2]["content"] == (
            "✅ Interested: Nobody yet\n❌ Not Interested: Nobody yet"
        )
        assert [b["custom_id"] for b in _buttons(payload)] == ["vote_yes_g-1", "vote_no_g-1"]

    def test_tally_lists_mentions(self):
        tally = format_tally(VotePartition(interested=("1", "2"), not_interested=("3",)))
        assert tally == "✅ Interested: <@1>, <@2>\n❌ Not Interested: <@3>"

    def test_refresh_tally_replaces_only_the_tally(self):
        payload = build_lfg_post(
            game_id="g-1",
            url=PORTAL_URL,
            image_url="https://img/h.jpg",
            author_user_id="u-1",
            partition=VotePartition(),
        )
        refreshed = refresh_tally(payload["components"], VotePartition(interested=("9",)))
        assert refreshed is not None
        assert refreshed["components"][0] == payload["components"][0]
        assert refreshed["components"][2]["content"].startswith("✅ Interested: <@9>")
        assert refreshed["components"][3] == payload["components"][3]

    def test_refresh_tally_without_tally(self):
        assert refresh_tally([{"type": 10, "content": "hello"}], VotePartition()) is None

    def test_voters_panel_is_private(self):
        panel = build_voters_panel("Portal 2", VotePartition(interested=("1",)))
        assert panel["flags"] == EPHEMERAL
        assert panel["allowed_mentions"] == {"parse": []}
        assert panel["content"].startswith("**Portal 2**")


class TestListSummary:
    def test_empty(self):
        assert build_list_summary([]) == {"content": NO_GAMES_MESSAGE}

    def test_fields_and_buttons(self):
        summaries = [
            GameVoteSummary("g-1", "Portal 2", PORTAL_URL, 2, 1),
            GameVoteSummary("g-2", "Quiet", "https://example.com/q", 0, 0),
        ]
        payload = build_list_summary(summaries)
        fields = payload["embeds"][0]["fields"]
        assert fields[0]["name"] == "1. Portal 2"
        assert "✅ 2" in fields[0]["value"]
        assert "❌ 1" in fields[0]["value"]
        assert [b["custom_id"] for b in _buttons(payload)] == ["details_g-1", "details_g-2"]

    def test_caps_at_discord_limits(self):
        summaries = [
            GameVoteSummary(f"g-{i}", f"Game {i}", f"https://example.com/{i}", 0, 0)
            for i in range(30)
        ]
        payload = build_list_summary(summaries)
        embed = payload["embeds"][0]
        assert len(embed["fields"]) == MAX_EMBED_FIELDS
        assert embed["footer"]["text"] == "…and 5 more"
        assert len(payload["components"]) == 5
        assert all(len(row["components"]) <= 5 for row in payload["components"])


class TestPolls:
    def test_poll_post_buttons(self):
        payload = build_poll_post(
            poll_id="p-1",
            title="Portal 2",
            url=PORTAL_URL,
            description="",
            image_url="https://img/h.jpg",
            slots=[],
            rsvps={},
        )
        embed = payload["embeds"][0]
        assert embed["title"] == "📅 Portal 2"
        assert embed["thumbnail"] == {"url": "https://img/h.jpg"}
        assert [b["custom_id"] for b in _buttons(payload)] == ["add_time_p-1", "RSVP_p-1"]

    def test_slot_listing_counts(self):
        slots = [_slot("s-1", 5)]
        rsvps = {"s-1": RsvpPartition(yes=("1", "2"), maybe=(), no=("3",))}
        listing = format_slot_listing(slots, rsvps)
        assert listing.startswith("**1.** Sun Jan 5 20h00 → 23h00")
        assert "✅ 2" in listing
        assert "❌ 1" in listing

    def test_slot_listing_fits_embed_field(self):
        slots = [_slot(f"s-{i}", 1 + i % 28) for i in range(60)]
        listing = format_slot_listing(slots, {})
        assert len(listing) <= MAX_FIELD_VALUE
        assert listing.splitlines()[-1].startswith("…and")

    def test_rsvp_panel_rows(self):
        panel = build_rsvp_panel([_slot("s-1", 5), _slot("s-2", 6)])
        assert panel["flags"] == EPHEMERAL
        assert len(panel["components"]) == 2
        ids = [b["custom_id"] for b in panel["components"][0]["components"]]
        assert ids == ["poll_vote_yes_s-1", "poll_vote_maybe_s-1", "poll_vote_no_s-1"]

    def test_rsvp_panel_limited_to_five_rows(self):
        panel = build_rsvp_panel([_slot(f"s-{i}", 1 + i) for i in range(7)])
        assert len(panel["components"]) == 5
        assert "first 5 of 7" in panel["content"]

    def test_time_slot_modal(self):
        modal = build_time_slot_modal("p-1")
        assert modal["custom_id"] == "time_slot_p-1"
        inputs = [row["components"][0]["custom_id"] for row in modal["components"]]
        assert inputs == ["start_time", "end_time"]
