"""Tests for the component custom_id codec."""

import pytest

from gamenight.core.errors import UnknownAction
from gamenight.db.models import RsvpChoice
from gamenight.discord.actions import COMPONENT_KINDS, Action, ActionKind, decode_action


class TestDecode:
    @pytest.mark.parametrize(
        ("custom_id", "kind", "ref"),
        [
            ("vote_yes_g-1", ActionKind.VOTE_YES, "g-1"),
            ("vote_no_g-1", ActionKind.VOTE_NO, "g-1"),
            ("details_g-1", ActionKind.DETAILS, "g-1"),
            ("add_time_p-1", ActionKind.ADD_TIME, "p-1"),
            ("RSVP_p-1", ActionKind.RSVP, "p-1"),
            ("time_slot_p-1", ActionKind.TIME_SLOT, "p-1"),
        ],
    )
    def test_known_kinds(self, custom_id: str, kind: ActionKind, ref: str):
        assert decode_action(custom_id) == Action(kind=kind, ref=ref)

    def test_poll_vote_carries_choice(self):
        action = decode_action("poll_vote_maybe_s-1")
        assert action == Action(ActionKind.POLL_VOTE, "s-1", RsvpChoice.MAYBE)

    def test_ref_may_contain_underscores(self):
        assert decode_action("vote_yes_a_b_c").ref == "a_b_c"

    @pytest.mark.parametrize(
        "custom_id",
        ["", "vote_yes_", "vote_maybe_g-1", "poll_vote_sometimes_s-1", "poll_vote_yes_", "bogus"],
    )
    def test_unknown_rejected(self, custom_id: str):
        with pytest.raises(UnknownAction):
            decode_action(custom_id)


class TestEncode:
    def test_custom_id_round_trip(self):
        action = Action(ActionKind.POLL_VOTE, "s-1", RsvpChoice.NO)
        assert action.custom_id == "poll_vote_no_s-1"
        assert decode_action(action.custom_id) == action

    def test_modal_kind_is_not_a_component(self):
        assert ActionKind.TIME_SLOT not in COMPONENT_KINDS
        assert ActionKind.VOTE_YES in COMPONENT_KINDS
