# /// script
# requires-python = ">=3.12"
# dependencies = ["pytest>=7.0", "pydantic>=2.0"]
# ///
"""Tests for the scorekeeping engine.

Validates:
  1. Cell edits are pure and update outs, runs, errors and history
  2. The third out of an inning is annotated automatically
  3. Error attribution increments and undoes fielder error counts exactly once
  4. Walk-off and end-of-inning win rules from the 5th inning on
  5. Inning advance / add column keep every grid aligned
  6. Header, player, timeout, score and side-swap edits
"""

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

import scorekeeper
from models import (
    HISTORY_LIMIT,
    ErrorCulprit,
    Fixture,
    PlayerType,
    RosterEntry,
    ScoreCardState,
    Side,
    Winner,
)
from scorekeeper import (
    CellIndexError,
    InvalidSideError,
    ScoreKeeperError,
    add_column,
    adjust_score,
    advance_inning,
    apply_cell_edit,
    current_inning_index,
    inning_status,
    new_set,
    outs_in_inning,
    set_inning_score,
    should_auto_advance,
    swap_sides,
    toggle_timeout,
    total_runs,
    update_game_info,
    update_player,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def edit(state, side, slot, value, inning=0, at_bat=0, player_type="starter", culprit=None):
    return apply_cell_edit(state, side, slot, player_type, inning, at_bat, value, culprit)


def cell(state, side, slot, inning=0, at_bat=0, player_type=PlayerType.STARTER):
    return state.team(Side(side)).slots[slot].player(player_type).scores[inning][at_bat]


def at_inning(state, index):
    for _ in range(index):
        state = advance_inning(state)
    return state


def retire_side(state, side, inning):
    for slot in range(3):
        state = edit(state, side, slot, "X", inning=inning)
    return state


@pytest.fixture
def blank():
    return ScoreCardState()


@pytest.fixture
def fifth_inning():
    return at_inning(ScoreCardState(), 4)


# ---------------------------------------------------------------------------
# Cell mutator
# ---------------------------------------------------------------------------

class TestCellEdit:
    def test_records_value_without_mutating_input(self, blank):
        new = edit(blank, "visitor", 0, "X")
        assert cell(new, "visitor", 0) == "X"
        assert cell(blank, "visitor", 0) == ""

    def test_accepts_enum_arguments(self, blank):
        new = apply_cell_edit(blank, Side.LOCAL, 1, PlayerType.SUB, 0, 0, "H")
        assert cell(new, "local", 1, player_type=PlayerType.SUB) == "H"

    def test_third_out_gets_inning_end_marker(self, blank):
        state = retire_side(blank, "visitor", 0)
        assert cell(state, "visitor", 0) == "X"
        assert cell(state, "visitor", 1) == "X"
        assert cell(state, "visitor", 2) == "X■"
        assert outs_in_inning(state.visitor_team, 0) == 3

    def test_outs_clamped_to_three(self, blank):
        state = retire_side(blank, "visitor", 0)
        state = edit(state, "visitor", 3, "X")
        assert cell(state, "visitor", 3) == "X"
        assert outs_in_inning(state.visitor_team, 0) == 3

    def test_re_editing_third_out_keeps_marker(self, blank):
        state = retire_side(blank, "visitor", 0)
        state = edit(state, "visitor", 2, "X")
        assert cell(state, "visitor", 2) == "X■"

    def test_run_updates_manual_counter(self, blank):
        state = edit(blank, "visitor", 0, "H●")
        assert state.inning_scores.visitor[0] == "1"
        assert total_runs(state, Side.VISITOR) == 1

    def test_clearing_run_decrements_counter(self, blank):
        state = edit(blank, "visitor", 0, "H●")
        state = edit(state, "visitor", 0, "")
        assert state.inning_scores.visitor[0] == "0"
        assert total_runs(state, Side.VISITOR) == 0

    def test_same_value_twice_is_idempotent(self, blank):
        once = edit(blank, "local", 0, "H●")
        twice = edit(once, "local", 0, "H●")
        assert twice.inning_scores.local == once.inning_scores.local
        assert len(twice.history) == 1

    def test_error_charged_to_fielding_side(self, blank):
        state = edit(blank, "visitor", 0, "E")
        assert state.errors.local == 1
        assert state.errors.visitor == 0
        state = edit(state, "visitor", 0, "H")
        assert state.errors.local == 0

    def test_safe_is_not_an_error(self, blank):
        state = edit(blank, "visitor", 0, "S")
        assert state.errors.local == 0

    def test_unknown_text_stored_verbatim(self, blank):
        state = edit(blank, "visitor", 0, "zz●")
        assert cell(state, "visitor", 0) == "zz●"
        assert state.inning_scores.visitor[0] == ""
        assert state.errors.local == 0
        assert state.history[0].description == "zz●"

    def test_history_entry(self, blank):
        state = update_player(blank, "visitor", 0, "starter", "name", "Ana")
        state = edit(state, "visitor", 0, "H●")
        event = state.history[0]
        assert event.inning == 1
        assert event.team_name == "VISITANTE"
        assert event.player_name == "Ana"
        assert event.player_number == "#1"
        assert event.action_code == "H●"
        assert event.description == "HIT + RUN"

    def test_history_capped_newest_first(self, blank):
        state = blank
        for i in range(HISTORY_LIMIT + 10):
            state = edit(state, "visitor", 0, "H" if i % 2 else "S")
        assert len(state.history) == HISTORY_LIMIT
        assert state.history[0].action_code == cell(state, "visitor", 0)

    def test_history_ids_unique_for_rapid_edits(self, blank):
        state = blank
        for i in range(20):
            state = edit(state, "visitor", 0, "H" if i % 2 else "S")
        ids = [event.id for event in state.history]
        assert len(set(ids)) == len(ids)
        assert ids == sorted(ids, reverse=True)

    def test_next_event_id_strictly_increasing(self, monkeypatch):
        monkeypatch.setattr(scorekeeper.time, "time_ns", lambda: 1_000)
        first = scorekeeper.next_event_id()
        second = scorekeeper.next_event_id()
        assert second == first + 1

    def test_terminal_state_returns_same_object(self, blank):
        won = blank.model_copy(update={"winner": Winner(name="A", score="1 - 0", is_visitor=True)})
        assert edit(won, "visitor", 0, "X") is won

    def test_invalid_side(self, blank):
        with pytest.raises(InvalidSideError):
            edit(blank, "home", 0, "X")

    def test_slot_out_of_range(self, blank):
        with pytest.raises(CellIndexError) as exc_info:
            edit(blank, "visitor", 5, "X")
        assert exc_info.value.field == "slot_index"

    def test_inning_out_of_range(self, blank):
        with pytest.raises(CellIndexError):
            edit(blank, "visitor", 0, "X", inning=1)

    def test_invalid_player_type(self, blank):
        with pytest.raises(ScoreKeeperError):
            edit(blank, "visitor", 0, "X", player_type="bench")


# ---------------------------------------------------------------------------
# Error attribution
# ---------------------------------------------------------------------------

class TestErrorAttribution:
    def _fielder(self, state, slot, player_type=PlayerType.STARTER):
        return state.local_team.slots[slot].player(player_type)

    def test_culprit_turns_safe_into_attributed_error(self, blank):
        state = edit(blank, "visitor", 0, "S", culprit=ErrorCulprit(slot_index=2))
        assert cell(state, "visitor", 0) == "E-3"
        assert self._fielder(state, 2).defensive_error_count == 1
        assert state.errors.local == 1

    def test_overwrite_undoes_attribution(self, blank):
        state = edit(blank, "visitor", 0, "S", culprit=ErrorCulprit(slot_index=2))
        state = edit(state, "visitor", 0, "H")
        assert self._fielder(state, 2).defensive_error_count == 0
        assert state.errors.local == 0

    def test_typed_attribution_counts(self, blank):
        state = edit(blank, "visitor", 0, "E-3")
        assert self._fielder(state, 2).defensive_error_count == 1

    def test_reattribution_moves_the_charge(self, blank):
        state = edit(blank, "visitor", 0, "E-3")
        state = edit(state, "visitor", 0, "E",
                     culprit=ErrorCulprit(slot_index=1, player_type=PlayerType.SUB))
        assert cell(state, "visitor", 0) == "E-2s"
        assert self._fielder(state, 2).defensive_error_count == 0
        assert self._fielder(state, 1, PlayerType.SUB).defensive_error_count == 1
        assert state.errors.local == 1

    def test_edit_sequence_balances(self, blank):
        state = blank
        for value in ["E-1", "H", "E-1●", "E-1", "", "E-1"]:
            state = edit(state, "visitor", 0, value)
        assert self._fielder(state, 0).defensive_error_count == 1
        state = edit(state, "visitor", 0, "X")
        assert self._fielder(state, 0).defensive_error_count == 0

    def test_position_overwrite(self, blank):
        state = edit(blank, "visitor", 0, "S",
                     culprit=ErrorCulprit(slot_index=0, update_position="SS"))
        assert self._fielder(state, 0).position == "SS"

    def test_history_names_the_fielder(self, blank):
        state = update_player(blank, "local", 2, "starter", "number", "17")
        state = edit(state, "visitor", 0, "S", culprit=ErrorCulprit(slot_index=2))
        assert state.history[0].description == "ERROR (reached safely) (error by #17)"

    def test_unresolvable_culprit_is_plain_error(self, blank, caplog):
        with caplog.at_level(logging.WARNING):
            state = edit(blank, "visitor", 0, "S", culprit=ErrorCulprit(slot_index=9))
        assert cell(state, "visitor", 0) == "E"
        assert state.errors.local == 1
        assert all(p.defensive_error_count == 0 for p in state.local_team.players())
        assert "not found" in caplog.text

    def test_typed_unresolvable_culprit_is_dropped(self, blank):
        state = edit(blank, "visitor", 0, "E-9")
        assert cell(state, "visitor", 0) == "E"
        state = edit(state, "visitor", 0, "")
        assert all(p.defensive_error_count == 0 for p in state.local_team.players())

    def test_culprit_ignored_for_outs(self, blank):
        state = edit(blank, "visitor", 0, "X", culprit=ErrorCulprit(slot_index=0))
        assert cell(state, "visitor", 0) == "X"
        assert self._fielder(state, 0).defensive_error_count == 0


# ---------------------------------------------------------------------------
# Win evaluation
# ---------------------------------------------------------------------------

class TestWinRules:
    def test_local_walk_off_run(self, fifth_inning):
        state = edit(fifth_inning, "local", 0, "H●", inning=4)
        assert state.winner is not None
        assert state.winner.name == "LOCAL"
        assert state.winner.score == "1 - 0"
        assert state.winner.is_visitor is False

    def test_no_win_check_before_fifth_inning(self):
        state = at_inning(ScoreCardState(), 3)
        state = edit(state, "local", 0, "H●", inning=3)
        assert state.winner is None

    def test_visitor_run_never_ends_the_set(self, fifth_inning):
        state = edit(fifth_inning, "visitor", 0, "H●", inning=4)
        assert state.winner is None

    def test_visitor_third_out_with_local_ahead(self, fifth_inning):
        state = set_inning_score(fifth_inning, "local", 0, "2")
        state = retire_side(state, "visitor", 4)
        assert state.winner.name == "LOCAL"
        assert state.winner.score == "2 - 0"

    def test_visitor_third_out_with_visitor_ahead(self, fifth_inning):
        state = set_inning_score(fifth_inning, "visitor", 0, "1")
        state = retire_side(state, "visitor", 4)
        assert state.winner is None

    def test_local_third_out_with_visitor_ahead(self, fifth_inning):
        state = set_inning_score(fifth_inning, "visitor", 0, "1")
        state = retire_side(state, "local", 4)
        assert state.winner.is_visitor is True
        assert state.winner.name == "VISITANTE"
        assert state.winner.score == "1 - 0"

    def test_tie_after_local_third_out_continues(self, fifth_inning):
        state = retire_side(fifth_inning, "visitor", 4)
        state = retire_side(state, "local", 4)
        assert state.winner is None
        state = advance_inning(state)
        assert current_inning_index(state) == 5

    def test_adjustment_counts_toward_the_lead(self, fifth_inning):
        state = adjust_score(fifth_inning, "local", 2)
        state = retire_side(state, "visitor", 4)
        assert state.winner.score == "2 - 0"

    def test_team_names_used_for_winner(self):
        state = at_inning(new_set(Fixture(visitor="Tigres", home="Leones")), 4)
        state = edit(state, "local", 0, "H●", inning=4)
        assert state.winner.name == "Leones"


# ---------------------------------------------------------------------------
# Derived totals
# ---------------------------------------------------------------------------

class TestTotals:
    def test_manual_total_wins_when_larger(self, blank):
        state = edit(blank, "visitor", 0, "H●")
        state = set_inning_score(state, "visitor", 0, "3")
        assert total_runs(state, Side.VISITOR) == 3

    def test_grid_total_wins_when_larger(self, blank):
        state = edit(blank, "visitor", 0, "H●")
        state = edit(state, "visitor", 1, "S●")
        state = set_inning_score(state, "visitor", 0, "0")
        assert total_runs(state, Side.VISITOR) == 2

    def test_adjustment_added_on_top(self, blank):
        state = edit(blank, "visitor", 0, "H●")
        state = adjust_score(state, "visitor", -1)
        assert total_runs(state, Side.VISITOR) == 0

    def test_manual_text_parsed_leniently(self, blank):
        state = set_inning_score(blank, "local", 0, "2 carreras")
        assert total_runs(state, Side.LOCAL) == 2


# ---------------------------------------------------------------------------
# Inning lifecycle
# ---------------------------------------------------------------------------

class TestInningLifecycle:
    def test_advance_extends_every_grid(self, blank):
        state = advance_inning(blank)
        for team in (state.visitor_team, state.local_team):
            assert all(len(p.scores) == 2 for p in team.players())
        assert state.inning_scores.visitor == ["", ""]
        assert state.inning_scores.local == ["", ""]
        assert current_inning_index(state) == 1

    def test_advance_blocked_after_winner(self, fifth_inning):
        won = edit(fifth_inning, "local", 0, "H●", inning=4)
        assert advance_inning(won) is won

    def test_add_column_only_for_requesting_side(self, blank):
        state = add_column(blank, "visitor")
        assert all(p.scores[0] == ["", ""] for p in state.visitor_team.players())
        assert all(p.scores[0] == [""] for p in state.local_team.players())

    def test_add_column_to_earlier_inning(self, blank):
        state = add_column(advance_inning(blank), "local", 0)
        assert state.local_team.slots[0].starter.scores == [["", ""], [""]]

    def test_add_column_out_of_range(self, blank):
        with pytest.raises(CellIndexError):
            add_column(blank, "local", 3)

    def test_sixth_batter_uses_new_column(self, blank):
        state = add_column(blank, "visitor")
        state = edit(state, "visitor", 0, "H", at_bat=1)
        assert cell(state, "visitor", 0, at_bat=1) == "H"

    def test_status_incomplete(self, blank):
        state = retire_side(blank, "visitor", 0)
        status = inning_status(state)
        assert status.visitor_outs == 3
        assert status.local_outs == 0
        assert status.needs_confirmation
        assert status.outs_remaining(Side.LOCAL) == 3
        assert "3 remaining" in status.confirmation_message()
        assert not should_auto_advance(state)

    def test_status_complete(self, blank):
        state = retire_side(retire_side(blank, "visitor", 0), "local", 0)
        status = inning_status(state)
        assert status.complete
        assert not status.needs_confirmation
        assert should_auto_advance(state)
        assert status.to_dict()["inning"] == 1


# ---------------------------------------------------------------------------
# Other edits
# ---------------------------------------------------------------------------

class TestEdits:
    def test_update_player(self, blank):
        state = update_player(blank, "local", 3, "sub", "number", "23")
        assert state.local_team.slots[3].sub.number == "23"
        assert blank.local_team.slots[3].sub.number == ""

    def test_update_player_unknown_field(self, blank):
        with pytest.raises(ScoreKeeperError):
            update_player(blank, "local", 0, "starter", "scores", "x")

    def test_update_game_info_dotted(self, blank):
        state = update_game_info(blank, "officials.plate", "Ruiz")
        state = update_game_info(state, "visitor", "Tigres")
        assert state.game_info.officials.plate == "Ruiz"
        assert state.game_info.team_name(Side.VISITOR) == "Tigres"

    def test_update_game_info_unknown_field(self, blank):
        with pytest.raises(ScoreKeeperError):
            update_game_info(blank, "officials.coach", "x")

    def test_toggle_timeout(self, blank):
        state = toggle_timeout(blank, "visitor", 1)
        assert state.timeouts.visitor == [False, True]
        state = toggle_timeout(state, "visitor", 1)
        assert state.timeouts.visitor == [False, False]

    def test_toggle_timeout_out_of_range(self, blank):
        with pytest.raises(CellIndexError):
            toggle_timeout(blank, "visitor", 2)

    def test_swap_sides(self, blank):
        state = update_game_info(blank, "visitor", "Tigres")
        state = update_game_info(state, "home", "Leones")
        state = edit(state, "visitor", 0, "E")
        state = toggle_timeout(state, "local", 0)
        swapped = swap_sides(state)
        assert swapped.game_info.visitor == "Leones"
        assert swapped.game_info.home == "Tigres"
        assert cell(swapped, "local", 0) == "E"
        assert swapped.errors.visitor == 1
        assert swapped.timeouts.visitor == [True, False]

    def test_reset_state(self, blank):
        state = scorekeeper.reset_state()
        assert state.winner is None
        assert state.game_info.date != ""


class TestNewSet:
    def test_roster_fills_starters_then_subs(self):
        roster = [RosterEntry(name=f"P{i}", number=str(i)) for i in range(7)]
        state = new_set(Fixture(set_number=2, visitor="Tigres", home="Leones",
                                visitor_roster=roster, date="2024-05-01"))
        slots = state.visitor_team.slots
        assert [s.starter.name for s in slots] == ["P0", "P1", "P2", "P3", "P4"]
        assert slots[0].sub.name == "P5"
        assert slots[1].sub.name == "P6"
        assert slots[2].sub.name == ""
        assert state.game_info.set_number == "2"
        assert state.game_info.date == "2024-05-01"

    def test_roster_aliases(self):
        entry = RosterEntry.model_validate({"name": "Ana", "pos": "SS"})
        assert entry.position == "SS"
