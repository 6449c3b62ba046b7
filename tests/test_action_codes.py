# /// script
# requires-python = ">=3.12"
# dependencies = ["pytest>=7.0", "pydantic>=2.0"]
# ///
"""Tests for the cell grammar.

Validates:
  1. Base codes, placements and attributed errors parse to tagged values
  2. Run / inning-end / substitution markers are independent flags
  3. Free text is kept verbatim and carries no flags
  4. compose() renders markers in a fixed order
  5. merge_selection keeps existing markers when a new base is picked
  6. describe() produces the play-by-play wording
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

import action_codes
from action_codes import (
    END_MARK,
    RUN_MARK,
    SUB_MARK,
    ActionCode,
    CellKind,
    CulpritRef,
    describe,
    merge_selection,
    parse,
)
from models import PlayerType


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class TestParse:
    @pytest.mark.parametrize("value,kind", [
        ("X", CellKind.OUT),
        ("x", CellKind.OUT),
        ("H", CellKind.HIT),
        ("S", CellKind.SAFE),
        ("E", CellKind.ERROR),
        ("", CellKind.EMPTY),
    ])
    def test_base_kinds(self, value, kind):
        assert parse(value).kind is kind

    def test_none_is_blank(self):
        assert parse(None).is_blank

    def test_run_marker(self):
        code = parse("H●")
        assert code.kind is CellKind.HIT
        assert code.scored_run
        assert not code.closes_inning

    def test_inning_end_marker(self):
        code = parse("X■")
        assert code.is_out
        assert code.closes_inning

    def test_placement(self):
        code = parse("ex2b")
        assert code.is_placement
        assert code.token == "Ex2B"
        assert not code.counts_as_at_bat

    def test_placement_with_run(self):
        code = parse("Ex3B●")
        assert code.is_placement
        assert code.scored_run

    def test_attributed_error_starter(self):
        code = parse("E-3")
        assert code.is_error
        assert code.culprit == CulpritRef(2, PlayerType.STARTER)

    def test_attributed_error_sub_with_run(self):
        code = parse("E-3s●")
        assert code.culprit == CulpritRef(2, PlayerType.SUB)
        assert code.scored_run
        assert code.compose() == "E-3s●"

    def test_slot_zero_is_not_an_attribution(self):
        code = parse("E-0")
        assert code.kind is CellKind.UNKNOWN
        assert code.culprit is None

    def test_substitution_only(self):
        code = parse(SUB_MARK)
        assert code.is_substitution_only
        assert not code.is_blank

    def test_unknown_text_kept_verbatim(self):
        code = parse("foo●")
        assert code.kind is CellKind.UNKNOWN
        assert code.token == "foo●"
        assert not code.scored_run

    @pytest.mark.parametrize("value", ["H", "X", "S", "E", "E-1"])
    def test_plate_appearances_count_as_at_bat(self, value):
        assert parse(value).counts_as_at_bat


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

class TestCompose:
    def test_marker_order(self):
        code = ActionCode(kind=CellKind.HIT, substitution=True,
                          scored_run=True, closes_inning=True)
        assert code.compose() == f"H{SUB_MARK}{RUN_MARK}{END_MARK}"

    def test_with_culprit_forces_error(self):
        code = parse("S").with_culprit(CulpritRef(0))
        assert code.compose() == "E-1"

    def test_with_culprit_none_keeps_plain_error(self):
        code = parse("E-2").with_culprit(None)
        assert code.compose() == "E"

    def test_culprit_encoding(self):
        assert CulpritRef(0).encode() == "E-1"
        assert CulpritRef(4, PlayerType.SUB).encode() == "E-5s"

    def test_placement_round_trip(self):
        assert parse("Ex1B●").compose() == "Ex1B●"


# ---------------------------------------------------------------------------
# Picking values
# ---------------------------------------------------------------------------

class TestMergeSelection:
    def test_run_appended_to_existing_code(self):
        assert merge_selection("H", RUN_MARK) == "H●"

    def test_new_base_keeps_run(self):
        assert merge_selection("X●", "H") == "H●"

    def test_new_base_keeps_inning_end(self):
        assert merge_selection("X■", "X") == "X■"

    def test_inning_end_on_empty_cell(self):
        assert merge_selection("", END_MARK) == "■"

    def test_plain_pick_on_empty_cell(self):
        assert merge_selection("", "S") == "S"


# ---------------------------------------------------------------------------
# Descriptions
# ---------------------------------------------------------------------------

class TestDescribe:
    @pytest.mark.parametrize("value,text", [
        ("", "BORRAR / CAMBIO"),
        ("X", "OUT"),
        ("H●", "HIT + RUN"),
        ("●", "RUN"),
        ("Ex1B", "Corredor en Base (Ex1B)"),
        ("E-2", "ERROR (reached safely)"),
        ("S", "SAFE"),
        (SUB_MARK, "SUBSTITUTION"),
        ("■", "END OF INNING"),
        ("zz", "zz"),
    ])
    def test_wording(self, value, text):
        assert describe(action_codes.parse(value)) == text
