# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0"]
# ///
"""Batting-order resolution.

Everything here is derived from the recorded cells on every call and never
stored on the score card.
"""

from __future__ import annotations

import action_codes
from action_codes import SUB_MARK
from models import PlayerType, RosterSlot, TeamData


def total_plays(team: TeamData) -> int:
    """Count recorded turns: non-empty cells that are not a bare substitution."""
    plays = 0
    for player in team.players():
        for cell in player.cells():
            if not cell.strip():
                continue
            if action_codes.parse(cell).is_substitution_only:
                continue
            plays += 1
    return plays


def next_batter_index(team: TeamData) -> int:
    """Index (0-4) of the slot due up next."""
    if not team.slots:
        return 0
    return total_plays(team) % len(team.slots)


def is_substituted(slot: RosterSlot) -> bool:
    if slot.sub.has_identity():
        return True
    return any(SUB_MARK in cell for cell in slot.starter.cells())


def active_player_type(slot: RosterSlot) -> PlayerType:
    """Which player currently occupies the slot."""
    return PlayerType.SUB if is_substituted(slot) else PlayerType.STARTER


def due_up(team: TeamData) -> tuple[int, PlayerType]:
    """(slot index, player type) of the next batter."""
    idx = next_batter_index(team)
    return idx, active_player_type(team.slots[idx])
