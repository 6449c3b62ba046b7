# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0"]
# ///
"""Scorekeeping engine for one set.

Every operation here is a pure reducer: it takes a :class:`ScoreCardState`,
never mutates it, and returns either the same object (no-op) or a new
state.  Counters that are derived from the grid (outs, grid runs, hits) are
recomputed on demand; the manual per-inning counters and team error counts
are maintained alongside the grid by :func:`apply_cell_edit`.

Walk-off rules for the 5-inning format:

- From the 5th inning on (index 4), a run that puts the local side ahead
  ends the set at once.
- The visitor's third out with the local side ahead ends the set.
- The local side's third out ends the set unless the score is tied, in
  which case another inning is played.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Optional

import action_codes
from action_codes import ActionCode, CellKind, CulpritRef
from models import (
    HISTORY_LIMIT,
    OUTS_PER_INNING,
    ROSTER_SIZE,
    TIMEOUTS_PER_SIDE,
    WIN_CHECK_INNING_INDEX,
    ErrorCulprit,
    Fixture,
    GameInfo,
    PlayerStats,
    PlayerType,
    PlayEvent,
    RosterEntry,
    RosterSlot,
    ScoreCardState,
    Side,
    TeamData,
    Winner,
)

logger = logging.getLogger(__name__)

PLAYER_FIELDS = ("name", "number", "gender", "position")
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")
_event_id_lock = threading.Lock()
_last_event_id = 0


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ScoreKeeperError(Exception):
    """Raised for caller mistakes (unknown side, field, or grid position)."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidSideError(ScoreKeeperError):
    pass


class CellIndexError(ScoreKeeperError):
    pass


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------

def parse_int(text: Any, default: int = 0) -> int:
    """Leading integer of a manually entered value ("3", " 2 runs", "")."""
    if isinstance(text, bool):
        return int(text)
    if isinstance(text, int):
        return text
    m = _LEADING_INT_RE.match(str(text or ""))
    return int(m.group(1)) if m else default


def coerce_side(side: Side | str) -> Side:
    try:
        return Side(side)
    except ValueError:
        raise InvalidSideError(
            f"side must be 'visitor' or 'local', got {side!r}", field="side",
        ) from None


def coerce_player_type(player_type: PlayerType | str) -> PlayerType:
    try:
        return PlayerType(player_type)
    except ValueError:
        raise ScoreKeeperError(
            f"player type must be 'starter' or 'sub', got {player_type!r}",
            field="player_type",
        ) from None


def check_slot(team: TeamData, slot_index: int) -> RosterSlot:
    if not 0 <= slot_index < len(team.slots):
        raise CellIndexError(f"slot index {slot_index} out of range", field="slot_index")
    return team.slots[slot_index]


def check_cell(player: PlayerStats, inning_index: int, at_bat_index: int) -> None:
    if not 0 <= inning_index < len(player.scores):
        raise CellIndexError(f"inning index {inning_index} out of range", field="inning_index")
    if not 0 <= at_bat_index < len(player.scores[inning_index]):
        raise CellIndexError(f"at-bat index {at_bat_index} out of range", field="at_bat_index")


def _pad(values: list[str], length: int) -> None:
    while len(values) < length:
        values.append("")


# ---------------------------------------------------------------------------
# State construction
# ---------------------------------------------------------------------------

def create_empty_state() -> ScoreCardState:
    return ScoreCardState(game_info=GameInfo(date=date.today().isoformat()))


def _player_from_entry(entry: RosterEntry) -> PlayerStats:
    return PlayerStats(
        name=entry.name, number=entry.number,
        gender=entry.gender, position=entry.position,
    )


def _team_from_roster(roster: list[RosterEntry]) -> TeamData:
    team = TeamData()
    for i, entry in enumerate(roster):
        slot = team.slots[i % ROSTER_SIZE]
        if i < ROSTER_SIZE:
            slot.starter = _player_from_entry(entry)
        else:
            slot.sub = _player_from_entry(entry)
    return team


def new_set(fixture: Fixture) -> ScoreCardState:
    """Seed a fresh score card from a fixture pairing."""
    info = GameInfo(
        competition=fixture.competition,
        place=fixture.place,
        date=fixture.date or date.today().isoformat(),
        game_number=fixture.game_number,
        set_number=str(fixture.set_number),
        visitor=fixture.visitor,
        home=fixture.home,
        visitor_logo=fixture.visitor_logo,
        home_logo=fixture.home_logo,
    )
    return ScoreCardState(
        game_info=info,
        visitor_team=_team_from_roster(fixture.visitor_roster),
        local_team=_team_from_roster(fixture.home_roster),
    )


def reset_state() -> ScoreCardState:
    """Full match reset: a blank card."""
    return create_empty_state()


# ---------------------------------------------------------------------------
# Derived counters
# ---------------------------------------------------------------------------

def current_inning_index(state: ScoreCardState) -> int:
    return len(state.visitor_team.slots[0].starter.scores) - 1


def _count_outs(team: TeamData, inning_index: int,
                skip: tuple[int, PlayerType, int] | None = None) -> int:
    outs = 0
    for s_idx, slot in enumerate(team.slots):
        for p_type in PlayerType:
            player = slot.player(p_type)
            if inning_index >= len(player.scores):
                continue
            for ab_idx, cell in enumerate(player.scores[inning_index]):
                if skip == (s_idx, p_type, ab_idx):
                    continue
                if action_codes.parse(cell).is_out:
                    outs += 1
    return outs


def outs_in_inning(team: TeamData, inning_index: int) -> int:
    """Outs recorded by a team in one inning, clamped to 3."""
    return min(_count_outs(team, inning_index), OUTS_PER_INNING)


def grid_runs(team: TeamData) -> int:
    return sum(
        1 for player in team.players() for cell in player.cells()
        if action_codes.parse(cell).scored_run
    )


def hits(team: TeamData) -> int:
    return sum(
        1 for player in team.players() for cell in player.cells()
        if action_codes.parse(cell).kind is CellKind.HIT
    )


def manual_runs(state: ScoreCardState, side: Side) -> int:
    return sum(parse_int(v) for v in state.manual_scores(side))


def total_runs(state: ScoreCardState, side: Side) -> int:
    """Displayed total: the larger of manual and grid runs, plus adjustment.

    Manual corrections can raise a total but never drop it below what the
    grid already records.
    """
    side = coerce_side(side)
    base = max(manual_runs(state, side), grid_runs(state.team(side)))
    return base + getattr(state.score_adjustments, side.value)


def score_line(state: ScoreCardState) -> dict[str, int]:
    return {
        "visitor": total_runs(state, Side.VISITOR),
        "local": total_runs(state, Side.LOCAL),
    }


# ---------------------------------------------------------------------------
# Win evaluation
# ---------------------------------------------------------------------------

def _winner(state: ScoreCardState, side: Side, own: int, other: int) -> Winner:
    return Winner(
        name=state.game_info.team_name(side),
        score=f"{own} - {other}",
        is_visitor=side is Side.VISITOR,
    )


def _walk_off_after_run(state: ScoreCardState, side: Side,
                        inning_index: int) -> Optional[Winner]:
    if side is not Side.LOCAL or inning_index < WIN_CHECK_INNING_INDEX:
        return None
    visitor, local = total_runs(state, Side.VISITOR), total_runs(state, Side.LOCAL)
    if local > visitor:
        return _winner(state, Side.LOCAL, local, visitor)
    return None


def _winner_after_third_out(state: ScoreCardState, side: Side,
                            inning_index: int) -> Optional[Winner]:
    if inning_index < WIN_CHECK_INNING_INDEX:
        return None
    visitor, local = total_runs(state, Side.VISITOR), total_runs(state, Side.LOCAL)
    if side is Side.VISITOR:
        # Local side does not need to bat when already ahead.
        if local > visitor:
            return _winner(state, Side.LOCAL, local, visitor)
        return None
    if visitor > local:
        return _winner(state, Side.VISITOR, visitor, local)
    if local > visitor:
        return _winner(state, Side.LOCAL, local, visitor)
    return None


# ---------------------------------------------------------------------------
# Cell mutator
# ---------------------------------------------------------------------------

def _resolve_fielder(team: TeamData, slot_index: int,
                     player_type: PlayerType) -> Optional[PlayerStats]:
    if not 0 <= slot_index < len(team.slots):
        return None
    return team.slots[slot_index].player(player_type)


def _attach_culprit(code: ActionCode, side: Side, opponent: TeamData,
                    culprit: ErrorCulprit | None) -> ActionCode:
    """Turn a safe/error code into an attributed error when possible."""
    if culprit is None:
        return code
    if code.kind not in (CellKind.SAFE, CellKind.ERROR):
        return code
    plain_error = replace(code, kind=CellKind.ERROR, culprit=None, token="")
    if culprit.team is not None and culprit.team is not side.opponent:
        logger.warning("Error culprit on batting side %s ignored", culprit.team.value)
        return plain_error
    if _resolve_fielder(opponent, culprit.slot_index, culprit.player_type) is None:
        logger.warning("Error culprit slot %d not found", culprit.slot_index)
        return plain_error
    return code.with_culprit(CulpritRef(culprit.slot_index, culprit.player_type))


def next_event_id() -> int:
    """Nanosecond timestamp, bumped so ids are strictly increasing."""
    global _last_event_id
    with _event_id_lock:
        _last_event_id = max(time.time_ns(), _last_event_id + 1)
        return _last_event_id


def _history_event(state: ScoreCardState, side: Side, player: PlayerStats,
                   slot_index: int, inning_index: int, value: str,
                   description: str) -> PlayEvent:
    return PlayEvent(
        id=next_event_id(),
        timestamp=datetime.now().strftime("%H:%M"),
        inning=inning_index + 1,
        team_name=state.game_info.team_name(side),
        player_number=player.number or f"#{slot_index + 1}",
        player_name=player.name or "Jugador",
        action_code=value,
        description=description,
    )


def apply_cell_edit(
    state: ScoreCardState,
    side: Side | str,
    slot_index: int,
    player_type: PlayerType | str,
    inning_index: int,
    at_bat_index: int,
    raw_value: str,
    error_culprit: ErrorCulprit | None = None,
) -> ScoreCardState:
    """Record *raw_value* in one grid cell and update every counter.

    Returns *state* unchanged once the set has a winner.
    """
    if state.winner is not None:
        return state
    side = coerce_side(side)
    player_type = coerce_player_type(player_type)
    raw_value = raw_value or ""

    new = state.model_copy(deep=True)
    team = new.team(side)
    opponent = new.team(side.opponent)
    player = check_slot(team, slot_index).player(player_type)
    check_cell(player, inning_index, at_bat_index)

    prev_value = player.scores[inning_index][at_bat_index]
    prev = action_codes.parse(prev_value)

    # Undo the attribution carried by the value being overwritten.
    if prev.culprit is not None:
        fielder = _resolve_fielder(opponent, prev.culprit.slot_index, prev.culprit.player_type)
        if fielder is not None:
            fielder.defensive_error_count = max(0, fielder.defensive_error_count - 1)

    code = _attach_culprit(action_codes.parse(raw_value), side, opponent, error_culprit)
    if code.culprit is not None and _resolve_fielder(
            opponent, code.culprit.slot_index, code.culprit.player_type) is None:
        code = code.with_culprit(None)

    third_out = False
    if code.is_out:
        if _count_outs(team, inning_index, skip=(slot_index, player_type, at_bat_index)) == 2:
            code = code.with_inning_end()
            third_out = True

    value = raw_value if code.kind is CellKind.UNKNOWN else code.compose()
    player.scores[inning_index][at_bat_index] = value

    # Manual inning counters follow run markers.
    manual = new.manual_scores(side)
    _pad(manual, inning_index + 1)
    run_added = code.scored_run and not prev.scored_run
    if run_added:
        manual[inning_index] = str(parse_int(manual[inning_index]) + 1)
    elif prev.scored_run and not code.scored_run:
        manual[inning_index] = str(max(0, parse_int(manual[inning_index]) - 1))

    # Team error count is charged to the fielding side.
    fielding = side.opponent.value
    if code.is_error and not prev.is_error:
        setattr(new.errors, fielding, getattr(new.errors, fielding) + 1)
    elif prev.is_error and not code.is_error:
        setattr(new.errors, fielding, max(0, getattr(new.errors, fielding) - 1))

    culprit_player = None
    if code.culprit is not None:
        culprit_player = _resolve_fielder(opponent, code.culprit.slot_index, code.culprit.player_type)
        culprit_player.defensive_error_count += 1
        if error_culprit is not None and error_culprit.update_position:
            culprit_player.position = error_culprit.update_position

    if value != prev_value:
        description = action_codes.describe(code)
        if culprit_player is not None:
            label = culprit_player.number or str(code.culprit.slot_index + 1)
            description += f" (error by #{label})"
        new.history.insert(0, _history_event(
            new, side, player, slot_index, inning_index, value, description,
        ))
        del new.history[HISTORY_LIMIT:]

    winner = None
    if run_added:
        winner = _walk_off_after_run(new, side, inning_index)
    if winner is None and third_out:
        winner = _winner_after_third_out(new, side, inning_index)
    if winner is not None:
        logger.info("Set winner declared: %s (%s)", winner.name, winner.score)
        new.winner = winner
    return new


# ---------------------------------------------------------------------------
# Inning lifecycle
# ---------------------------------------------------------------------------

@dataclass
class InningStatus:
    """Out counts of the current inning for both sides."""
    inning_index: int
    visitor_outs: int
    local_outs: int

    @property
    def complete(self) -> bool:
        return (self.visitor_outs >= OUTS_PER_INNING
                and self.local_outs >= OUTS_PER_INNING)

    @property
    def needs_confirmation(self) -> bool:
        return not self.complete

    def outs_remaining(self, side: Side) -> int:
        outs = self.visitor_outs if side is Side.VISITOR else self.local_outs
        return max(0, OUTS_PER_INNING - outs)

    def confirmation_message(self) -> str:
        if self.complete:
            return (f"Both sides have 3 outs. Start inning {self.inning_index + 2}?")
        parts = []
        for side, outs in ((Side.VISITOR, self.visitor_outs), (Side.LOCAL, self.local_outs)):
            if outs < OUTS_PER_INNING:
                parts.append(
                    f"{side.value}: {outs} outs ({self.outs_remaining(side)} remaining)"
                )
        return "Inning incomplete - " + "; ".join(parts) + ". Advance anyway?"

    def to_dict(self) -> dict:
        return {
            "inning": self.inning_index + 1,
            "visitor_outs": self.visitor_outs,
            "local_outs": self.local_outs,
            "complete": self.complete,
            "needs_confirmation": self.needs_confirmation,
            "message": self.confirmation_message(),
        }


def inning_status(state: ScoreCardState) -> InningStatus:
    idx = current_inning_index(state)
    return InningStatus(
        inning_index=idx,
        visitor_outs=outs_in_inning(state.visitor_team, idx),
        local_outs=outs_in_inning(state.local_team, idx),
    )


def should_auto_advance(state: ScoreCardState) -> bool:
    return state.winner is None and inning_status(state).complete


def advance_inning(state: ScoreCardState) -> ScoreCardState:
    """Open a new inning on every grid of both teams at once."""
    if state.winner is not None:
        return state
    new = state.model_copy(deep=True)
    for team in (new.visitor_team, new.local_team):
        for player in team.players():
            player.scores.append([""])
    innings = current_inning_index(new) + 1
    for side in Side:
        manual = new.manual_scores(side)
        _pad(manual, innings - 1)
        manual.append("")
    logger.info("Advanced to inning %d", innings)
    return new


def add_column(state: ScoreCardState, side: Side | str,
               inning_index: int | None = None) -> ScoreCardState:
    """Add an at-bat column to one inning of one team (batting around)."""
    side = coerce_side(side)
    if inning_index is None:
        inning_index = current_inning_index(state)
    if not 0 <= inning_index <= current_inning_index(state):
        raise CellIndexError(f"inning index {inning_index} out of range", field="inning_index")
    new = state.model_copy(deep=True)
    for player in new.team(side).players():
        if inning_index < len(player.scores):
            player.scores[inning_index].append("")
    return new


# ---------------------------------------------------------------------------
# Non-grid edits
# ---------------------------------------------------------------------------

def update_player(state: ScoreCardState, side: Side | str, slot_index: int,
                  player_type: PlayerType | str, field: str, value: str) -> ScoreCardState:
    """Edit a player's identity (name, number, gender or position)."""
    if state.winner is not None:
        return state
    if field not in PLAYER_FIELDS:
        raise ScoreKeeperError(f"unknown player field {field!r}", field="field")
    side = coerce_side(side)
    player_type = coerce_player_type(player_type)
    new = state.model_copy(deep=True)
    player = check_slot(new.team(side), slot_index).player(player_type)
    setattr(player, field, value)
    return new


def update_game_info(state: ScoreCardState, field: str, value: Any) -> ScoreCardState:
    """Edit a header field; nested fields use dotted keys (``officials.plate``)."""
    new = state.model_copy(deep=True)
    target: Any = new.game_info
    *parents, leaf = field.split(".")
    for name in parents:
        if name not in type(target).model_fields:
            raise ScoreKeeperError(f"unknown game info field {field!r}", field=field)
        target = getattr(target, name)
    if leaf not in type(target).model_fields:
        raise ScoreKeeperError(f"unknown game info field {field!r}", field=field)
    setattr(target, leaf, value)
    return new


def set_inning_score(state: ScoreCardState, side: Side | str, inning_index: int,
                     value: str) -> ScoreCardState:
    """Overwrite a manual inning counter."""
    side = coerce_side(side)
    if inning_index < 0:
        raise CellIndexError(f"inning index {inning_index} out of range", field="inning_index")
    new = state.model_copy(deep=True)
    manual = new.manual_scores(side)
    _pad(manual, inning_index + 1)
    manual[inning_index] = value
    return new


def adjust_score(state: ScoreCardState, side: Side | str, delta: int) -> ScoreCardState:
    side = coerce_side(side)
    new = state.model_copy(deep=True)
    current = getattr(new.score_adjustments, side.value)
    setattr(new.score_adjustments, side.value, current + delta)
    return new


def toggle_timeout(state: ScoreCardState, side: Side | str, index: int,
                   used: bool | None = None) -> ScoreCardState:
    side = coerce_side(side)
    if not 0 <= index < TIMEOUTS_PER_SIDE:
        raise CellIndexError(f"timeout index {index} out of range", field="index")
    new = state.model_copy(deep=True)
    flags = getattr(new.timeouts, side.value)
    flags[index] = (not flags[index]) if used is None else used
    return new


def swap_sides(state: ScoreCardState) -> ScoreCardState:
    """Exchange visitor and local within this set."""
    new = state.model_copy(deep=True)
    info = new.game_info
    new.visitor_team, new.local_team = new.local_team, new.visitor_team
    info.visitor, info.home = info.home, info.visitor
    info.visitor_logo, info.home_logo = info.home_logo, info.visitor_logo
    scores = new.inning_scores
    scores.visitor, scores.local = scores.local, scores.visitor
    new.errors.visitor, new.errors.local = new.errors.local, new.errors.visitor
    new.timeouts.visitor, new.timeouts.local = new.timeouts.local, new.timeouts.visitor
    return new
