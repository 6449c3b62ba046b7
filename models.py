# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0"]
# ///
"""Data models for the live scorekeeper.

Every model also accepts the camelCase keys used by older saved score
cards (``gameInfo``, ``visitorTeam``, ``defError`` ...) so a persisted set
can be validated straight after structural normalisation.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


# ---------------------------------------------------------------------------
# Format constants
# ---------------------------------------------------------------------------

ROSTER_SIZE = 5
REGULATION_INNINGS = 5
WIN_CHECK_INNING_INDEX = REGULATION_INNINGS - 1  # 5th inning onwards
OUTS_PER_INNING = 3
HISTORY_LIMIT = 50
SETS_PER_MATCH = 3
SETS_TO_WIN = 2
TIMEOUTS_PER_SIDE = 2


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Side(str, Enum):
    VISITOR = "visitor"
    LOCAL = "local"

    @property
    def opponent(self) -> Side:
        return Side.LOCAL if self is Side.VISITOR else Side.VISITOR

    @property
    def team_attr(self) -> str:
        return "visitor_team" if self is Side.VISITOR else "local_team"


class PlayerType(str, Enum):
    STARTER = "starter"
    SUB = "sub"


# ---------------------------------------------------------------------------
# Roster
# ---------------------------------------------------------------------------

def _empty_grid() -> list[list[str]]:
    return [[""]]


class PlayerStats(BaseModel):
    """Identity and recorded cells for one batter in a slot."""
    name: str = ""
    gender: str = ""
    number: str = ""
    position: str = Field(default="", validation_alias=_alias("position", "pos"))
    scores: list[list[str]] = Field(default_factory=_empty_grid)
    defensive_error_count: int = Field(
        default=0, ge=0,
        validation_alias=_alias("defensive_error_count", "defError"),
    )

    def has_identity(self) -> bool:
        return bool(self.name or self.number or self.gender or self.position)

    def cells(self) -> list[str]:
        return [cell for inning in self.scores for cell in inning]


class RosterSlot(BaseModel):
    starter: PlayerStats = Field(default_factory=PlayerStats)
    sub: PlayerStats = Field(default_factory=PlayerStats)

    def player(self, player_type: PlayerType) -> PlayerStats:
        return self.starter if player_type is PlayerType.STARTER else self.sub


class TeamData(BaseModel):
    slots: list[RosterSlot] = Field(
        default_factory=lambda: [RosterSlot() for _ in range(ROSTER_SIZE)]
    )

    def players(self) -> list[PlayerStats]:
        return [p for slot in self.slots for p in (slot.starter, slot.sub)]


# ---------------------------------------------------------------------------
# Game header
# ---------------------------------------------------------------------------

class Officials(BaseModel):
    plate: str = ""
    field1: str = ""
    field2: str = ""
    field3: str = ""
    table: str = ""


class GameTimes(BaseModel):
    start: str = ""
    end: str = ""


class GameInfo(BaseModel):
    competition: str = ""
    place: str = ""
    date: str = ""
    game_number: str = Field(default="", validation_alias=_alias("game_number", "gameNum"))
    set_number: str = Field(default="", validation_alias=_alias("set_number", "setNum"))
    visitor: str = ""
    home: str = ""
    officials: Officials = Field(default_factory=Officials)
    times: GameTimes = Field(default_factory=GameTimes)
    visitor_logo: Optional[str] = Field(
        default=None, validation_alias=_alias("visitor_logo", "visitorLogo"),
    )
    home_logo: Optional[str] = Field(
        default=None, validation_alias=_alias("home_logo", "homeLogo"),
    )

    def team_name(self, side: Side) -> str:
        if side is Side.VISITOR:
            return self.visitor or "VISITANTE"
        return self.home or "LOCAL"


# ---------------------------------------------------------------------------
# Per-side containers
# ---------------------------------------------------------------------------

class InningScores(BaseModel):
    """Manual per-inning run counters, kept as the entered text."""
    visitor: list[str] = Field(default_factory=lambda: [""])
    local: list[str] = Field(default_factory=lambda: [""])


class SideCounts(BaseModel):
    visitor: int = 0
    local: int = 0


class Timeouts(BaseModel):
    visitor: list[bool] = Field(default_factory=lambda: [False] * TIMEOUTS_PER_SIDE)
    local: list[bool] = Field(default_factory=lambda: [False] * TIMEOUTS_PER_SIDE)


# ---------------------------------------------------------------------------
# Results and audit trail
# ---------------------------------------------------------------------------

class Winner(BaseModel):
    name: str
    score: str
    is_visitor: bool = Field(validation_alias=_alias("is_visitor", "isVisitor"))


class MatchWinner(BaseModel):
    name: str
    score: str  # "wins-losses"
    sets_won: int


class PlayEvent(BaseModel):
    id: int
    timestamp: str
    inning: int
    team_name: str = Field(validation_alias=_alias("team_name", "teamName"))
    player_number: str = Field(validation_alias=_alias("player_number", "playerNum"))
    player_name: str = Field(validation_alias=_alias("player_name", "playerName"))
    action_code: str = Field(validation_alias=_alias("action_code", "actionCode"))
    description: str


class ErrorCulprit(BaseModel):
    """Opposing fielder charged with the error recorded in a cell."""
    slot_index: int
    player_type: PlayerType = PlayerType.STARTER
    team: Optional[Side] = None  # defaults to the fielding (opposing) side
    update_position: Optional[str] = None


# ---------------------------------------------------------------------------
# Score card (one per set)
# ---------------------------------------------------------------------------

class ScoreCardState(BaseModel):
    """Complete state of one set."""
    game_info: GameInfo = Field(
        default_factory=GameInfo, validation_alias=_alias("game_info", "gameInfo"),
    )
    visitor_team: TeamData = Field(
        default_factory=TeamData, validation_alias=_alias("visitor_team", "visitorTeam"),
    )
    local_team: TeamData = Field(
        default_factory=TeamData, validation_alias=_alias("local_team", "localTeam"),
    )
    inning_scores: InningScores = Field(
        default_factory=InningScores,
        validation_alias=_alias("inning_scores", "inningScores"),
    )
    errors: SideCounts = Field(default_factory=SideCounts)
    timeouts: Timeouts = Field(default_factory=Timeouts)
    score_adjustments: SideCounts = Field(
        default_factory=SideCounts,
        validation_alias=_alias("score_adjustments", "scoreAdjustments"),
    )
    winner: Optional[Winner] = None
    history: list[PlayEvent] = Field(default_factory=list)

    def team(self, side: Side) -> TeamData:
        return getattr(self, side.team_attr)

    def manual_scores(self, side: Side) -> list[str]:
        return getattr(self.inning_scores, side.value)


# ---------------------------------------------------------------------------
# Fixture (seed for a fresh set)
# ---------------------------------------------------------------------------

class RosterEntry(BaseModel):
    name: str = ""
    number: str = ""
    gender: str = ""
    position: str = Field(default="", validation_alias=_alias("position", "pos"))


class Fixture(BaseModel):
    """Pairing supplied by the tournament schedule.

    The first five roster entries fill the starter of each slot, the next
    five (when present) the substitute of the same slot.
    """
    set_number: int = Field(default=1, ge=1, le=SETS_PER_MATCH)
    visitor: str = ""
    home: str = ""
    competition: str = ""
    place: str = ""
    date: str = ""
    game_number: str = ""
    visitor_logo: Optional[str] = None
    home_logo: Optional[str] = None
    visitor_roster: list[RosterEntry] = Field(default_factory=list, max_length=2 * ROSTER_SIZE)
    home_roster: list[RosterEntry] = Field(default_factory=list, max_length=2 * ROSTER_SIZE)
