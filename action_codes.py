# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0"]
# ///
"""Cell grammar for the score grid.

A cell is stored as a short string (``"X"``, ``"H●"``, ``"X■"``,
``"E-3s●"`` ...) but every consumer works on the parsed :class:`ActionCode`,
a tagged value with one base :class:`CellKind` and independent flags for the
suffix markers.

Markers:

- ``●``  run scored on this play
- ``■``  this play recorded the inning's third out
- ``⇄``  substitution

An error charged to a specific fielder is written ``E-<slot>`` for the
opposing slot's starter or ``E-<slot>s`` for its substitute (slot is
1-based).  Anything outside the alphabet is kept verbatim as
:attr:`CellKind.UNKNOWN` and never contributes to a counter.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from models import PlayerType

RUN_MARK = "●"
END_MARK = "■"
SUB_MARK = "⇄"

_MARKS = (RUN_MARK, END_MARK, SUB_MARK)
_PLACEMENT_RE = re.compile(r"^Ex([123])B$", re.IGNORECASE)
_CULPRIT_RE = re.compile(r"^E-(\d+)(s?)$", re.IGNORECASE)


class CellKind(str, Enum):
    EMPTY = "EMPTY"
    OUT = "X"
    HIT = "H"
    SAFE = "S"
    ERROR = "E"
    PLACEMENT = "Ex"
    UNKNOWN = "?"


PLATE_APPEARANCE_KINDS = frozenset({CellKind.OUT, CellKind.HIT, CellKind.SAFE, CellKind.ERROR})

_SIMPLE_KINDS = {
    "X": CellKind.OUT,
    "H": CellKind.HIT,
    "S": CellKind.SAFE,
    "E": CellKind.ERROR,
}


@dataclass(frozen=True)
class CulpritRef:
    """Opposing fielder encoded in an error cell (slot index is 0-based)."""
    slot_index: int
    player_type: PlayerType = PlayerType.STARTER

    def encode(self) -> str:
        suffix = "s" if self.player_type is PlayerType.SUB else ""
        return f"E-{self.slot_index + 1}{suffix}"


@dataclass(frozen=True)
class ActionCode:
    kind: CellKind = CellKind.EMPTY
    scored_run: bool = False
    closes_inning: bool = False
    substitution: bool = False
    culprit: Optional[CulpritRef] = None
    token: str = ""  # base text as written (placement base, unknown text)

    # -- derived predicates ---------------------------------------------

    @property
    def is_out(self) -> bool:
        return self.kind is CellKind.OUT

    @property
    def is_error(self) -> bool:
        return self.kind is CellKind.ERROR

    @property
    def is_placement(self) -> bool:
        return self.kind is CellKind.PLACEMENT

    @property
    def counts_as_at_bat(self) -> bool:
        return self.kind in PLATE_APPEARANCE_KINDS

    @property
    def is_substitution_only(self) -> bool:
        return (self.substitution and self.kind is CellKind.EMPTY
                and not self.scored_run and not self.closes_inning)

    @property
    def is_blank(self) -> bool:
        return (self.kind is CellKind.EMPTY and not self.scored_run
                and not self.closes_inning and not self.substitution)

    # -- builders -------------------------------------------------------

    def with_run(self, scored: bool = True) -> ActionCode:
        return replace(self, scored_run=scored)

    def with_inning_end(self, closes: bool = True) -> ActionCode:
        return replace(self, closes_inning=closes)

    def with_culprit(self, culprit: CulpritRef | None) -> ActionCode:
        if culprit is None:
            return replace(self, culprit=None)
        return replace(self, kind=CellKind.ERROR, culprit=culprit, token="")

    def base_text(self) -> str:
        if self.kind is CellKind.EMPTY:
            return ""
        if self.kind is CellKind.ERROR and self.culprit is not None:
            return self.culprit.encode()
        if self.kind in (CellKind.PLACEMENT, CellKind.UNKNOWN):
            return self.token
        return self.kind.value

    def compose(self) -> str:
        """Render back to the stored cell string."""
        text = self.base_text()
        if self.substitution:
            text += SUB_MARK
        if self.scored_run:
            text += RUN_MARK
        if self.closes_inning:
            text += END_MARK
        return text


def parse(value: str | None) -> ActionCode:
    """Parse a stored cell string into an :class:`ActionCode`.

    Never raises: unrecognised text becomes :attr:`CellKind.UNKNOWN`.
    """
    raw = (value or "").strip()
    flags = {
        "scored_run": RUN_MARK in raw,
        "closes_inning": END_MARK in raw,
        "substitution": SUB_MARK in raw,
    }
    base = raw
    for mark in _MARKS:
        base = base.replace(mark, "")
    base = base.strip()

    if not base:
        return ActionCode(kind=CellKind.EMPTY, **flags)

    kind = _SIMPLE_KINDS.get(base.upper())
    if kind is not None:
        return ActionCode(kind=kind, **flags)

    m = _PLACEMENT_RE.match(base)
    if m:
        return ActionCode(kind=CellKind.PLACEMENT, token=f"Ex{m.group(1)}B", **flags)

    m = _CULPRIT_RE.match(base)
    if m and int(m.group(1)) >= 1:
        player_type = PlayerType.SUB if m.group(2) else PlayerType.STARTER
        culprit = CulpritRef(slot_index=int(m.group(1)) - 1, player_type=player_type)
        return ActionCode(kind=CellKind.ERROR, culprit=culprit, **flags)

    # Free text keeps its markers verbatim and carries no flags.
    return ActionCode(kind=CellKind.UNKNOWN, token=raw)


def merge_selection(current: str, picked: str) -> str:
    """Combine a picked button value with the cell's current contents.

    Picking the run marker adds a run to whatever is already recorded.
    Picking a base code replaces the base but keeps existing run and
    inning-end markers.
    """
    existing = parse(current)
    if picked == RUN_MARK:
        return existing.with_run().compose()
    if picked == END_MARK:
        return existing.with_inning_end().compose()
    chosen = parse(picked)
    return replace(
        chosen,
        scored_run=chosen.scored_run or existing.scored_run,
        closes_inning=chosen.closes_inning or existing.closes_inning,
    ).compose()


def describe(code: ActionCode) -> str:
    """Human description used for play-by-play history."""
    if code.is_blank:
        return "BORRAR / CAMBIO"
    if code.kind is CellKind.PLACEMENT:
        desc = f"Corredor en Base ({code.token})"
    elif code.kind is CellKind.OUT:
        desc = "OUT"
    elif code.kind is CellKind.HIT:
        desc = "HIT"
    elif code.kind is CellKind.ERROR:
        desc = "ERROR (reached safely)"
    elif code.kind is CellKind.SAFE:
        desc = "SAFE"
    elif code.kind is CellKind.UNKNOWN:
        desc = code.token
    else:
        desc = ""
    if code.substitution:
        desc = f"{desc} SUBSTITUTION".strip()
    if code.scored_run:
        desc = f"{desc} + RUN" if desc else "RUN"
    return desc or "END OF INNING"
