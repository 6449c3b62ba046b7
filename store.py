# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0"]
# ///
"""Persistence for score cards.

One JSON document per set, keyed ``scorekeeper_set_<n>``.  Stored blobs go
through :func:`normalize_state` on the way in, which patches older or
partial shapes (missing slots, uneven grids, string error counts) before
pydantic validation.

Usage::

    from store import FileStateStore, DebouncedWriter

    store = FileStateStore("data/sets")
    store.save(1, state)
    state = store.load(1)                 # None when never saved

    writer = DebouncedWriter(store, delay=0.5)
    writer.schedule(1, state)             # last write within 0.5s wins
    writer.flush()
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Protocol

from pydantic import ValidationError

from models import ROSTER_SIZE, GameInfo, PlayEvent, ScoreCardState, Timeouts, Winner
from scorekeeper import parse_int

logger = logging.getLogger(__name__)

KEY_PREFIX = "scorekeeper_set_"


def storage_key(set_number: int) -> str:
    return f"{KEY_PREFIX}{set_number}"


# ---------------------------------------------------------------------------
# Structural migration
# ---------------------------------------------------------------------------

_TEAM_KEYS = (("visitor_team", "visitorTeam"), ("local_team", "localTeam"))
_SCORE_KEYS = ("inning_scores", "inningScores")
_IDENTITY_KEYS = ("name", "gender", "number", "position", "pos")
_SECTIONS = (
    (("game_info", "gameInfo"), GameInfo),
    (("timeouts",), Timeouts),
    (("winner",), Winner),
)


def _pick(raw: dict, names: tuple[str, ...]) -> tuple[str, Any]:
    """Return (key, value) for the first key present, else the first name."""
    for name in names:
        if name in raw:
            return name, raw[name]
    return names[0], None


def _to_int(value: Any) -> int:
    try:
        return max(0, int(str(value).strip() or 0))
    except ValueError:
        return 0


def _to_text(value: Any) -> str:
    return "" if value is None else str(value)


def _normalize_player(player: Any) -> dict:
    player = dict(player) if isinstance(player, dict) else {}
    scores = player.get("scores")
    if not isinstance(scores, list) or not scores:
        scores = [[""]]
    fixed = []
    for inning in scores:
        if not isinstance(inning, list) or not inning:
            inning = [""]
        fixed.append([_to_text(cell) for cell in inning])
    player["scores"] = fixed
    for key in _IDENTITY_KEYS:
        if key in player:
            player[key] = _to_text(player[key])
    for key in ("defensive_error_count", "defError"):
        if key in player:
            player[key] = _to_int(player[key])
    return player


def _normalize_team(team: Any) -> dict:
    team = dict(team) if isinstance(team, dict) else {}
    slots = team.get("slots")
    if not isinstance(slots, list):
        slots = []
    slots = slots[:ROSTER_SIZE]
    while len(slots) < ROSTER_SIZE:
        slots.append({})
    fixed = []
    for slot in slots:
        slot = dict(slot) if isinstance(slot, dict) else {}
        slot["starter"] = _normalize_player(slot.get("starter"))
        slot["sub"] = _normalize_player(slot.get("sub"))
        fixed.append(slot)
    team["slots"] = fixed
    return team


def _pad_grid(player: dict, innings: int) -> None:
    while len(player["scores"]) < innings:
        player["scores"].append([""])


def _valid_history(items: Any) -> list:
    """Keep the history entries that still validate; drop the rest one by one."""
    if not isinstance(items, list):
        return []
    kept = []
    for item in items:
        try:
            PlayEvent.model_validate(item)
        except ValidationError:
            logger.warning("Dropping unreadable history entry: %r", item)
            continue
        kept.append(item)
    return kept


def _salvage_section(data: dict, names: tuple[str, ...], model: type) -> None:
    """Reset one header section to its default when it no longer validates."""
    key, value = _pick(data, names)
    if value is None:
        return
    try:
        model.model_validate(value)
    except ValidationError as exc:
        logger.warning("Resetting unreadable %s: %s", key, exc)
        del data[key]


def normalize_state(raw: dict) -> dict:
    """Patch a stored blob into a shape :class:`ScoreCardState` accepts.

    Pure: *raw* is not modified.  Guarantees five slots per team, a
    starter and a sub per slot, a non-empty grid per player, the same
    number of innings on every grid, manual inning scores at least that
    long, and integer error counts.  Identity fields are coerced to text,
    unreadable history entries are dropped one at a time, and a header
    section (game info, timeouts, winner) that no longer validates falls
    back to its default, so recorded cells survive a single bad field.
    """
    data = copy.deepcopy(raw) if isinstance(raw, dict) else {}

    teams = []
    for names in _TEAM_KEYS:
        key, team = _pick(data, names)
        data[key] = _normalize_team(team)
        teams.append(data[key])

    players = [p for team in teams for slot in team["slots"]
               for p in (slot["starter"], slot["sub"])]
    innings = max(len(p["scores"]) for p in players)
    for player in players:
        _pad_grid(player, innings)

    key, scores = _pick(data, _SCORE_KEYS)
    scores = dict(scores) if isinstance(scores, dict) else {}
    for side in ("visitor", "local"):
        values = scores.get(side)
        values = [_to_text(v) for v in values] if isinstance(values, list) else []
        while len(values) < innings:
            values.append("")
        scores[side] = values
    data[key] = scores

    for name in ("errors", "score_adjustments", "scoreAdjustments"):
        counts = data.get(name)
        if isinstance(counts, dict):
            data[name] = {
                side: _to_int(counts.get(side, 0)) if name == "errors"
                else parse_int(counts.get(side, 0))
                for side in ("visitor", "local")
            }

    data["history"] = _valid_history(data.get("history"))
    for names, model in _SECTIONS:
        _salvage_section(data, names, model)
    return data


def load_state(raw: Any) -> ScoreCardState:
    """Validate a stored blob (dict or JSON text), falling back to a blank card."""
    try:
        if isinstance(raw, (str, bytes)):
            raw = json.loads(raw)
        return ScoreCardState.model_validate(normalize_state(raw))
    except (json.JSONDecodeError, ValidationError, TypeError, ValueError) as exc:
        logger.warning("Unreadable score card, starting fresh: %s", exc)
        return ScoreCardState()


def dump_state(state: ScoreCardState) -> dict:
    return state.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class StateStore(Protocol):
    def load(self, set_number: int) -> ScoreCardState | None: ...

    def save(self, set_number: int, state: ScoreCardState) -> None: ...


class MemoryStateStore:
    """Keeps serialised blobs in a dict; used by tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._blobs: dict[str, dict] = {}
        self._lock = threading.Lock()

    def load(self, set_number: int) -> ScoreCardState | None:
        with self._lock:
            blob = self._blobs.get(storage_key(set_number))
        if blob is None:
            return None
        return load_state(blob)

    def save(self, set_number: int, state: ScoreCardState) -> None:
        with self._lock:
            self._blobs[storage_key(set_number)] = dump_state(state)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._blobs)


class FileStateStore:
    """One JSON file per set inside *root_dir*, written by atomic rename.

    Args:
        root_dir: Directory for the set files.  Created on first write.
            Defaults to ``data/sets/`` next to this file.
    """

    def __init__(self, root_dir: str | Path | None = None) -> None:
        if root_dir is None:
            root_dir = Path(__file__).resolve().parent / "data" / "sets"
        self._root = Path(root_dir)

    @property
    def root_dir(self) -> Path:
        return self._root

    def path_for(self, set_number: int) -> Path:
        return self._root / f"{storage_key(set_number)}.json"

    def load(self, set_number: int) -> ScoreCardState | None:
        path = self.path_for(set_number)
        if not path.exists():
            return None
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not read %s: %s", path, exc)
            return ScoreCardState()
        return load_state(text)

    def save(self, set_number: int, state: ScoreCardState) -> None:
        path = self.path_for(set_number)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(dump_state(state), f, ensure_ascii=False, separators=(",", ":"))
        tmp_path.replace(path)  # atomic rename
        logger.debug("Saved set %d to %s", set_number, path)

    def clear(self) -> int:
        """Delete every stored set.  Returns the number of files removed."""
        if not self._root.exists():
            return 0
        removed = 0
        for path in self._root.glob(f"{KEY_PREFIX}*.json"):
            path.unlink(missing_ok=True)
            removed += 1
        return removed


# ---------------------------------------------------------------------------
# Debounced writer
# ---------------------------------------------------------------------------

TimerFactory = Callable[[float, Callable[[], None]], Any]


def thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class DebouncedWriter:
    """Coalesces rapid saves: only the last state scheduled within *delay*
    seconds is written.

    *timer_factory* builds a started-on-demand timer object exposing
    ``start()`` and ``cancel()``; tests pass a fake that fires manually.
    Save failures are logged and dropped so the scoring path never sees them.

    Writes are serialised on their own lock and stamped with a sequence
    number; a save older than the last one written for the same set is
    skipped, so a timer racing with a newer schedule cannot land stale data.
    """

    def __init__(self, store: StateStore, delay: float = 0.5,
                 timer_factory: TimerFactory | None = None) -> None:
        self.store = store
        self.delay = delay
        self._timer_factory = timer_factory or thread_timer
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._pending: tuple[int, int, ScoreCardState] | None = None
        self._seq = 0
        self._written: dict[int, int] = {}
        self._timer: Any | None = None
        self._closed = False

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def schedule(self, set_number: int, state: ScoreCardState) -> None:
        stale = None
        with self._lock:
            if self._closed:
                return
            # A pending write for another set is flushed first.
            if self._pending is not None and self._pending[0] != set_number:
                stale = self._pending
            self._seq += 1
            self._pending = (set_number, self._seq, state)
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory(self.delay, self._fire)
            self._timer.start()
        if stale is not None:
            self._write(*stale)

    def _fire(self) -> None:
        with self._lock:
            pending, self._pending = self._pending, None
            self._timer = None
        if pending is not None:
            self._write(*pending)

    def _write(self, set_number: int, seq: int, state: ScoreCardState) -> None:
        with self._write_lock:
            if seq < self._written.get(set_number, 0):
                logger.debug("Skipping stale save of set %d", set_number)
                return
            try:
                self.store.save(set_number, state)
            except (OSError, TypeError, ValueError) as exc:
                logger.warning("Failed to save set %d: %s", set_number, exc)
                return
            self._written[set_number] = seq

    def flush(self) -> None:
        """Write any pending state now."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            pending, self._pending = self._pending, None
        if pending is not None:
            self._write(*pending)

    def close(self) -> None:
        self.flush()
        with self._lock:
            self._closed = True
