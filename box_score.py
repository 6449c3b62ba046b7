# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0"]
# ///
"""Batting statistics, box score and exports for finished or live sets.

Abbreviations follow the paper score sheet:

=====  =========================================
VB     veces al bate (H, X, S or E; placements excluded)
H      hits
CA     carreras anotadas (cells with a run marker)
E      reached base on error / safe
DefE   defensive errors charged to the player
AVE    H / VB, three decimals
=====  =========================================
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from typing import Optional

import action_codes
import scorekeeper
from action_codes import CellKind
from models import PlayerStats, PlayerType, ScoreCardState, Side, TeamData

CSV_HEADERS = ["Equipo", "Tipo", "No", "Jugador", "VB", "H", "CA", "E (Def)", "E (Emb)", "AVE"]
CSV_DELIMITER = ";"


# ---------------------------------------------------------------------------
# Per-player lines
# ---------------------------------------------------------------------------

@dataclass
class BattingLine:
    vb: int = 0
    h: int = 0
    ca: int = 0
    e: int = 0
    def_e: int = 0

    @property
    def ave(self) -> float:
        return self.h / self.vb if self.vb > 0 else 0.0

    @property
    def ave_text(self) -> str:
        return f"{self.ave:.3f}" if self.vb > 0 else ".000"

    @property
    def mvp_score(self) -> float:
        return self.h * 3 + self.ca * 2 + self.ave * 10

    def __add__(self, other: BattingLine) -> BattingLine:
        return BattingLine(
            vb=self.vb + other.vb, h=self.h + other.h, ca=self.ca + other.ca,
            e=self.e + other.e, def_e=self.def_e + other.def_e,
        )

    def to_dict(self) -> dict:
        return {
            "VB": self.vb, "H": self.h, "CA": self.ca, "E": self.e,
            "DefE": self.def_e, "AVE": self.ave_text,
        }


def batting_line(player: PlayerStats) -> BattingLine:
    line = BattingLine(def_e=player.defensive_error_count)
    for cell in player.cells():
        code = action_codes.parse(cell)
        if code.counts_as_at_bat:
            line.vb += 1
        if code.kind is CellKind.HIT:
            line.h += 1
        if code.kind in (CellKind.SAFE, CellKind.ERROR):
            line.e += 1
        if code.scored_run:
            line.ca += 1
    return line


def _sub_played(player: PlayerStats) -> bool:
    return bool(player.name) or any(cell for cell in player.cells())


def player_rows(team: TeamData, team_name: str) -> list[dict]:
    """One row per starter, plus one per substitute that appeared."""
    rows = []
    for idx, slot in enumerate(team.slots):
        for p_type in PlayerType:
            player = slot.player(p_type)
            if p_type is PlayerType.SUB and not _sub_played(player):
                continue
            default_name = f"Jugador {idx + 1}" if p_type is PlayerType.STARTER else "Sustituto"
            rows.append({
                "team": team_name,
                "type": "Titular" if p_type is PlayerType.STARTER else "Sub",
                "slot": idx,
                "number": player.number or "-",
                "name": player.name or default_name,
                "line": batting_line(player),
            })
    return rows


def team_line(team: TeamData) -> BattingLine:
    total = BattingLine()
    for player in team.players():
        total = total + batting_line(player)
    return total


def mvp(team: TeamData) -> Optional[dict]:
    """Best player by 3*H + 2*CA + 10*AVE among those with at least one VB."""
    best: Optional[dict] = None
    for player in team.players():
        line = batting_line(player)
        if line.vb == 0:
            continue
        if best is None or line.mvp_score > best["score"]:
            best = {
                "name": player.name or "Sin Nombre",
                "number": player.number,
                "score": line.mvp_score,
                **line.to_dict(),
            }
    return best


# ---------------------------------------------------------------------------
# Box score
# ---------------------------------------------------------------------------

def inning_runs(state: ScoreCardState, side: Side) -> list[int]:
    """Runs per inning: manual counter or grid markers, whichever is larger."""
    innings = scorekeeper.current_inning_index(state) + 1
    manual = state.manual_scores(side)
    team = state.team(side)
    runs = []
    for i in range(innings):
        grid = sum(
            1 for player in team.players() if i < len(player.scores)
            for cell in player.scores[i] if action_codes.parse(cell).scored_run
        )
        entered = scorekeeper.parse_int(manual[i]) if i < len(manual) else 0
        runs.append(max(grid, entered))
    return runs


def generate_box_score(state: ScoreCardState) -> dict:
    def team_box(side: Side) -> dict:
        team = state.team(side)
        name = state.game_info.team_name(side)
        return {
            "team_name": name,
            "inning_runs": inning_runs(state, side),
            "total_runs": scorekeeper.total_runs(state, side),
            "total_hits": scorekeeper.hits(team),
            "errors": getattr(state.errors, side.value),
            "batting": [
                {k: v for k, v in row.items() if k != "line"} | row["line"].to_dict()
                for row in player_rows(team, name)
            ],
            "totals": team_line(team).to_dict(),
            "mvp": mvp(team),
        }

    return {
        "visitor": team_box(Side.VISITOR),
        "local": team_box(Side.LOCAL),
        "innings": scorekeeper.current_inning_index(state) + 1,
        "winner": state.winner.model_dump() if state.winner else None,
    }


def print_box_score(state: ScoreCardState) -> str:
    """Plain-text line score and batting lines."""
    box = generate_box_score(state)
    lines = []
    lines.append("=" * 64)
    lines.append("BOX SCORE")
    lines.append("=" * 64)

    header = f"{'Equipo':<20}"
    for i in range(1, box["innings"] + 1):
        header += f" {i:>3}"
    header += "  |   C   H   E"
    lines.append(header)
    lines.append("-" * len(header))
    for side in ("visitor", "local"):
        team = box[side]
        row = f"{team['team_name']:<20}"
        for r in team["inning_runs"]:
            row += f" {r:>3}"
        row += f"  | {team['total_runs']:>3} {team['total_hits']:>3} {team['errors']:>3}"
        lines.append(row)

    if box["winner"]:
        lines.append("")
        lines.append(f"Ganador: {box['winner']['name']} ({box['winner']['score']})")

    for side in ("visitor", "local"):
        team = box[side]
        lines.append(f"\n{team['team_name']}:")
        lines.append(f"  {'No':>3} {'Jugador':<20} {'VB':>3} {'H':>3} {'CA':>3} {'E':>3} {'DefE':>4} {'AVE':>6}")
        for b in team["batting"]:
            lines.append(
                f"  {b['number']:>3} {b['name']:<20} {b['VB']:>3} {b['H']:>3} "
                f"{b['CA']:>3} {b['E']:>3} {b['DefE']:>4} {b['AVE']:>6}"
            )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Exports
# ---------------------------------------------------------------------------

def export_csv(state: ScoreCardState) -> str:
    """Semicolon-delimited statistics sheet (decimal comma in AVE)."""
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=CSV_DELIMITER, quoting=csv.QUOTE_MINIMAL,
                        lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for side in Side:
        for row in player_rows(state.team(side), state.game_info.team_name(side)):
            line: BattingLine = row["line"]
            writer.writerow([
                row["team"], row["type"], row["number"], row["name"],
                line.vb, line.h, line.ca, line.def_e, line.e,
                line.ave_text.replace(".", ","),
            ])
    return buf.getvalue()


def match_stats(sets: list[Optional[ScoreCardState]]) -> list[dict]:
    """Batting lines summed over every set of the match.

    Players are matched by team name, number and name, so a side swap
    between sets still lands on the same row.
    """
    totals: dict[tuple[str, str, str], dict] = {}
    for state in sets:
        if state is None:
            continue
        for side in Side:
            for row in player_rows(state.team(side), state.game_info.team_name(side)):
                key = (row["team"], row["number"], row["name"])
                entry = totals.setdefault(key, {
                    "team": row["team"], "number": row["number"],
                    "name": row["name"], "sets": 0, "line": BattingLine(),
                })
                entry["sets"] += 1
                entry["line"] = entry["line"] + row["line"]
    return [
        {"team": e["team"], "number": e["number"], "name": e["name"],
         "sets": e["sets"], **e["line"].to_dict()}
        for e in totals.values()
    ]
