# /// script
# requires-python = ">=3.12"
# dependencies = ["flask>=3.0", "pydantic>=2.0", "tweepy>=4.14"]
# ///
"""JSON API for the live score table.

One match (three sets) is served per process.  Every route works on a set
number in the URL; the scoring UI posts cell edits and reads back the full
score card together with the derived score line and inning status.

Usage:
    uv run app.py
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from flask import Flask, Response, jsonify, request
from pydantic import ValidationError

import box_score
import scorekeeper
from config import ScoreKeeperConfig
from lineup import due_up
from match import Match
from models import ErrorCulprit, Fixture, Side
from scorekeeper import ScoreKeeperError
from session import ScoreKeeperSession
from store import FileStateStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = Flask(__name__)

# Active match; created from the environment on first use.
MATCH: Optional[Match] = None


def get_match() -> Match:
    global MATCH
    if MATCH is None:
        config = ScoreKeeperConfig.from_env()
        MATCH = Match(
            FileStateStore(config.data_dir),
            notifier=config.create_notifier(),
            save_delay=config.save_delay,
            auto_advance_delay=config.auto_advance_delay,
        )
    return MATCH


def _session(set_number: int) -> ScoreKeeperSession:
    return get_match().session(set_number)


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _require(data: dict, *names: str) -> list:
    missing = [n for n in names if n not in data]
    if missing:
        raise ScoreKeeperError(f"missing field(s): {', '.join(missing)}", field=missing[0])
    return [data[n] for n in names]


def _int(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ScoreKeeperError(f"{name} must be an integer", field=name) from None


def _state_response(session: ScoreKeeperSession):
    state = session.state
    return jsonify({
        "set_number": session.set_number,
        "state": state.model_dump(mode="json"),
        "score": scorekeeper.score_line(state),
        "inning": scorekeeper.inning_status(state).to_dict(),
        "due_up": {
            side.value: dict(zip(("slot", "type"), due_up(state.team(side))))
            for side in Side
        },
        "auto_advance_pending": session.auto_advance_pending,
    })


@app.errorhandler(ScoreKeeperError)
def handle_scorekeeper_error(exc: ScoreKeeperError):
    return jsonify({"error": str(exc), "field": exc.field}), 400


@app.errorhandler(ValidationError)
def handle_validation_error(exc: ValidationError):
    return jsonify({"error": "invalid payload", "details": exc.errors(include_url=False, include_context=False)}), 400


# ---------------------------------------------------------------------------
# Set routes
# ---------------------------------------------------------------------------


@app.route("/api/sets/<int:set_number>")
def api_get_set(set_number: int):
    return _state_response(_session(set_number))


@app.route("/api/sets/<int:set_number>", methods=["POST"])
def api_create_set(set_number: int):
    data = _payload()
    data["set_number"] = set_number
    fixture = Fixture.model_validate(data)
    session = _session(set_number)
    session.load_fixture(fixture)
    logger.info("Set %d created: %s vs %s", set_number, fixture.visitor, fixture.home)
    return _state_response(session), 201


@app.route("/api/sets/<int:set_number>/reset", methods=["POST"])
def api_reset_set(set_number: int):
    session = _session(set_number)
    session.reset()
    return _state_response(session)


@app.route("/api/sets/<int:set_number>/cells", methods=["POST"])
def api_edit_cell(set_number: int):
    data = _payload()
    side, slot, player_type, inning, at_bat, value = _require(
        data, "side", "slot", "player_type", "inning", "at_bat", "value",
    )
    culprit = data.get("error_culprit")
    culprit = ErrorCulprit.model_validate(culprit) if culprit else None
    session = _session(set_number)
    edit = session.select if data.get("merge") else session.edit_cell
    edit(side, _int(slot, "slot"), player_type, _int(inning, "inning"),
         _int(at_bat, "at_bat"), str(value), culprit)
    return _state_response(session)


@app.route("/api/sets/<int:set_number>/columns", methods=["POST"])
def api_add_column(set_number: int):
    data = _payload()
    (side,) = _require(data, "side")
    inning = data.get("inning")
    session = _session(set_number)
    session.add_column(side, None if inning is None else _int(inning, "inning"))
    return _state_response(session)


@app.route("/api/sets/<int:set_number>/inning")
def api_inning_status(set_number: int):
    return jsonify(_session(set_number).inning_status().to_dict())


@app.route("/api/sets/<int:set_number>/advance", methods=["POST"])
def api_advance_inning(set_number: int):
    data = _payload()
    session = _session(set_number)
    status = session.inning_status()
    advanced = session.advance_inning(force=bool(data.get("force")))
    if not advanced:
        return jsonify({"advanced": False, "inning": status.to_dict()}), 409
    return _state_response(session)


@app.route("/api/sets/<int:set_number>/swap", methods=["POST"])
def api_swap_sides(set_number: int):
    session = _session(set_number)
    session.swap_sides()
    return _state_response(session)


@app.route("/api/sets/<int:set_number>/score", methods=["POST"])
def api_adjust_score(set_number: int):
    data = _payload()
    session = _session(set_number)
    (side,) = _require(data, "side")
    if "inning" in data:
        (value,) = _require(data, "value")
        session.set_inning_score(side, _int(data["inning"], "inning"), str(value))
    else:
        (delta,) = _require(data, "delta")
        session.adjust_score(side, _int(delta, "delta"))
    return _state_response(session)


@app.route("/api/sets/<int:set_number>/players", methods=["POST"])
def api_update_player(set_number: int):
    data = _payload()
    side, slot, player_type, field, value = _require(
        data, "side", "slot", "player_type", "field", "value",
    )
    session = _session(set_number)
    session.update_player(side, _int(slot, "slot"), player_type, field, str(value))
    return _state_response(session)


@app.route("/api/sets/<int:set_number>/game-info", methods=["POST"])
def api_update_game_info(set_number: int):
    data = _payload()
    field, value = _require(data, "field", "value")
    session = _session(set_number)
    session.update_game_info(field, value)
    return _state_response(session)


@app.route("/api/sets/<int:set_number>/timeouts", methods=["POST"])
def api_toggle_timeout(set_number: int):
    data = _payload()
    side, index = _require(data, "side", "index")
    session = _session(set_number)
    session.toggle_timeout(side, _int(index, "index"))
    return _state_response(session)


@app.route("/api/sets/<int:set_number>/box-score")
def api_box_score(set_number: int):
    state = _session(set_number).state
    fmt = request.args.get("format", "json")
    if fmt == "text":
        return Response(box_score.print_box_score(state), mimetype="text/plain")
    if fmt == "csv":
        return Response(
            "\ufeff" + box_score.export_csv(state),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename=estadisticas_set_{set_number}.csv"},
        )
    return jsonify(box_score.generate_box_score(state))


# ---------------------------------------------------------------------------
# Match routes
# ---------------------------------------------------------------------------


@app.route("/api/match")
def api_match_status():
    match = get_match()
    sets = match.load_sets()
    winner = match.check_winner()
    return jsonify({
        "set_wins": match.set_wins(),
        "sets": [
            None if s is None else {
                "visitor": s.game_info.team_name(Side.VISITOR),
                "local": s.game_info.team_name(Side.LOCAL),
                "score": scorekeeper.score_line(s),
                "winner": s.winner.model_dump() if s.winner else None,
            }
            for s in sets
        ],
        "winner": winner.model_dump() if winner else None,
    })


@app.route("/api/match/stats")
def api_match_stats():
    return jsonify(box_score.match_stats(get_match().load_sets()))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    port = int(os.environ.get("PORT", 5050))
    try:
        app.run(debug=False, host="0.0.0.0", port=port, threaded=True)
    finally:
        if MATCH is not None:
            MATCH.close()
