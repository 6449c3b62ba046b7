# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0", "tweepy>=4.14"]
# ///
"""Best-of-three match aggregation over persisted sets."""

from __future__ import annotations

import logging
from typing import Optional

from models import SETS_PER_MATCH, SETS_TO_WIN, MatchWinner, ScoreCardState, Side
from notifications import (
    LogNotifier,
    Notifier,
    background_dispatch,
    deliver,
    format_match_message,
)
from scorekeeper import ScoreKeeperError
from session import ScoreKeeperSession
from store import StateStore

logger = logging.getLogger(__name__)


def count_set_wins(sets: list[Optional[ScoreCardState]]) -> dict[str, int]:
    """Sets won per side, from each set's winner flag."""
    wins = {Side.VISITOR.value: 0, Side.LOCAL.value: 0}
    for state in sets:
        if state is None or state.winner is None:
            continue
        side = Side.VISITOR if state.winner.is_visitor else Side.LOCAL
        wins[side.value] += 1
    return wins


def match_winner_from_sets(sets: list[Optional[ScoreCardState]]) -> Optional[MatchWinner]:
    """Match winner once one side has two sets.

    Team names come from the first set's header; sets are counted by the
    ``is_visitor`` flag of each set winner.
    """
    wins = count_set_wins(sets)
    first = next((s for s in sets if s is not None), None)
    if first is None:
        return None
    info = first.game_info
    for side in Side:
        own, other = wins[side.value], wins[side.opponent.value]
        if own >= SETS_TO_WIN:
            return MatchWinner(
                name=info.team_name(side), score=f"{own}-{other}", sets_won=own,
            )
    return None


class Match:
    """Owns the (up to three) sets of one match.

    Each set is persisted under its own key in *store*.  Sessions created
    through :meth:`session` report set winners back here, which triggers a
    rescan of every persisted set.
    """

    def __init__(self, store: StateStore, notifier: Notifier | None = None,
                 **session_kwargs) -> None:
        self.store = store
        self.notifier = notifier or LogNotifier()
        self.winner: Optional[MatchWinner] = None
        self._session_kwargs = session_kwargs
        self._dispatch = session_kwargs.get("dispatch") or background_dispatch
        self._sessions: dict[int, ScoreKeeperSession] = {}

    def session(self, set_number: int) -> ScoreKeeperSession:
        if not 1 <= set_number <= SETS_PER_MATCH:
            raise ScoreKeeperError(
                f"set number must be 1-{SETS_PER_MATCH}, got {set_number}", field="set_number",
            )
        if set_number not in self._sessions:
            session = ScoreKeeperSession(
                set_number, self.store, notifier=self.notifier, **self._session_kwargs,
            )
            session.add_winner_listener(self._on_set_won)
            self._sessions[set_number] = session
        return self._sessions[set_number]

    def load_sets(self) -> list[Optional[ScoreCardState]]:
        """Current state of every set: live sessions first, else the store."""
        sets = []
        for n in range(1, SETS_PER_MATCH + 1):
            if n in self._sessions:
                sets.append(self._sessions[n].state)
            else:
                sets.append(self.store.load(n))
        return sets

    def set_wins(self) -> dict[str, int]:
        return count_set_wins(self.load_sets())

    def check_winner(self) -> Optional[MatchWinner]:
        """Rescan all sets; announce the match winner the first time one exists."""
        winner = match_winner_from_sets(self.load_sets())
        if winner is not None and self.winner is None:
            self.winner = winner
            logger.info("Match won by %s (%s)", winner.name, winner.score)
            message = format_match_message(winner)
            self._dispatch(lambda: deliver(self.notifier, message))
        return winner

    def _on_set_won(self, set_number: int, state: ScoreCardState) -> None:
        logger.debug("Set %d finished, rescanning match", set_number)
        self.check_winner()

    def close(self) -> None:
        for session in self._sessions.values():
            session.close()
