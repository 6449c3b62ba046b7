# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0", "tweepy>=4.14"]
# ///
"""Live scoring session for one set.

Wraps the pure reducers in :mod:`scorekeeper` with the side effects of a
live score table:

- every accepted change is handed to a :class:`store.DebouncedWriter`;
- when both sides have three outs in the current inning, the next inning
  is opened after a short pause (re-checked when the timer fires);
- a newly declared set winner is announced through the notifier and to
  any registered listeners (the match aggregator).

Usage::

    session = ScoreKeeperSession(1, FileStateStore("data/sets"))
    session.edit_cell("visitor", 0, "starter", 0, 0, "X")
    status = session.inning_status()
    if not status.needs_confirmation:
        session.advance_inning()
    session.close()
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

import action_codes
import scorekeeper
from models import ErrorCulprit, Fixture, PlayerType, ScoreCardState, Side
from notifications import (
    Dispatcher,
    LogNotifier,
    Notifier,
    background_dispatch,
    deliver,
    format_result_message,
)
from scorekeeper import InningStatus
from store import DebouncedWriter, StateStore, TimerFactory, thread_timer

logger = logging.getLogger(__name__)

WinnerListener = Callable[[int, ScoreCardState], None]


class ScoreKeeperSession:
    """Holds the current score card of one set and applies edits to it.

    Args:
        set_number: Which set of the match (1-3); also the storage key.
        store: Persistence port.  The saved state is loaded on start.
        notifier: Receives the share text when the set is won.
        save_delay: Debounce window for saves, in seconds.
        auto_advance_delay: Pause before auto-opening the next inning.
        timer_factory: Builds timers for both delays (tests inject fakes).
        dispatch: Runs the notifier call.  Defaults to a background thread
            so a slow or retrying sink never blocks an edit.
        state: Initial state, overriding whatever the store holds.
    """

    def __init__(
        self,
        set_number: int,
        store: StateStore,
        notifier: Notifier | None = None,
        save_delay: float = 0.5,
        auto_advance_delay: float = 1.5,
        timer_factory: TimerFactory | None = None,
        state: ScoreCardState | None = None,
        dispatch: Dispatcher | None = None,
    ) -> None:
        self.set_number = set_number
        self.store = store
        self.notifier = notifier or LogNotifier()
        self.auto_advance_delay = auto_advance_delay
        self._timer_factory = timer_factory or thread_timer
        self._dispatch = dispatch or background_dispatch
        self._writer = DebouncedWriter(store, save_delay, self._timer_factory)
        self._lock = threading.RLock()
        self._advance_timer: Any | None = None
        self._listeners: list[WinnerListener] = []
        if state is None:
            state = store.load(set_number) or scorekeeper.create_empty_state()
        self._state = state

    # -- accessors ---------------------------------------------------------

    @property
    def state(self) -> ScoreCardState:
        with self._lock:
            return self._state

    @property
    def auto_advance_pending(self) -> bool:
        with self._lock:
            return self._advance_timer is not None

    def add_winner_listener(self, listener: WinnerListener) -> None:
        self._listeners.append(listener)

    def inning_status(self) -> InningStatus:
        return scorekeeper.inning_status(self.state)

    def score_line(self) -> dict[str, int]:
        return scorekeeper.score_line(self.state)

    # -- commit path -------------------------------------------------------

    def _apply(self, reducer: Callable[..., ScoreCardState], *args: Any,
               **kwargs: Any) -> ScoreCardState:
        with self._lock:
            before = self._state
            after = reducer(before, *args, **kwargs)
            if after is before:
                return before
            self._state = after
            self._writer.schedule(self.set_number, after)
            newly_won = before.winner is None and after.winner is not None
            if newly_won:
                self._cancel_auto_advance()
            else:
                self._maybe_schedule_auto_advance()
        if newly_won:
            self._announce(after)
        return after

    def _announce(self, state: ScoreCardState) -> None:
        logger.info("Set %d won by %s", self.set_number, state.winner.name)
        message = format_result_message(state.winner)
        self._dispatch(lambda: deliver(self.notifier, message))
        # The aggregator rescans persisted sets, so write through first.
        self._writer.flush()
        for listener in list(self._listeners):
            listener(self.set_number, state)

    # -- auto advance ------------------------------------------------------

    def _maybe_schedule_auto_advance(self) -> None:
        if self._advance_timer is not None:
            return
        if not scorekeeper.should_auto_advance(self._state):
            return
        inning = scorekeeper.current_inning_index(self._state)
        self._advance_timer = self._timer_factory(
            self.auto_advance_delay, lambda: self._auto_advance(inning),
        )
        self._advance_timer.start()
        logger.debug("Auto-advance scheduled after inning %d", inning + 1)

    def _cancel_auto_advance(self) -> None:
        if self._advance_timer is not None:
            self._advance_timer.cancel()
            self._advance_timer = None

    def _auto_advance(self, inning: int) -> None:
        with self._lock:
            self._advance_timer = None
            state = self._state
            if scorekeeper.current_inning_index(state) != inning:
                return
            if not scorekeeper.should_auto_advance(state):
                return
        self._apply(scorekeeper.advance_inning)

    # -- edits -------------------------------------------------------------

    def edit_cell(self, side: Side | str, slot_index: int, player_type: PlayerType | str,
                  inning_index: int, at_bat_index: int, value: str,
                  error_culprit: ErrorCulprit | None = None) -> ScoreCardState:
        return self._apply(
            scorekeeper.apply_cell_edit, side, slot_index, player_type,
            inning_index, at_bat_index, value, error_culprit,
        )

    def select(self, side: Side | str, slot_index: int, player_type: PlayerType | str,
               inning_index: int, at_bat_index: int, picked: str,
               error_culprit: ErrorCulprit | None = None) -> ScoreCardState:
        """Apply a picked button value, merged with the cell's current markers."""
        side = scorekeeper.coerce_side(side)
        player_type = scorekeeper.coerce_player_type(player_type)
        with self._lock:
            slot = scorekeeper.check_slot(self._state.team(side), slot_index)
            player = slot.player(player_type)
            scorekeeper.check_cell(player, inning_index, at_bat_index)
            current = player.scores[inning_index][at_bat_index]
        value = action_codes.merge_selection(current, picked)
        return self.edit_cell(side, slot_index, player_type, inning_index,
                              at_bat_index, value, error_culprit)

    def add_column(self, side: Side | str, inning_index: int | None = None) -> ScoreCardState:
        return self._apply(scorekeeper.add_column, side, inning_index)

    def advance_inning(self, force: bool = False) -> bool:
        """Open the next inning.

        Without *force*, an incomplete inning (either side short of three
        outs) is left alone and ``False`` is returned so the caller can ask
        for confirmation.
        """
        with self._lock:
            if self._state.winner is not None:
                return False
            if not force and scorekeeper.inning_status(self._state).needs_confirmation:
                return False
            self._cancel_auto_advance()
            self._apply(scorekeeper.advance_inning)
        return True

    def swap_sides(self) -> ScoreCardState:
        return self._apply(scorekeeper.swap_sides)

    def update_player(self, side: Side | str, slot_index: int,
                      player_type: PlayerType | str, field: str, value: str) -> ScoreCardState:
        return self._apply(scorekeeper.update_player, side, slot_index, player_type, field, value)

    def update_game_info(self, field: str, value: Any) -> ScoreCardState:
        return self._apply(scorekeeper.update_game_info, field, value)

    def set_inning_score(self, side: Side | str, inning_index: int, value: str) -> ScoreCardState:
        return self._apply(scorekeeper.set_inning_score, side, inning_index, value)

    def adjust_score(self, side: Side | str, delta: int) -> ScoreCardState:
        return self._apply(scorekeeper.adjust_score, side, delta)

    def toggle_timeout(self, side: Side | str, index: int) -> ScoreCardState:
        return self._apply(scorekeeper.toggle_timeout, side, index)

    def load_fixture(self, fixture: Fixture) -> ScoreCardState:
        return self.replace_state(scorekeeper.new_set(fixture))

    def reset(self) -> ScoreCardState:
        return self.replace_state(scorekeeper.reset_state())

    def replace_state(self, state: ScoreCardState) -> ScoreCardState:
        with self._lock:
            self._cancel_auto_advance()
            self._state = state
            self._writer.schedule(self.set_number, state)
        return state

    # -- teardown ----------------------------------------------------------

    def flush(self) -> None:
        self._writer.flush()

    def close(self) -> None:
        """Cancel the auto-advance timer and write any pending save."""
        with self._lock:
            self._cancel_auto_advance()
        self._writer.close()
