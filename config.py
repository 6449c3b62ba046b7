# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0", "tweepy>=4.14"]
# ///
"""Centralized configuration for environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from notifications import LogNotifier, Notifier, ResultPoster, TwitterCredentials

DATA_DIR_ENV = "SCOREKEEPER_DATA_DIR"
SAVE_DELAY_ENV = "SCOREKEEPER_SAVE_DELAY"
AUTO_ADVANCE_DELAY_ENV = "SCOREKEEPER_AUTO_ADVANCE_DELAY"
SHARE_RESULTS_ENV = "SCOREKEEPER_SHARE_RESULTS"

DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "data" / "sets"
DEFAULT_SAVE_DELAY = 0.5
DEFAULT_AUTO_ADVANCE_DELAY = 1.5

_TRUTHY = {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        return default


@dataclass
class ScoreKeeperConfig:
    """Runtime settings for a scoring session.

    Attributes:
        data_dir: Directory holding one JSON file per set.
        save_delay: Debounce window for persistence, in seconds.
        auto_advance_delay: Pause before opening the next inning once both
            sides have three outs, in seconds.
        share_results: Post results to Twitter/X for real (otherwise dry-run).
        twitter: Credentials used when *share_results* is on.
    """
    data_dir: Path = DEFAULT_DATA_DIR
    save_delay: float = DEFAULT_SAVE_DELAY
    auto_advance_delay: float = DEFAULT_AUTO_ADVANCE_DELAY
    share_results: bool = False
    twitter: TwitterCredentials = field(default_factory=TwitterCredentials)

    @classmethod
    def from_env(cls) -> ScoreKeeperConfig:
        data_dir = os.environ.get(DATA_DIR_ENV, "").strip()
        return cls(
            data_dir=Path(data_dir) if data_dir else DEFAULT_DATA_DIR,
            save_delay=_env_float(SAVE_DELAY_ENV, DEFAULT_SAVE_DELAY),
            auto_advance_delay=_env_float(AUTO_ADVANCE_DELAY_ENV, DEFAULT_AUTO_ADVANCE_DELAY),
            share_results=os.environ.get(SHARE_RESULTS_ENV, "").strip().lower() in _TRUTHY,
            twitter=TwitterCredentials.from_env(),
        )

    def create_notifier(self) -> Notifier:
        """Result poster when sharing is enabled and configured, else the log."""
        if self.share_results:
            return ResultPoster(self.twitter, dry_run=not self.twitter.is_configured())
        return LogNotifier()
