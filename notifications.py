# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "pydantic>=2.0",
#     "tweepy>=4.14",
# ]
# ///
"""Notification sinks for set and match results.

The session and the match aggregator only know the :class:`Notifier`
protocol (``notify(message)``).  Three sinks are provided:

- :class:`LogNotifier`, the default, writes to the module logger.
- :class:`CollectingNotifier` keeps messages in memory (UI, tests).
- :class:`ResultPoster` shares final results on Twitter/X through tweepy.
  It runs in dry-run mode unless explicitly enabled.

Usage::

    from notifications import ResultPoster, TwitterCredentials

    poster = ResultPoster(TwitterCredentials.from_env(), dry_run=False)
    poster.notify(format_result_message(state.winner))
"""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from models import MatchWinner, Winner

logger = logging.getLogger(__name__)

POST_MAX_LENGTH = 280
MAX_RETRIES = 3
BASE_RETRY_DELAY = 2.0  # seconds
SIGNATURE = "Llevado con B5Tools - La Herramienta del momento"


# ---------------------------------------------------------------------------
# Message formatting
# ---------------------------------------------------------------------------

def format_result_message(winner: Winner) -> str:
    """Share text for a finished set."""
    return (
        "⚾ ¡Juego Finalizado! ⚾\n\n"
        f"Ganador: {winner.name}\n"
        f"Resultado Final: {winner.score}\n\n"
        f"{SIGNATURE}"
    )


def format_match_message(winner: MatchWinner) -> str:
    return (
        "⚾ ¡Partido Finalizado! ⚾\n\n"
        f"Ganador del Partido: {winner.name}\n"
        f"Sets: {winner.score}\n\n"
        f"{SIGNATURE}"
    )


def fit_post(text: str, max_length: int = POST_MAX_LENGTH) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length - 1] + "…"


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------

class Notifier(Protocol):
    def notify(self, message: str) -> None: ...


class LogNotifier:
    def notify(self, message: str) -> None:
        logger.info("%s", message)


@dataclass
class CollectingNotifier:
    messages: list[str] = field(default_factory=list)

    def notify(self, message: str) -> None:
        self.messages.append(message)


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------

Dispatcher = Callable[[Callable[[], None]], Any]


def background_dispatch(job: Callable[[], None]) -> threading.Thread:
    """Run *job* on a daemon thread so slow sinks never hold up scoring."""
    thread = threading.Thread(target=job, name="result-notifier", daemon=True)
    thread.start()
    return thread


def deliver(notifier: Notifier, message: str) -> None:
    """Call ``notifier.notify``; failures are logged, never raised."""
    try:
        notifier.notify(message)
    except Exception:
        logger.exception("Notifier %s failed", type(notifier).__name__)


# ---------------------------------------------------------------------------
# Twitter/X poster
# ---------------------------------------------------------------------------

class NotificationError(Exception):
    """Raised when a result could not be delivered."""

    def __init__(self, message: str, error_code: int | None = None):
        super().__init__(message)
        self.error_code = error_code


class NotificationRateLimitError(NotificationError):
    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message, error_code=429)
        self.retry_after = retry_after


class NotificationAuthError(NotificationError):
    def __init__(self, message: str):
        super().__init__(message, error_code=401)


@dataclass
class TwitterCredentials:
    """OAuth 1.0a user credentials for posting."""
    api_key: str = ""
    api_secret: str = ""
    access_token: str = ""
    access_token_secret: str = ""

    @classmethod
    def from_env(cls) -> TwitterCredentials:
        return cls(
            api_key=os.environ.get("TWITTER_API_KEY", ""),
            api_secret=os.environ.get("TWITTER_API_SECRET", ""),
            access_token=os.environ.get("TWITTER_ACCESS_TOKEN", ""),
            access_token_secret=os.environ.get("TWITTER_ACCESS_TOKEN_SECRET", ""),
        )

    def missing(self) -> list[str]:
        names = {
            "TWITTER_API_KEY": self.api_key,
            "TWITTER_API_SECRET": self.api_secret,
            "TWITTER_ACCESS_TOKEN": self.access_token,
            "TWITTER_ACCESS_TOKEN_SECRET": self.access_token_secret,
        }
        return [name for name, value in names.items() if not value]

    def is_configured(self) -> bool:
        return not self.missing()


@dataclass
class PostResult:
    success: bool
    text: str
    post_id: str | None = None
    error: str | None = None
    error_code: int | None = None
    dry_run: bool = False
    retries: int = 0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "text": self.text,
            "post_id": self.post_id,
            "error": self.error,
            "error_code": self.error_code,
            "dry_run": self.dry_run,
            "retries": self.retries,
            "timestamp": self.timestamp,
        }


def create_client(credentials: TwitterCredentials) -> Any:
    """Build a tweepy v2 client, raising if credentials are incomplete."""
    import tweepy

    missing = credentials.missing()
    if missing:
        raise NotificationAuthError(f"Missing Twitter credentials: {', '.join(missing)}")
    return tweepy.Client(
        consumer_key=credentials.api_key,
        consumer_secret=credentials.api_secret,
        access_token=credentials.access_token,
        access_token_secret=credentials.access_token_secret,
    )


def post_via_api(client: Any, text: str) -> str:
    """Create a post and return its id, mapping tweepy errors."""
    import tweepy

    try:
        response = client.create_tweet(text=text)
        return str(response.data["id"])
    except tweepy.TooManyRequests as exc:
        retry_after = None
        response = getattr(exc, "response", None)
        if response is not None:
            header = response.headers.get("retry-after")
            if header:
                try:
                    retry_after = float(header)
                except ValueError:
                    retry_after = None
        raise NotificationRateLimitError(
            f"Twitter rate limit exceeded: {exc}", retry_after=retry_after,
        ) from exc
    except (tweepy.Unauthorized, tweepy.Forbidden) as exc:
        raise NotificationAuthError(f"Twitter authentication failed: {exc}") from exc
    except tweepy.TwitterServerError as exc:
        raise NotificationError(f"Twitter server error: {exc}", error_code=500) from exc
    except tweepy.TweepyException as exc:
        raise NotificationError(f"Twitter API error: {exc}") from exc


class ResultPoster:
    """Notifier that posts result messages to Twitter/X.

    Transient failures (rate limits, server errors) are retried with
    exponential backoff; authentication failures are not.  Every attempt is
    recorded in :attr:`results`.  Failures are logged, never raised, so a
    broken network cannot interrupt scoring.
    """

    def __init__(
        self,
        credentials: TwitterCredentials | None = None,
        dry_run: bool = True,
        max_retries: int = MAX_RETRIES,
        client_factory: Callable[[TwitterCredentials], Any] | None = None,
        post_fn: Callable[[Any, str], str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.credentials = credentials or TwitterCredentials()
        self.dry_run = dry_run
        self.max_retries = max_retries
        self.results: list[PostResult] = []
        self._client_factory = client_factory or create_client
        self._post_fn = post_fn or post_via_api
        self._sleep = sleep
        self._client: Any | None = None

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory(self.credentials)
        return self._client

    def notify(self, message: str) -> None:
        self.post(message)

    def post(self, message: str) -> PostResult:
        if not message:
            result = PostResult(success=False, text="", error="Empty message")
            self.results.append(result)
            return result

        text = fit_post(message)
        if self.dry_run:
            logger.info("[DRY-RUN] Would post result: %s", text)
            result = PostResult(success=True, text=text, dry_run=True)
            self.results.append(result)
            return result
        return self._post_with_retries(text)

    def _post_with_retries(self, text: str) -> PostResult:
        last_error: str | None = None
        last_code: int | None = None
        retries = 0

        for attempt in range(self.max_retries + 1):
            try:
                post_id = self._post_fn(self._get_client(), text)
            except NotificationAuthError as exc:
                last_error, last_code = str(exc), exc.error_code
                logger.error("Result post auth error (not retrying): %s", exc)
                break
            except NotificationRateLimitError as exc:
                last_error, last_code = str(exc), exc.error_code
                retries = attempt + 1
                delay = exc.retry_after or BASE_RETRY_DELAY * (2 ** attempt)
            except NotificationError as exc:
                last_error, last_code = str(exc), exc.error_code
                retries = attempt + 1
                delay = BASE_RETRY_DELAY * (2 ** attempt)
            else:
                result = PostResult(success=True, text=text, post_id=post_id, retries=attempt)
                self.results.append(result)
                logger.info("Result posted (id=%s, retries=%d)", post_id, attempt)
                return result

            if attempt < self.max_retries:
                logger.warning(
                    "Result post failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1, self.max_retries + 1, delay, last_error,
                )
                self._sleep(delay)

        logger.error("Giving up on result post: %s", last_error)
        result = PostResult(
            success=False, text=text, error=last_error,
            error_code=last_code, retries=retries,
        )
        self.results.append(result)
        return result
