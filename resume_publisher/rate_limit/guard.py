import hashlib
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import ClassVar, TypeVar, Union

import psycopg

from resume_publisher.database.connection import Database
from resume_publisher.database.repositories.rate_event_repository import RateEventRepository
from resume_publisher.exceptions import RateLimitedError
from resume_publisher.logging.logger import Log

T = TypeVar("T")


@dataclass(frozen=True)
class Allowed:
    pass


@dataclass(frozen=True)
class Denied:
    retry_after: int


RateDecision = Union[Allowed, Denied]


@dataclass(frozen=True)
class RateLimit:
    limit: int
    window_seconds: int


def hash_ip(ip: str) -> str:
    """Client IPs are only ever stored as SHA-256 hex digests."""
    return hashlib.sha256(ip.strip().encode("utf-8")).hexdigest()


class RateGuard:
    """Sliding-window limits counted from event rows.

    A store failure denies the request instead of letting it through.
    """

    LIMITS: ClassVar[dict[str, RateLimit]] = {
        "resume_upload": RateLimit(5, 24 * 3600),
        "handle_change": RateLimit(3, 24 * 3600),
        "content_update": RateLimit(10, 3600),
        "privacy_update": RateLimit(20, 3600),
        "upload_ip_hourly": RateLimit(10, 3600),
        "upload_ip_daily": RateLimit(50, 24 * 3600),
    }
    IP_ACTIONS: ClassVar[frozenset[str]] = frozenset({"upload_ip_hourly", "upload_ip_daily"})

    def __init__(
        self,
        db: Database,
        events: RateEventRepository,
        fail_closed_retry_seconds: int = 60,
    ) -> None:
        self._db = db
        self._events = events
        self._fail_closed_retry_seconds = fail_closed_retry_seconds

    def check(self, subject: str, action: str, now: datetime | None = None) -> RateDecision:
        """Decide whether ``subject`` may perform ``action`` now.

        IP actions take the raw client IP as ``subject`` and hash it.
        """
        rule = self.LIMITS.get(action)
        if rule is None:
            raise ValueError(f"Unknown rate-limited action: {action}")
        key = hash_ip(subject) if action in self.IP_ACTIONS else subject

        try:
            with self._db.connection() as conn:
                times = self._events.recent_event_times(
                    conn, action, key, rule.window_seconds, rule.limit
                )
        except psycopg.Error as exc:
            Log.error(f"Rate limit store unavailable for {action}, denying: {exc}")
            return Denied(retry_after=self._fail_closed_retry_seconds)

        if len(times) < rule.limit:
            return Allowed()

        current = now or datetime.now(timezone.utc)
        oldest_counted = min(times)
        reopens_at = oldest_counted + timedelta(seconds=rule.window_seconds)
        retry_after = max(1, math.ceil((reopens_at - current).total_seconds()))
        Log.info("Rate limit hit", action=action, retry_after=retry_after)
        return Denied(retry_after=retry_after)

    def with_rate_limit(self, subject: str, action: str, fn: Callable[[], T]) -> T:
        """Run ``fn`` if the action is allowed.

        Raises:
            RateLimitedError: carrying the retry-after hint.
        """
        decision = self.check(subject, action)
        if isinstance(decision, Denied):
            raise RateLimitedError(
                f"Rate limit exceeded for {action}",
                retry_after=decision.retry_after,
            )
        return fn()
