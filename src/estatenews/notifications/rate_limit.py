"""Per-recipient email quota over a trailing window.

The count comes from ``email_log`` rows, one per successful send. Check,
send and log for a given user all happen while that user's lock is
held, so two workers can never both take the last free slot.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta

from estatenews.store.models import EmailType
from estatenews.store.subscribers import SubscriberStore

logger = logging.getLogger(__name__)

DEFAULT_DAILY_CAP = 10
DEFAULT_WINDOW = timedelta(hours=24)


class RateLimitSlot:
    """A user's quota state while their lock is held."""

    def __init__(self, limiter: EmailRateLimiter, user_id: int, sent_in_window: int) -> None:
        self._limiter = limiter
        self.user_id = user_id
        self.sent_in_window = sent_in_window
        self.recorded = False

    @property
    def allowed(self) -> bool:
        return self.sent_in_window < self._limiter.cap

    def record(self, email_type: EmailType, article_id: int | None = None) -> None:
        """Append the email log row for a successful send."""
        self._limiter.subscribers.log_email(
            self.user_id,
            email_type,
            sent_at=self._limiter.now(),
            article_id=article_id,
        )
        self.sent_in_window += 1
        self.recorded = True


class EmailRateLimiter:
    """Caps successful sends per user within a trailing window."""

    def __init__(
        self,
        subscribers: SubscriberStore,
        *,
        cap: int = DEFAULT_DAILY_CAP,
        window: timedelta = DEFAULT_WINDOW,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.subscribers = subscribers
        self.cap = cap
        self.window = window
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def now(self) -> datetime:
        return self._clock()

    def _lock_for(self, user_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    def sent_in_window(self, user_id: int) -> int:
        return self.subscribers.count_sent_since(user_id, self.now() - self.window)

    @contextmanager
    def slot(self, user_id: int) -> Iterator[RateLimitSlot]:
        """Hold the user's lock and expose their current quota.

        Usage::

            with limiter.slot(user_id) as slot:
                if slot.allowed:
                    transport.send(message)
                    slot.record(EmailType.WEEKLY_DIGEST)
        """
        with self._lock_for(user_id):
            count = self.sent_in_window(user_id)
            if count >= self.cap:
                logger.info("User %d reached the email cap (%d/%d)", user_id, count, self.cap)
            yield RateLimitSlot(self, user_id, count)
