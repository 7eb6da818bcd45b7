"""Tests for the per-recipient email cap."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta

import pytest

from estatenews.notifications import EmailRateLimiter
from estatenews.store import EmailType

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)


@pytest.fixture
def limiter(subscribers) -> EmailRateLimiter:
    return EmailRateLimiter(subscribers, cap=10, window=timedelta(hours=24), clock=lambda: NOW)


def _log(subscribers, user_id: int, count: int, *, age: timedelta = timedelta(hours=1)) -> None:
    for _ in range(count):
        subscribers.log_email(user_id, EmailType.ARTICLE_NOTIFICATION, sent_at=NOW - age)


class TestCapBoundary:
    @pytest.mark.parametrize(("already_sent", "allowed"), [(9, True), (10, False), (11, False)])
    def test_boundary(self, limiter, subscribers, add_subscriber, already_sent, allowed):
        user_id = add_subscriber("reader@example.dk")
        _log(subscribers, user_id, already_sent)

        with limiter.slot(user_id) as slot:
            assert slot.allowed is allowed
            assert slot.sent_in_window == already_sent

    def test_rows_outside_window_do_not_count(self, limiter, subscribers, add_subscriber):
        user_id = add_subscriber("reader@example.dk")
        _log(subscribers, user_id, 10, age=timedelta(hours=25))

        with limiter.slot(user_id) as slot:
            assert slot.allowed
            assert slot.sent_in_window == 0

    def test_record_consumes_quota(self, limiter, subscribers, add_subscriber):
        user_id = add_subscriber("reader@example.dk")
        _log(subscribers, user_id, 9)

        with limiter.slot(user_id) as slot:
            assert slot.allowed
            slot.record(EmailType.WEEKLY_DIGEST)
            assert not slot.allowed

        assert limiter.sent_in_window(user_id) == 10


class TestConcurrency:
    def test_last_slot_is_taken_once(self, limiter, subscribers, add_subscriber):
        user_id = add_subscriber("reader@example.dk")
        _log(subscribers, user_id, 9)
        start = threading.Barrier(8)

        def _attempt(_: int) -> bool:
            start.wait()
            with limiter.slot(user_id) as slot:
                if not slot.allowed:
                    return False
                slot.record(EmailType.ARTICLE_NOTIFICATION)
                return True

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(_attempt, range(8)))

        assert outcomes.count(True) == 1
        assert limiter.sent_in_window(user_id) == 10
