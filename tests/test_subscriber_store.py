"""Tests for subscriber preference reads and the email log."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from estatenews.store import EmailFrequency, EmailType


class TestListSubscribers:
    def test_filters_by_frequency(self, subscribers, add_subscriber):
        add_subscriber("now@example.dk", EmailFrequency.IMMEDIATE)
        add_subscriber("week@example.dk", EmailFrequency.WEEKLY)
        add_subscriber("never@example.dk", EmailFrequency.NONE)

        immediate = subscribers.list_subscribers(EmailFrequency.IMMEDIATE)
        weekly = subscribers.list_subscribers(EmailFrequency.WEEKLY)

        assert [s.email for s in immediate] == ["now@example.dk"]
        assert [s.email for s in weekly] == ["week@example.dk"]

    def test_loads_explicit_categories(self, subscribers, add_subscriber, category_id):
        kontor, lager = category_id("Kontor"), category_id("Lager")
        add_subscriber(
            "picky@example.dk",
            all_categories=False,
            category_ids=[kontor, lager],
            name="Pia",
        )

        [subscriber] = subscribers.list_subscribers(EmailFrequency.IMMEDIATE)

        assert subscriber.name == "Pia"
        assert subscriber.all_categories is False
        assert subscriber.category_ids == {kontor, lager}

    def test_all_categories_subscriber_has_empty_set(self, subscribers, add_subscriber):
        add_subscriber("all@example.dk")
        [subscriber] = subscribers.list_subscribers(EmailFrequency.IMMEDIATE)
        assert subscriber.all_categories is True
        assert subscriber.category_ids == set()


class TestEmailLog:
    def test_count_sent_since(self, subscribers, add_subscriber):
        user_id = add_subscriber("a@example.dk")
        now = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)
        subscribers.log_email(user_id, EmailType.ARTICLE_NOTIFICATION, sent_at=now - timedelta(hours=25))
        subscribers.log_email(user_id, EmailType.ARTICLE_NOTIFICATION, sent_at=now - timedelta(hours=2))
        subscribers.log_email(user_id, EmailType.WEEKLY_DIGEST, sent_at=now - timedelta(minutes=5))

        assert subscribers.count_sent_since(user_id, now - timedelta(hours=24)) == 2

    def test_counts_are_per_user(self, subscribers, add_subscriber):
        a = add_subscriber("a@example.dk")
        b = add_subscriber("b@example.dk")
        now = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)
        subscribers.log_email(a, EmailType.ARTICLE_NOTIFICATION, sent_at=now)

        assert subscribers.count_sent_since(a, now - timedelta(hours=1)) == 1
        assert subscribers.count_sent_since(b, now - timedelta(hours=1)) == 0
