"""Notification fan-out: published articles to subscribed readers.

Two entry points share the matching rule and the rate limiter:

- immediate: once per newly published article, to subscribers with
  ``email_frequency=immediate`` whose categories match
- weekly: every article published in the trailing window, one digest
  per ``weekly`` subscriber with at least one matching article

Rate-limited and failed sends are reported, never queued for later.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from estatenews.notifications.emails import (
    DigestEntry,
    format_danish_date,
    render_article_notification,
    render_weekly_digest,
)
from estatenews.notifications.matching import articles_for_subscriber, subscriber_matches
from estatenews.notifications.models import FanoutSummary, RecipientResult, RecipientStatus
from estatenews.notifications.rate_limit import EmailRateLimiter
from estatenews.shared.email import EmailMessage, EmailTransport
from estatenews.store import (
    ArticleRecord,
    ArticleStatus,
    ArticleStore,
    CategoryRecord,
    EmailFrequency,
    EmailType,
    Subscriber,
    SubscriberStore,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_NAME = "Erhvervsejendomme"
DEFAULT_DIGEST_DAYS = 7


class _SendJob(BaseModel):
    subscriber: Subscriber
    message: EmailMessage
    email_type: EmailType
    article_id: int | None = None
    article_count: int = 1


class NotificationFanout:
    """Matches articles to subscribers and dispatches email."""

    def __init__(
        self,
        articles: ArticleStore,
        subscribers: SubscriberStore,
        transport: EmailTransport,
        limiter: EmailRateLimiter,
        *,
        site_url: str,
        default_category_name: str = DEFAULT_CATEGORY_NAME,
        digest_days: int = DEFAULT_DIGEST_DAYS,
        max_workers: int = 1,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.articles = articles
        self.subscribers = subscribers
        self.transport = transport
        self.limiter = limiter
        self.site_url = site_url
        self.default_category_name = default_category_name
        self.digest_days = digest_days
        self.max_workers = max(1, max_workers)
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    # ── Immediate path ───────────────────────────────────────────

    def notify_published(self, article: ArticleRecord) -> FanoutSummary:
        """Publish hook for the synthesis pipeline."""
        return self.send_article_notifications(article.id)

    def send_article_notifications(self, article_id: int) -> FanoutSummary:
        """Notify immediate subscribers about one article.

        Raises:
            LookupError: If the article does not exist.
        """
        summary = FanoutSummary(email_type=EmailType.ARTICLE_NOTIFICATION, total_articles=1)
        article = self.articles.get_article(article_id)
        if article is None:
            raise LookupError(f"Article not found: {article_id}")
        if article.status != ArticleStatus.PUBLISHED:
            logger.info("Article %d is not published, skipping notifications", article_id)
            summary.message = "Article not published, skipping notifications"
            return summary

        categories = self.articles.get_article_categories(article_id)
        category_ids = {c.id for c in categories}
        category_name = categories[0].name if categories else self.default_category_name
        logger.info(
            "Article %d has %d categories: %s",
            article_id,
            len(categories),
            ", ".join(c.name for c in categories),
        )

        candidates = self.subscribers.list_subscribers(EmailFrequency.IMMEDIATE)
        summary.subscribers = len(candidates)
        logger.info("Found %d users with immediate email frequency", len(candidates))

        jobs: list[_SendJob] = []
        for subscriber in candidates:
            if not subscriber_matches(subscriber, category_ids):
                summary.skipped += 1
                continue
            message = render_article_notification(
                to=subscriber.email,
                recipient_name=subscriber.name,
                title=article.title,
                summary=article.summary,
                slug=article.slug,
                category_name=category_name,
                site_url=self.site_url,
                image=article.image,
            )
            jobs.append(
                _SendJob(
                    subscriber=subscriber,
                    message=message,
                    email_type=EmailType.ARTICLE_NOTIFICATION,
                    article_id=article.id,
                )
            )

        logger.info("Found %d users to notify after filtering by categories", len(jobs))
        summary.results = self._dispatch(jobs)
        summary.message = "Article notifications sent" if jobs else "No users match category preferences"
        self._log_summary(summary)
        return summary

    # ── Weekly path ──────────────────────────────────────────────

    def send_weekly_digest(self, now: datetime | None = None) -> FanoutSummary:
        """Send each weekly subscriber their matching articles of the past week."""
        end = now or self._clock()
        start = end - timedelta(days=self.digest_days)
        summary = FanoutSummary(email_type=EmailType.WEEKLY_DIGEST)

        logger.info("Fetching articles published since %s", start.isoformat())
        recent = self.articles.list_published_since(start)
        summary.total_articles = len(recent)
        if not recent:
            logger.info("No articles published in the past week, skipping digest")
            summary.message = "No articles to send"
            return summary

        categories_by_article = self.articles.get_article_categories_bulk(a.id for a in recent)
        candidates = self.subscribers.list_subscribers(EmailFrequency.WEEKLY)
        summary.subscribers = len(candidates)
        logger.info("Found %d users with weekly email frequency", len(candidates))

        week_start = format_danish_date(start)
        week_end = format_danish_date(end)
        jobs: list[_SendJob] = []
        for subscriber in candidates:
            matching = articles_for_subscriber(subscriber, recent, categories_by_article)
            if not matching:
                logger.info("User %d has no matching articles, skipping email", subscriber.user_id)
                summary.skipped += 1
                continue
            entries = [self._digest_entry(a, categories_by_article) for a in matching]
            message = render_weekly_digest(
                to=subscriber.email,
                recipient_name=subscriber.name,
                articles=entries,
                week_start=week_start,
                week_end=week_end,
                site_url=self.site_url,
            )
            jobs.append(
                _SendJob(
                    subscriber=subscriber,
                    message=message,
                    email_type=EmailType.WEEKLY_DIGEST,
                    article_count=len(entries),
                )
            )

        summary.results = self._dispatch(jobs)
        summary.message = "Weekly digest emails sent" if jobs else "No users with matching articles"
        self._log_summary(summary)
        return summary

    # ── Private helpers ──────────────────────────────────────────

    def _digest_entry(
        self,
        article: ArticleRecord,
        categories_by_article: dict[int, list[CategoryRecord]],
    ) -> DigestEntry:
        categories = categories_by_article.get(article.id) or []
        return DigestEntry(
            title=article.title,
            summary=article.summary,
            slug=article.slug,
            image=article.image,
            category_name=categories[0].name if categories else self.default_category_name,
        )

    def _dispatch(self, jobs: Sequence[_SendJob]) -> list[RecipientResult]:
        if not jobs:
            return []
        if self.max_workers == 1 or len(jobs) == 1:
            return [self._send_one(job) for job in jobs]
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="fanout") as pool:
            return list(pool.map(self._send_one, jobs))

    def _send_one(self, job: _SendJob) -> RecipientResult:
        subscriber = job.subscriber
        try:
            with self.limiter.slot(subscriber.user_id) as slot:
                if not slot.allowed:
                    return RecipientResult(
                        user_id=subscriber.user_id,
                        email=subscriber.email,
                        status=RecipientStatus.RATE_LIMITED,
                    )
                self.transport.send(job.message)
                try:
                    slot.record(job.email_type, job.article_id)
                except SQLAlchemyError:
                    logger.error(
                        "Sent %s to %s but could not write the email log",
                        job.email_type.value,
                        subscriber.email,
                        exc_info=True,
                    )
        except Exception as exc:
            logger.error("Failed to send %s to %s", job.email_type.value, subscriber.email, exc_info=True)
            return RecipientResult(
                user_id=subscriber.user_id,
                email=subscriber.email,
                status=RecipientStatus.FAILED,
                error=str(exc),
            )

        logger.info("Sent %s to %s", job.email_type.value, subscriber.email)
        return RecipientResult(
            user_id=subscriber.user_id,
            email=subscriber.email,
            status=RecipientStatus.SENT,
            article_count=job.article_count,
        )

    @staticmethod
    def _log_summary(summary: FanoutSummary) -> None:
        logger.info(
            "%s completed: sent=%d failed=%d rate_limited=%d skipped=%d",
            summary.email_type.value,
            summary.sent,
            summary.failed,
            summary.rate_limited,
            summary.skipped,
        )
