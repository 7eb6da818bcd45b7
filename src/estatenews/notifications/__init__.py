"""Notification fan-out: matching, rate limiting, rendering and dispatch."""

from estatenews.notifications.emails import (
    DigestEntry,
    format_danish_date,
    render_article_notification,
    render_weekly_digest,
)
from estatenews.notifications.fanout import NotificationFanout
from estatenews.notifications.matching import articles_for_subscriber, subscriber_matches
from estatenews.notifications.models import FanoutSummary, RecipientResult, RecipientStatus
from estatenews.notifications.rate_limit import EmailRateLimiter, RateLimitSlot

__all__ = [
    "DigestEntry",
    "EmailRateLimiter",
    "FanoutSummary",
    "NotificationFanout",
    "RateLimitSlot",
    "RecipientResult",
    "RecipientStatus",
    "articles_for_subscriber",
    "format_danish_date",
    "render_article_notification",
    "render_weekly_digest",
    "subscriber_matches",
]
