"""Persistence domain models, pure Pydantic v2 data types.

Rows read from the relational store are converted into these records
at the store boundary so callers never handle SQLAlchemy rows.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class ArticleStatus(StrEnum):
    """Lifecycle status of an article."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class EmailFrequency(StrEnum):
    """How often a subscriber wants email."""

    IMMEDIATE = "immediate"
    WEEKLY = "weekly"
    NONE = "none"


class EmailType(StrEnum):
    """Kind of email recorded in the email log."""

    ARTICLE_NOTIFICATION = "article_notification"
    WEEKLY_DIGEST = "weekly_digest"


class NewArticle(BaseModel):
    """Values for inserting one article."""

    title: str
    slug: str
    content: str
    summary: str = ""
    meta_description: str = ""
    source_url: str | None = None


class ArticleRecord(BaseModel):
    """A persisted article."""

    id: int
    title: str
    slug: str
    content: str
    summary: str = ""
    meta_description: str = ""
    image: str | None = None
    source_url: str | None = None
    status: ArticleStatus = ArticleStatus.DRAFT
    published_date: datetime | None = None


class CategoryRecord(BaseModel):
    """A persisted category."""

    id: int
    name: str
    slug: str
    description: str | None = None


class Subscriber(BaseModel):
    """A user together with their email preferences."""

    user_id: int
    email: str
    name: str | None = None
    email_frequency: EmailFrequency = EmailFrequency.WEEKLY
    all_categories: bool = True
    category_ids: set[int] = Field(default_factory=set)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
