"""Shared fixtures: in-memory database, stores and row factories."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from datetime import UTC, datetime

import pytest
from sqlalchemy import insert
from sqlalchemy.engine import Engine

from estatenews.store import (
    ArticleRecord,
    ArticleStore,
    EmailFrequency,
    NewArticle,
    SubscriberStore,
    create_db_engine,
    init_db,
)
from estatenews.store.schema import t_user, t_user_preference_category, t_user_preferences

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)


@pytest.fixture
def engine() -> Iterator[Engine]:
    eng = create_db_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def articles(engine: Engine) -> ArticleStore:
    return ArticleStore(engine)


@pytest.fixture
def seeded_articles(articles: ArticleStore) -> ArticleStore:
    articles.seed_categories()
    return articles


@pytest.fixture
def subscribers(engine: Engine) -> SubscriberStore:
    return SubscriberStore(engine)


@pytest.fixture
def category_id(seeded_articles: ArticleStore) -> Callable[[str], int]:
    """Look up a seeded category id by name."""
    by_name = {c.name: c.id for c in seeded_articles.list_categories()}
    return by_name.__getitem__


@pytest.fixture
def add_subscriber(engine: Engine) -> Callable[..., int]:
    """Insert a user with preferences; returns the user id."""

    def _add(
        email: str,
        frequency: EmailFrequency = EmailFrequency.IMMEDIATE,
        *,
        all_categories: bool = True,
        category_ids: Iterable[int] = (),
        name: str | None = None,
    ) -> int:
        with engine.begin() as conn:
            user_id = conn.execute(insert(t_user).values(email=email, name=name)).inserted_primary_key[0]
            conn.execute(
                insert(t_user_preferences).values(
                    user_id=user_id,
                    email_frequency=frequency.value,
                    all_categories=all_categories,
                )
            )
            for cid in category_ids:
                conn.execute(insert(t_user_preference_category).values(user_id=user_id, category_id=cid))
        return user_id

    return _add


@pytest.fixture
def add_article(articles: ArticleStore) -> Callable[..., ArticleRecord]:
    """Insert a published article, optionally linked to categories by name."""

    def _add(
        title: str,
        *,
        slug: str | None = None,
        published: datetime = NOW,
        categories: Iterable[str] = (),
        source_url: str | None = None,
        summary: str = "Kort resumé.",
    ) -> ArticleRecord:
        record = articles.insert_article(
            NewArticle(
                title=title,
                slug=slug or title.lower().replace(" ", "-"),
                content="## Indhold\n\nBrødtekst.",
                summary=summary,
                meta_description=summary,
                source_url=source_url,
            ),
            now=published,
        )
        articles.link_categories(record.id, categories)
        return record

    return _add
