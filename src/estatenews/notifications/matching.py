"""Category intersection rule shared by the immediate and weekly paths."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from estatenews.store.models import ArticleRecord, CategoryRecord, Subscriber


def subscriber_matches(subscriber: Subscriber, article_category_ids: Iterable[int]) -> bool:
    """True if the subscriber wants an article with these categories.

    ``all_categories`` matches everything, including uncategorised
    articles. Otherwise the explicit set must share at least one id with
    the article; an empty explicit set never matches.
    """
    if subscriber.all_categories:
        return True
    if not subscriber.category_ids:
        return False
    return not subscriber.category_ids.isdisjoint(article_category_ids)


def articles_for_subscriber(
    subscriber: Subscriber,
    articles: Sequence[ArticleRecord],
    categories_by_article: Mapping[int, Sequence[CategoryRecord]],
) -> list[ArticleRecord]:
    """Return the articles a subscriber should receive, in input order."""
    return [
        article
        for article in articles
        if subscriber_matches(subscriber, (c.id for c in categories_by_article.get(article.id, ())))
    ]
