"""Tests for the category intersection rule."""

from __future__ import annotations

from estatenews.notifications import articles_for_subscriber, subscriber_matches
from estatenews.store import ArticleRecord, CategoryRecord, Subscriber


def _subscriber(all_categories: bool = True, category_ids: set[int] | None = None) -> Subscriber:
    return Subscriber(
        user_id=1,
        email="reader@example.dk",
        all_categories=all_categories,
        category_ids=category_ids or set(),
    )


def _article(article_id: int) -> ArticleRecord:
    return ArticleRecord(id=article_id, title=f"A{article_id}", slug=f"a{article_id}", content="")


def _category(category_id: int) -> CategoryRecord:
    return CategoryRecord(id=category_id, name=f"C{category_id}", slug=f"c{category_id}")


class TestSubscriberMatches:
    def test_all_categories_matches_anything(self):
        assert subscriber_matches(_subscriber(), {7})
        assert subscriber_matches(_subscriber(), set())

    def test_explicit_overlap(self):
        assert subscriber_matches(_subscriber(False, {1, 2}), {2, 3})

    def test_explicit_disjoint(self):
        assert not subscriber_matches(_subscriber(False, {1}), {2})

    def test_explicit_empty_set_never_matches(self):
        assert not subscriber_matches(_subscriber(False, set()), {1})

    def test_uncategorised_article_only_reaches_all_categories(self):
        assert not subscriber_matches(_subscriber(False, {1}), [])


class TestArticlesForSubscriber:
    def test_filters_and_keeps_order(self):
        articles = [_article(1), _article(2), _article(3)]
        categories = {1: [_category(10)], 2: [_category(20)], 3: [_category(10), _category(30)]}

        matching = articles_for_subscriber(_subscriber(False, {10}), articles, categories)

        assert [a.id for a in matching] == [1, 3]

    def test_all_categories_gets_everything(self):
        articles = [_article(1), _article(2)]
        assert articles_for_subscriber(_subscriber(), articles, {}) == articles
