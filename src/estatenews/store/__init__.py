"""Relational persistence for articles, categories, subscribers and email logs."""

from estatenews.store.articles import DEFAULT_CATEGORIES, ArticleStore
from estatenews.store.models import (
    ArticleRecord,
    ArticleStatus,
    CategoryRecord,
    EmailFrequency,
    EmailType,
    NewArticle,
    Subscriber,
)
from estatenews.store.schema import create_db_engine, init_db, metadata
from estatenews.store.subscribers import SubscriberStore

__all__ = [
    "DEFAULT_CATEGORIES",
    "ArticleRecord",
    "ArticleStatus",
    "ArticleStore",
    "CategoryRecord",
    "EmailFrequency",
    "EmailType",
    "NewArticle",
    "Subscriber",
    "SubscriberStore",
    "create_db_engine",
    "init_db",
    "metadata",
]
