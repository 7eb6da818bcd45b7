"""Relational schema (SQLAlchemy Core).

Works against any SQLAlchemy URL: PostgreSQL in production, SQLite for
development and tests.
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    create_engine,
    func,
)
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

metadata = MetaData()


t_article = Table(
    "article",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", Text, nullable=False),
    Column("title_key", Text, nullable=False),
    Column("slug", String(255), nullable=False, unique=True),
    Column("content", Text, nullable=False),
    Column("summary", Text),
    Column("meta_description", Text),
    Column("image", Text),
    Column("source_url", Text),
    Column("status", String(20), nullable=False, server_default="draft"),
    Column("published_date", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now()),
    Index("idx_article_source_url", "source_url"),
    Index("idx_article_title_key", "title_key"),
    Index("idx_article_status_published", "status", "published_date"),
)

t_category = Table(
    "category",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("slug", String(100), nullable=False, unique=True),
    Column("description", Text),
    Column("image", Text),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

t_article_category = Table(
    "article_category",
    metadata,
    Column("article_id", Integer, ForeignKey("article.id", ondelete="CASCADE"), nullable=False),
    Column("category_id", Integer, ForeignKey("category.id", ondelete="CASCADE"), nullable=False),
    PrimaryKeyConstraint("article_id", "category_id"),
)

t_user = Table(
    "user",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255)),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

t_user_preferences = Table(
    "user_preferences",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("email_frequency", String(20), nullable=False, server_default="weekly"),
    Column("all_categories", Boolean, nullable=False, server_default="1"),
    Column("updated_at", DateTime(timezone=True), server_default=func.now()),
)

t_user_preference_category = Table(
    "user_preference_category",
    metadata,
    Column("user_id", Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
    Column("category_id", Integer, ForeignKey("category.id", ondelete="CASCADE"), nullable=False),
    PrimaryKeyConstraint("user_id", "category_id"),
)

t_email_log = Table(
    "email_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
    Column("email_type", String(40), nullable=False),
    Column("article_id", Integer, ForeignKey("article.id", ondelete="SET NULL")),
    Column("sent_at", DateTime(timezone=True), nullable=False),
    Column("status", String(20), nullable=False, server_default="sent"),
    Index("idx_email_log_user_sent", "user_id", "sent_at"),
)

t_ai_prompt = Table(
    "ai_prompt",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("key", String(100), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("model", String(100)),
    Column("section", String(100)),
    Column("prompt", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now()),
)

t_ai_prompt_version = Table(
    "ai_prompt_version",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("prompt_id", Integer, ForeignKey("ai_prompt.id", ondelete="CASCADE"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("model", String(100)),
    Column("section", String(100)),
    Column("prompt", Text, nullable=False),
    Column("version_number", Integer, nullable=False),
    Column("change_description", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("created_by", String(255)),
    Index("idx_ai_prompt_version_prompt", "prompt_id", "version_number"),
)


def create_db_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine for ``url``.

    In-memory SQLite gets a single shared connection so every session
    sees the same database.
    """
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    if url.startswith("sqlite"):
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(url, echo=echo, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    metadata.create_all(engine)
    logger.info("Database schema ready (%d tables)", len(metadata.tables))
