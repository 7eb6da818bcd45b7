"""Article and category persistence.

Owns deduplication of incoming news items and category resolution for
published articles.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import func, insert, or_, select, update
from sqlalchemy.engine import Engine, RowMapping
from sqlalchemy.exc import IntegrityError

from estatenews.shared.errors import SlugConflictError
from estatenews.shared.slugs import slugify
from estatenews.store.models import (
    ArticleRecord,
    ArticleStatus,
    CategoryRecord,
    NewArticle,
    as_utc,
)
from estatenews.store.schema import t_article, t_article_category, t_category

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: list[tuple[str, str]] = [
    ("Investering", "Investeringer, salg og finansielle transaktioner i erhvervsejendomme"),
    ("Byggeri", "Byggeprojekter, udvikling og nybyggeri"),
    ("Kontor", "Kontorlokaler og kontorejendomme"),
    ("Lager", "Lagerfaciliteter og lagerejendomme"),
    ("Detailhandel", "Butikslokaler og detailhandelsejendomme"),
    ("Logistik", "Logistikcentre og distributionsfaciliteter"),
    ("Hotel", "Hotelejendomme og turismefaciliteter"),
    ("Industri", "Industriejendomme og produktionsfaciliteter"),
    ("Bolig", "Boligejendomme og udlejningsejendomme"),
    ("Bæredygtighed", "Bæredygtighed, grønne tiltag og energieffektivisering"),
]


def normalize_title(title: str) -> str:
    """Case-fold and collapse whitespace for duplicate detection."""
    return " ".join(title.split()).lower()


class ArticleStore:
    """Relational store for articles, categories and their junction."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ── Private helpers ──────────────────────────────────────────

    @staticmethod
    def _to_article(row: RowMapping) -> ArticleRecord:
        return ArticleRecord(
            id=row["id"],
            title=row["title"],
            slug=row["slug"],
            content=row["content"],
            summary=row["summary"] or "",
            meta_description=row["meta_description"] or "",
            image=row["image"],
            source_url=row["source_url"],
            status=ArticleStatus(row["status"]),
            published_date=as_utc(row["published_date"]),
        )

    @staticmethod
    def _to_category(row: RowMapping) -> CategoryRecord:
        return CategoryRecord(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            description=row["description"],
        )

    def _slug_exists(self, slug: str) -> bool:
        with self.engine.connect() as conn:
            found = conn.execute(select(t_article.c.id).where(t_article.c.slug == slug)).first()
        return found is not None

    # ── Articles ─────────────────────────────────────────────────

    def find_duplicate(self, title: str, source_urls: Iterable[str] = ()) -> ArticleRecord | None:
        """Return an existing article matching by source URL or title.

        A match is either an exact ``source_url`` equal to any of the
        candidate URLs, or a case-insensitive title equality after
        whitespace normalisation.
        """
        urls = [u for u in source_urls if u]
        conditions = [t_article.c.title_key == normalize_title(title)]
        if urls:
            conditions.append(t_article.c.source_url.in_(urls))
        stmt = select(t_article).where(or_(*conditions)).order_by(t_article.c.id).limit(1)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return self._to_article(row) if row else None

    def insert_article(self, article: NewArticle, *, now: datetime | None = None) -> ArticleRecord:
        """Insert a published article.

        Raises:
            SlugConflictError: If another article already uses the slug.
        """
        published = now or datetime.now(tz=UTC)
        values = article.model_dump()
        values.update(
            title_key=normalize_title(article.title),
            status=ArticleStatus.PUBLISHED.value,
            published_date=published,
            created_at=published,
            updated_at=published,
        )
        try:
            with self.engine.begin() as conn:
                result = conn.execute(insert(t_article).values(**values))
                article_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            if self._slug_exists(article.slug):
                raise SlugConflictError(article.slug) from exc
            raise

        logger.info("Inserted article %d (%s)", article_id, article.slug)
        record = self.get_article(article_id)
        assert record is not None
        return record

    def set_image(self, article_id: int, url: str) -> None:
        """Set the hero image URL of an article."""
        with self.engine.begin() as conn:
            conn.execute(
                update(t_article)
                .where(t_article.c.id == article_id)
                .values(image=url, updated_at=datetime.now(tz=UTC))
            )

    def get_article(self, article_id: int) -> ArticleRecord | None:
        """Return an article by id, or None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(select(t_article).where(t_article.c.id == article_id)).mappings().first()
        return self._to_article(row) if row else None

    def count_articles(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(t_article)).scalar_one()

    def list_published_since(self, since: datetime) -> list[ArticleRecord]:
        """Return published articles with ``published_date >= since``, oldest first."""
        stmt = (
            select(t_article)
            .where(t_article.c.status == ArticleStatus.PUBLISHED.value)
            .where(t_article.c.published_date >= since)
            .order_by(t_article.c.published_date, t_article.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [self._to_article(row) for row in rows]

    # ── Categories ───────────────────────────────────────────────

    def link_categories(self, article_id: int, names: Iterable[str]) -> list[CategoryRecord]:
        """Attach existing categories to an article by exact name.

        Names are trimmed and de-duplicated in order. Unknown names are
        dropped; no category is created here.

        Returns:
            The linked categories, in the order of ``names``.
        """
        wanted: list[str] = []
        for name in names:
            cleaned = name.strip()
            if cleaned and cleaned not in wanted:
                wanted.append(cleaned)
        if not wanted:
            return []

        with self.engine.begin() as conn:
            rows = conn.execute(select(t_category).where(t_category.c.name.in_(wanted))).mappings().all()
            by_name = {row["name"]: self._to_category(row) for row in rows}
            linked = [by_name[name] for name in wanted if name in by_name]
            if linked:
                conn.execute(
                    insert(t_article_category),
                    [{"article_id": article_id, "category_id": c.id} for c in linked],
                )

        dropped = [name for name in wanted if name not in by_name]
        if dropped:
            logger.info("Article %d: unknown categories dropped: %s", article_id, ", ".join(dropped))
        return linked

    def get_article_categories(self, article_id: int) -> list[CategoryRecord]:
        """Return the categories linked to one article."""
        return self.get_article_categories_bulk([article_id]).get(article_id, [])

    def get_article_categories_bulk(self, article_ids: Iterable[int]) -> dict[int, list[CategoryRecord]]:
        """Return categories for many articles, keyed by article id."""
        ids = list(article_ids)
        result: dict[int, list[CategoryRecord]] = {article_id: [] for article_id in ids}
        if not ids:
            return result
        stmt = (
            select(t_article_category.c.article_id, t_category)
            .join(t_category, t_category.c.id == t_article_category.c.category_id)
            .where(t_article_category.c.article_id.in_(ids))
            .order_by(t_article_category.c.article_id, t_category.c.id)
        )
        with self.engine.connect() as conn:
            for row in conn.execute(stmt).mappings():
                result[row["article_id"]].append(self._to_category(row))
        return result

    def list_categories(self) -> list[CategoryRecord]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(t_category).order_by(t_category.c.name)).mappings().all()
        return [self._to_category(row) for row in rows]

    def ensure_category(self, name: str, description: str | None = None) -> CategoryRecord:
        """Return the category called ``name``, creating it if absent."""
        with self.engine.begin() as conn:
            row = conn.execute(select(t_category).where(t_category.c.name == name)).mappings().first()
            if row is not None:
                return self._to_category(row)
            result = conn.execute(
                insert(t_category).values(name=name, slug=slugify(name), description=description)
            )
            category_id = result.inserted_primary_key[0]
        logger.info("Created category %s", name)
        return CategoryRecord(id=category_id, name=name, slug=slugify(name), description=description)

    def seed_categories(self) -> list[CategoryRecord]:
        """Install the default category vocabulary. Existing names are kept."""
        return [self.ensure_category(name, description) for name, description in DEFAULT_CATEGORIES]
