"""Pipeline value types: news candidates, metadata, and run reports."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class NewsItem(BaseModel):
    """An AI-discovered story stub, not yet expanded into an article."""

    title: str
    summary: str
    sources: list[str] = Field(default_factory=list)
    date: str = ""

    @field_validator("title", "summary")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("sources", mode="before")
    @classmethod
    def _coerce_sources(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return value

    @field_validator("sources")
    @classmethod
    def _clean_sources(cls, value: list[str]) -> list[str]:
        return [url.strip() for url in value if url and url.strip()]

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, value: object) -> object:
        return "" if value is None else str(value)

    @property
    def source_url(self) -> str | None:
        """Primary citation URL, stored on the article."""
        return self.sources[0] if self.sources else None


def split_categories(value: str | list[str] | None) -> list[str]:
    """Turn ``"Investering, Bolig"`` into an ordered, de-duplicated list."""
    if value is None:
        return []
    parts = value.split(",") if isinstance(value, str) else [str(v) for v in value]
    names: list[str] = []
    for part in parts:
        name = part.strip()
        if name and name not in names:
            names.append(name)
    return names


class ArticleMetadata(BaseModel):
    """SEO metadata and category names for a written article."""

    slug: str
    meta_description: str
    summary: str
    categories: list[str] = Field(default_factory=list)
    fallback: bool = False


class SynthesisResult(BaseModel):
    """Outcome of running the synthesis pipeline on one news item."""

    success: bool
    article_id: int | None = None
    slug: str | None = None
    image_url: str | None = None
    error: str | None = None
    duplicate: bool = False


class ItemOutcome(StrEnum):
    """Per-item result in a discovery run."""

    SUCCEEDED = "succeeded"
    DUPLICATE = "duplicate"
    FAILED = "failed"


class ItemReport(BaseModel):
    """One line of a discovery run summary."""

    title: str
    outcome: ItemOutcome
    article_id: int | None = None
    slug: str | None = None
    error: str | None = None


class DiscoveryReport(BaseModel):
    """Summary of one News Discovery run."""

    started_at: datetime
    finished_at: datetime | None = None
    total: int = 0
    items: list[ItemReport] = Field(default_factory=list)
    cancelled: bool = False

    def _count(self, outcome: ItemOutcome) -> int:
        return sum(1 for item in self.items if item.outcome == outcome)

    @property
    def succeeded(self) -> int:
        return self._count(ItemOutcome.SUCCEEDED)

    @property
    def duplicates(self) -> int:
        return self._count(ItemOutcome.DUPLICATE)

    @property
    def failed(self) -> int:
        return self._count(ItemOutcome.FAILED)

    @property
    def processed(self) -> int:
        return len(self.items)

    def add(self, title: str, result: SynthesisResult) -> ItemReport:
        """Record a synthesis result."""
        if result.duplicate:
            outcome = ItemOutcome.DUPLICATE
        elif result.success:
            outcome = ItemOutcome.SUCCEEDED
        else:
            outcome = ItemOutcome.FAILED
        entry = ItemReport(
            title=title,
            outcome=outcome,
            article_id=result.article_id,
            slug=result.slug,
            error=result.error,
        )
        self.items.append(entry)
        return entry
