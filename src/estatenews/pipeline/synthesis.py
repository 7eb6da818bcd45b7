"""Article synthesis: one news item in, one published article out.

Stages run strictly in order, each depending on the previous one:

1. Deduplication against existing articles (before any paid call)
2. Research (search-augmented)
3. Writing
4. Metadata extraction (falls back to a deterministic derivation)
5. Insert the published article
6. Link categories by exact name
7. Post-publish steps: hero image, then the publish hook

Post-publish steps run only after the article row and its categories
exist, and nothing they do can un-publish the article.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from estatenews.config import AIConfig
from estatenews.pipeline.images import HeroImageStep
from estatenews.pipeline.models import ArticleMetadata, NewsItem, SynthesisResult, split_categories
from estatenews.prompts import (
    ARTICLE_METADATA,
    ARTICLE_RESEARCH,
    ARTICLE_WRITING,
    PromptStore,
    resolve_prompt,
)
from estatenews.shared.errors import LLMError, ResponseParseError, SlugConflictError, StageError
from estatenews.shared.llm import TextClient, parse_json_object
from estatenews.shared.slugs import slugify
from estatenews.store import ArticleRecord, ArticleStore, NewArticle

logger = logging.getLogger(__name__)

META_DESCRIPTION_LENGTH = 160
PLACEHOLDER_CATEGORY = "Erhvervsejendomme"
DUPLICATE_ERROR = "Duplicate article - already exists"

_H1_RE = re.compile(r"^# ", re.MULTILINE)

PublishHook = Callable[[ArticleRecord], Any]


class StageModels(BaseModel):
    """Model names for the text stages of one run."""

    research: str
    writing: str
    metadata: str

    @classmethod
    def from_config(cls, ai: AIConfig) -> StageModels:
        return cls(
            research=ai.model_for("research"),
            writing=ai.model_for("writing"),
            metadata=ai.model_for("metadata"),
        )


def normalize_headings(markdown: str) -> str:
    """Demote top-level ``#`` headings to ``##``; the page renders the title."""
    return _H1_RE.sub("## ", markdown)


def fallback_metadata(item: NewsItem) -> ArticleMetadata:
    """Derive metadata deterministically from the news item."""
    return ArticleMetadata(
        slug=slugify(item.title),
        meta_description=item.summary[:META_DESCRIPTION_LENGTH],
        summary=item.summary,
        categories=[PLACEHOLDER_CATEGORY],
        fallback=True,
    )


def parse_metadata(text: str | None, item: NewsItem) -> ArticleMetadata:
    """Parse the metadata stage's JSON answer.

    Expects ``{slug, metaDescription, summary, categories}`` where
    ``categories`` is a comma-separated string. Anything unusable yields
    :func:`fallback_metadata` instead of an error.
    """
    if not text:
        logger.warning("Empty metadata response, using fallback")
        return fallback_metadata(item)
    try:
        data = parse_json_object(text)
    except ResponseParseError as exc:
        logger.warning("Failed to parse metadata JSON, using fallback: %s", exc)
        return fallback_metadata(item)

    slug = data.get("slug")
    meta_description = data.get("metaDescription")
    summary = data.get("summary")
    categories = data.get("categories")
    if not all(isinstance(v, str) for v in (slug, meta_description, summary)) or not isinstance(
        categories, (str, list)
    ):
        logger.warning("Metadata JSON is missing required keys, using fallback")
        return fallback_metadata(item)

    normalized_slug = slugify(str(slug))
    if not normalized_slug:
        logger.warning("Metadata slug %r is empty after normalisation, using fallback", slug)
        return fallback_metadata(item)

    return ArticleMetadata(
        slug=normalized_slug,
        meta_description=str(meta_description).strip(),
        summary=str(summary).strip(),
        categories=split_categories(categories),
    )


class ArticleSynthesizer:
    """Runs the synthesis stages for one news item at a time."""

    def __init__(
        self,
        articles: ArticleStore,
        text_client: TextClient,
        models: StageModels,
        *,
        prompts: PromptStore | None = None,
        image_step: HeroImageStep | None = None,
        on_publish: PublishHook | None = None,
    ) -> None:
        self.articles = articles
        self.text_client = text_client
        self.models = models
        self.prompts = prompts
        self.image_step = image_step
        self.on_publish = on_publish

    def process(self, item: NewsItem) -> SynthesisResult:
        """Turn a news item into a published article.

        Never raises for expected failures: duplicates, stage failures and
        slug conflicts are all reported in the result.
        """
        logger.info("Processing news item: %s", item.title)

        existing = self.articles.find_duplicate(item.title, item.sources)
        if existing is not None:
            logger.warning("Duplicate article found: %s (ID: %d)", existing.title, existing.id)
            return SynthesisResult(success=False, duplicate=True, error=DUPLICATE_ERROR)

        try:
            research = self._research(item)
            content = self._write(item, research)
        except (StageError, LLMError) as exc:
            logger.error("Synthesis failed for %r: %s", item.title, exc)
            return SynthesisResult(success=False, error=str(exc))

        metadata = self._extract_metadata(item, content)
        if not metadata.slug:
            return SynthesisResult(success=False, error=f"Could not derive a slug for {item.title!r}")

        try:
            record = self.articles.insert_article(
                NewArticle(
                    title=item.title,
                    slug=metadata.slug,
                    content=content,
                    summary=metadata.summary,
                    meta_description=metadata.meta_description,
                    source_url=item.source_url,
                )
            )
        except SlugConflictError as exc:
            logger.error("Dropping %r: %s", item.title, exc)
            return SynthesisResult(success=False, slug=metadata.slug, error=str(exc))
        except SQLAlchemyError as exc:
            logger.error("Failed to save article %r", item.title, exc_info=True)
            return SynthesisResult(success=False, error=f"Database error: {exc}")

        self._link_categories(record, metadata)
        image_url = self._post_publish(record)

        return SynthesisResult(
            success=True,
            article_id=record.id,
            slug=record.slug,
            image_url=image_url,
        )

    # ── Stages ───────────────────────────────────────────────────

    def _research(self, item: NewsItem) -> str:
        prompt = resolve_prompt(
            self.prompts,
            ARTICLE_RESEARCH,
            {
                "title": item.title,
                "summary": item.summary,
                "sources": "\n".join(item.sources),
                "sourceUrl": item.source_url or "",
                "date": item.date,
            },
        )
        logger.info("Researching news story...")
        result = self.text_client.generate(self.models.research, prompt, web_search=True)
        if not result.output_text:
            raise StageError("research", "Failed to research news story")
        return result.output_text

    def _write(self, item: NewsItem, research: str) -> str:
        prompt = resolve_prompt(
            self.prompts,
            ARTICLE_WRITING,
            {"title": item.title, "summary": item.summary, "researchFindings": research},
        )
        logger.info("Research completed, writing article...")
        result = self.text_client.generate(self.models.writing, prompt)
        if not result.output_text:
            raise StageError("writing", "Failed to write article")
        return normalize_headings(result.output_text)

    def _extract_metadata(self, item: NewsItem, content: str) -> ArticleMetadata:
        prompt = resolve_prompt(self.prompts, ARTICLE_METADATA, {"articleContent": content})
        logger.info("Article written, generating metadata...")
        try:
            result = self.text_client.generate(self.models.metadata, prompt)
        except LLMError as exc:
            logger.warning("Metadata call failed, using fallback: %s", exc)
            return fallback_metadata(item)
        return parse_metadata(result.output_text, item)

    def _link_categories(self, record: ArticleRecord, metadata: ArticleMetadata) -> None:
        try:
            linked = self.articles.link_categories(record.id, metadata.categories)
        except SQLAlchemyError:
            logger.error("Failed to link categories for article %d", record.id, exc_info=True)
            return
        if linked:
            logger.info("Linked article %d to %d categories", record.id, len(linked))

    def _post_publish(self, record: ArticleRecord) -> str | None:
        image_url = None
        if self.image_step is not None:
            image_url = self.image_step.attach(record.id, record.title)

        if self.on_publish is not None:
            try:
                self.on_publish(record)
            except Exception:
                logger.error("Publish hook failed for article %d", record.id, exc_info=True)
        return image_url
