"""Pipeline modules: orchestration layer for article production.

Each sub-module handles one stage:
  discovery  : daily news fetch -> candidate news items
  synthesis  : one news item -> one published article
  images     : post-publish hero image step

Notification fan-out lives in ``estatenews.notifications`` and is wired
in as the synthesizer's publish hook.
"""

from estatenews.pipeline.discovery import fetch_news_items, parse_news_response, run_news_discovery
from estatenews.pipeline.images import HeroImageStep
from estatenews.pipeline.models import (
    ArticleMetadata,
    DiscoveryReport,
    ItemOutcome,
    ItemReport,
    NewsItem,
    SynthesisResult,
    split_categories,
)
from estatenews.pipeline.synthesis import (
    ArticleSynthesizer,
    StageModels,
    fallback_metadata,
    normalize_headings,
    parse_metadata,
)

__all__ = [
    "ArticleMetadata",
    "ArticleSynthesizer",
    "DiscoveryReport",
    "HeroImageStep",
    "ItemOutcome",
    "ItemReport",
    "NewsItem",
    "StageModels",
    "SynthesisResult",
    "fallback_metadata",
    "fetch_news_items",
    "normalize_headings",
    "parse_metadata",
    "parse_news_response",
    "run_news_discovery",
    "split_categories",
]
