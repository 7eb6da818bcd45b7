"""Prompt templates: built-in defaults and the versioned prompt store."""

from estatenews.prompts.defaults import (
    ARTICLE_METADATA,
    ARTICLE_RESEARCH,
    ARTICLE_WRITING,
    DEFAULT_PROMPTS,
    IMAGE_GENERATION,
    NEWS_FETCH,
    PromptDefinition,
)
from estatenews.prompts.store import (
    PromptRecord,
    PromptStore,
    PromptVersion,
    render_template,
    resolve_prompt,
)

__all__ = [
    "ARTICLE_METADATA",
    "ARTICLE_RESEARCH",
    "ARTICLE_WRITING",
    "DEFAULT_PROMPTS",
    "IMAGE_GENERATION",
    "NEWS_FETCH",
    "PromptDefinition",
    "PromptRecord",
    "PromptStore",
    "PromptVersion",
    "render_template",
    "resolve_prompt",
]
