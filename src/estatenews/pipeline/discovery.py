"""News discovery: find candidate stories and synthesize each in turn.

Runs once a day. The candidate list comes from one search-augmented
call; a response that cannot be parsed aborts the run before any
article work starts. Candidates are then processed one at a time with a
cooldown between them, and a single failure never stops the batch.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import ValidationError

from estatenews.pipeline.models import DiscoveryReport, NewsItem, SynthesisResult
from estatenews.pipeline.synthesis import ArticleSynthesizer
from estatenews.prompts import NEWS_FETCH, PromptStore, resolve_prompt
from estatenews.shared.errors import ResponseParseError
from estatenews.shared.llm import TextClient, parse_json_object

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 60.0
DEFAULT_MAX_ITEMS = 10


def parse_news_response(text: str | None, max_items: int = DEFAULT_MAX_ITEMS) -> list[NewsItem]:
    """Parse ``{"newsItems": [...]}`` out of a model response.

    Tolerates code fences and prose around the JSON object.

    Raises:
        ResponseParseError: If the response is empty, is not a JSON
            object, or any news item is malformed.
    """
    if not text or not text.strip():
        raise ResponseParseError("No response from text service")

    try:
        data = parse_json_object(text)
    except ResponseParseError:
        logger.error("Failed to parse news list JSON, preview: %s", text[:500])
        raise

    raw_items = data.get("newsItems", [])
    if not isinstance(raw_items, list):
        raise ResponseParseError("'newsItems' is not a list", preview=text[:500])

    items: list[NewsItem] = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ResponseParseError(f"News item {idx} is not an object", preview=text[:500])
        try:
            items.append(NewsItem.model_validate(raw))
        except ValidationError as exc:
            raise ResponseParseError(f"News item {idx} is invalid: {exc}", preview=text[:500]) from exc

    if len(items) > max_items:
        logger.info("Keeping first %d of %d news items", max_items, len(items))
        items = items[:max_items]
    return items


def fetch_news_items(
    text_client: TextClient,
    model: str,
    prompts: PromptStore | None = None,
    *,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> list[NewsItem]:
    """Ask the text service for this week's candidate stories.

    Raises:
        LLMError: If the text service call fails after retries.
        ResponseParseError: If the response cannot be parsed.
    """
    prompt = resolve_prompt(prompts, NEWS_FETCH, {})
    logger.info("Fetching commercial real estate news (model=%s)", model)
    result = text_client.generate(model, prompt, web_search=True)
    items = parse_news_response(result.output_text, max_items)
    logger.info("Parsed %d news items", len(items))
    return items


def run_news_discovery(
    text_client: TextClient,
    synthesizer: ArticleSynthesizer,
    *,
    model: str,
    prompts: PromptStore | None = None,
    max_items: int = DEFAULT_MAX_ITEMS,
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
    stop_event: threading.Event | None = None,
    clock: Callable[[], datetime] | None = None,
) -> DiscoveryReport:
    """Discover news and turn each candidate into an article.

    Args:
        text_client: AI text service client.
        synthesizer: Pipeline run once per candidate.
        model: Model for the discovery call.
        prompts: Prompt store; built-in prompts are used when None.
        max_items: Upper bound on candidates processed.
        cooldown_seconds: Pause between candidates (not after the last).
        stop_event: When set, the batch stops at the next item boundary.
            The cooldown wait wakes up immediately when it is set.
        clock: Time source for the report timestamps.

    Returns:
        Per-item outcomes and counts.

    Raises:
        LLMError: If the discovery call itself fails.
        ResponseParseError: If the discovery response cannot be parsed.
    """
    now = clock or (lambda: datetime.now(tz=UTC))
    stop = stop_event or threading.Event()
    report = DiscoveryReport(started_at=now())

    items = fetch_news_items(text_client, model, prompts, max_items=max_items)
    report.total = len(items)

    for idx, item in enumerate(items):
        if stop.is_set():
            logger.warning("Discovery cancelled before item %d/%d", idx + 1, len(items))
            report.cancelled = True
            break

        logger.info("Processing article %d/%d: %s", idx + 1, len(items), item.title)
        try:
            result = synthesizer.process(item)
        except Exception as exc:
            logger.error("Error processing article: %s", item.title, exc_info=True)
            report.add(item.title, _failed(exc))
        else:
            entry = report.add(item.title, result)
            if result.success:
                logger.info("Article processed successfully: %s", result.slug)
            else:
                logger.info("Article %s: %s", entry.outcome.value, result.error)

        if idx < len(items) - 1 and cooldown_seconds > 0:
            logger.info("Waiting %.0fs before processing next article...", cooldown_seconds)
            if stop.wait(cooldown_seconds):
                logger.warning("Discovery cancelled during cooldown after item %d", idx + 1)
                report.cancelled = True
                break

    report.finished_at = now()
    logger.info(
        "News discovery completed: total=%d succeeded=%d duplicates=%d failed=%d cancelled=%s",
        report.total,
        report.succeeded,
        report.duplicates,
        report.failed,
        report.cancelled,
    )
    return report


def _failed(exc: Exception) -> SynthesisResult:
    return SynthesisResult(success=False, error=str(exc) or type(exc).__name__)
