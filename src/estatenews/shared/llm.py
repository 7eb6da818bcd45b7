"""AI text service clients.

One ``generate(model, input, web_search=...)`` call shape over three
backends:
1. OpenAI Responses API (default; ``web_search`` tool)
2. Anthropic Messages API (server-side web search tool)
3. Google Gemini (Google Search grounding)

Every SDK call runs under the shared retry policy with a
provider-specific error classifier. The provider is chosen once from
configuration when the client is constructed.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from typing import Any, Protocol

import anthropic
import openai
from google import genai
from google.genai import types
from pydantic import BaseModel

from estatenews.config import EstateNewsConfig, TextProvider
from estatenews.shared.errors import LLMError, ResponseParseError
from estatenews.shared.retry import (
    Classification,
    ErrorKind,
    GeminiErrorClassifier,
    call_with_retry,
    classify_by_heuristics,
)

logger = logging.getLogger(__name__)

ANTHROPIC_MAX_TOKENS = 16384
ANTHROPIC_WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}


class TextResult(BaseModel):
    """Output of one text generation call."""

    output_text: str | None = None


class TextClient(Protocol):
    """AI text service call shape."""

    def generate(self, model: str, input: str, *, web_search: bool = False) -> TextResult: ...


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


def _retry_after(exc: BaseException) -> float | None:
    """Read a ``retry-after`` header (seconds) from an SDK status error."""
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if headers is None:
        return None
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class OpenAIErrorClassifier:
    """Classifier for the openai SDK."""

    def classify(self, exc: BaseException) -> Classification:
        if isinstance(exc, openai.RateLimitError):
            return Classification(kind=ErrorKind.RATE_LIMITED, suggested_delay=_retry_after(exc))
        if isinstance(exc, openai.APITimeoutError):
            return Classification(kind=ErrorKind.TIMEOUT)
        if isinstance(exc, openai.APIConnectionError):
            return Classification(kind=ErrorKind.NETWORK_ERROR)
        return classify_by_heuristics(exc)


class AnthropicErrorClassifier:
    """Classifier for the anthropic SDK. 529 means overloaded."""

    def classify(self, exc: BaseException) -> Classification:
        if isinstance(exc, anthropic.RateLimitError):
            return Classification(kind=ErrorKind.RATE_LIMITED, suggested_delay=_retry_after(exc))
        if isinstance(exc, anthropic.APITimeoutError):
            return Classification(kind=ErrorKind.TIMEOUT)
        if isinstance(exc, anthropic.APIConnectionError):
            return Classification(kind=ErrorKind.NETWORK_ERROR)
        if isinstance(exc, anthropic.APIStatusError) and exc.status_code in (503, 529):
            return Classification(kind=ErrorKind.SERVICE_UNAVAILABLE)
        return classify_by_heuristics(exc)


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


class _RetryingClient:
    """Shared retry plumbing for the concrete clients."""

    classifier: Any

    def __init__(
        self,
        *,
        max_retries: int = 3,
        sleep: Callable[[float], Any] | None = None,
    ) -> None:
        self.max_retries = max_retries
        self._sleep = sleep

    def _call(self, fn: Callable[[], str | None], label: str) -> TextResult:
        kwargs: dict[str, Any] = {"max_retries": self.max_retries, "label": label}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        try:
            text = call_with_retry(fn, self.classifier, **kwargs)
        except Exception as exc:
            raise LLMError(f"{label} failed: {exc}") from exc
        text = text.strip() if text else None
        return TextResult(output_text=text or None)


class OpenAITextClient(_RetryingClient):
    """OpenAI Responses API client."""

    classifier = OpenAIErrorClassifier()

    def __init__(self, api_key: str, *, timeout: int = 600, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def generate(self, model: str, input: str, *, web_search: bool = False) -> TextResult:
        request: dict[str, Any] = {"model": model, "input": input}
        if web_search:
            request["tools"] = [{"type": "web_search"}]

        def _create() -> str | None:
            response = self._client.responses.create(**request)
            return response.output_text

        logger.debug("Calling OpenAI model=%s web_search=%s", model, web_search)
        return self._call(_create, f"openai {model}")


class AnthropicTextClient(_RetryingClient):
    """Anthropic Messages API client."""

    classifier = AnthropicErrorClassifier()

    def __init__(self, api_key: str, *, timeout: int = 600, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)

    def generate(self, model: str, input: str, *, web_search: bool = False) -> TextResult:
        request: dict[str, Any] = {
            "model": model,
            "max_tokens": ANTHROPIC_MAX_TOKENS,
            "messages": [{"role": "user", "content": input}],
        }
        if web_search:
            request["tools"] = [ANTHROPIC_WEB_SEARCH_TOOL]

        def _create() -> str | None:
            response = self._client.messages.create(**request)
            text_parts: list[str] = []
            for block in response.content:
                if block.type == "text":
                    text_parts.append(block.text)
            return "".join(text_parts)

        logger.debug("Calling Anthropic model=%s web_search=%s", model, web_search)
        return self._call(_create, f"anthropic {model}")


class GeminiTextClient(_RetryingClient):
    """Google Gemini client."""

    classifier = GeminiErrorClassifier()

    def __init__(self, api_key: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._client = genai.Client(api_key=api_key)

    def generate(self, model: str, input: str, *, web_search: bool = False) -> TextResult:
        config = None
        if web_search:
            config = types.GenerateContentConfig(
                tools=[types.Tool(google_search=types.GoogleSearch())],
            )

        def _create() -> str | None:
            response = self._client.models.generate_content(
                model=model,
                contents=input,
                config=config,
            )
            return response.text

        logger.debug("Calling Gemini model=%s web_search=%s", model, web_search)
        return self._call(_create, f"gemini {model}")


def create_text_client(
    config: EstateNewsConfig,
    *,
    sleep: Callable[[float], Any] | None = None,
) -> TextClient:
    """Build the text client for the configured provider.

    Raises:
        ConfigurationError: If the provider's API key is missing.
    """
    config.require_text_provider()
    provider = config.ai.text_provider
    api_key = config.ai.api_key_for(provider)
    max_retries = config.retry.max_retries

    if provider == TextProvider.OPENAI:
        return OpenAITextClient(api_key, timeout=config.ai.timeout, max_retries=max_retries, sleep=sleep)
    if provider == TextProvider.ANTHROPIC:
        return AnthropicTextClient(
            api_key, timeout=config.ai.timeout, max_retries=max_retries, sleep=sleep
        )
    return GeminiTextClient(api_key, max_retries=max_retries, sleep=sleep)


# ---------------------------------------------------------------------------
# JSON output helpers
# ---------------------------------------------------------------------------

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)


def strip_json_fences(text: str) -> str:
    """Strip markdown code fences from LLM JSON output."""
    text = text.strip()
    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def extract_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span in ``text``.

    Braces inside JSON string literals are ignored. Returns None when no
    balanced object exists.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            char = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : idx + 1]
        start = text.find("{", start + 1)
    return None


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse a JSON object out of free-form model output.

    Strips code fences, extracts the first balanced object, then parses.

    Raises:
        ResponseParseError: If no JSON object can be parsed.
    """
    cleaned = strip_json_fences(text)
    candidate = extract_json_object(cleaned)
    if candidate is None:
        raise ResponseParseError("No JSON object found in response", preview=text[:500])
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"Invalid JSON in response: {exc}", preview=text[:500]) from exc
    if not isinstance(data, dict):
        raise ResponseParseError("Response JSON is not an object", preview=text[:500])
    return data
