"""Retry policy shared by the AI text and image clients.

The policy is a pure function of (error kind, attempt number) so the
backoff table can be tested without any network call:

=====================  ===========================================
kind                   delay before the next attempt
=====================  ===========================================
rate_limited           provider-suggested delay, else 60s flat
service_unavailable    45s * 2**attempt  (45 / 90 / 180)
timeout                30s * 2**attempt  (30 / 60 / 120)
network_error          10s * 2**attempt  (10 / 20 / 40)
other                  never retried
=====================  ===========================================

Attempts run ``0..max_retries``; the final attempt never sleeps and
its failure propagates unchanged. Which errors fall into which kind is
provider specific and lives behind the ``ErrorClassifier`` protocol.
"""

from __future__ import annotations

import logging
import re
import socket
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
RATE_LIMIT_DEFAULT_DELAY = 60.0

_BASE_DELAYS: dict[str, float] = {
    "service_unavailable": 45.0,
    "timeout": 30.0,
    "network_error": 10.0,
}


class ErrorKind(StrEnum):
    """Retry-relevant classes of failure."""

    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    OTHER = "other"


class Classification(BaseModel):
    """Result of classifying one exception."""

    kind: ErrorKind
    suggested_delay: float | None = None


class RetryDecision(BaseModel):
    """Whether to retry, and how long to wait first."""

    should_retry: bool
    delay: float = 0.0


class ErrorClassifier(Protocol):
    """Maps a provider exception onto an ``ErrorKind``."""

    def classify(self, exc: BaseException) -> Classification: ...


def decide(
    classification: Classification,
    attempt: int,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> RetryDecision:
    """Compute the retry decision for a failure on ``attempt`` (0-based)."""
    kind = classification.kind
    if kind == ErrorKind.OTHER or attempt >= max_retries:
        return RetryDecision(should_retry=False)

    if kind == ErrorKind.RATE_LIMITED:
        delay = classification.suggested_delay
        if delay is None or delay <= 0:
            delay = RATE_LIMIT_DEFAULT_DELAY
        return RetryDecision(should_retry=True, delay=delay)

    return RetryDecision(should_retry=True, delay=_BASE_DELAYS[kind.value] * 2**attempt)


def call_with_retry(
    fn: Callable[[], T],
    classifier: ErrorClassifier,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    sleep: Callable[[float], Any] = time.sleep,
    label: str = "call",
) -> T:
    """Run ``fn`` under the retry policy.

    Args:
        fn: Zero-argument callable performing the external call.
        classifier: Provider-specific error classifier.
        max_retries: Number of retries after the first attempt.
        sleep: Sleep function, injectable for tests.
        label: Label for logging.

    Returns:
        Whatever ``fn`` returns on its first successful attempt.

    Raises:
        The last exception raised by ``fn`` once the policy gives up.
    """
    attempt = 0
    while True:
        try:
            result = fn()
        except Exception as exc:
            classification = classifier.classify(exc)
            decision = decide(classification, attempt, max_retries)
            if not decision.should_retry:
                if classification.kind != ErrorKind.OTHER:
                    logger.error(
                        "%s failed on final attempt %d/%d (%s)",
                        label,
                        attempt + 1,
                        max_retries + 1,
                        classification.kind.value,
                    )
                raise
            logger.warning(
                "%s: %s, retrying in %.0fs (attempt %d/%d)",
                label,
                classification.kind.value,
                decision.delay,
                attempt + 1,
                max_retries + 1,
            )
            logger.debug("Error details: %s", exc)
            sleep(decision.delay)
            attempt += 1
            continue
        if attempt:
            logger.info("%s succeeded on attempt %d", label, attempt + 1)
        return result


# ---------------------------------------------------------------------------
# Heuristic classification
# ---------------------------------------------------------------------------

_TIMEOUT_MARKERS = ("timeout", "timed out", "fetch failed", "etimedout", "econnreset")
_NETWORK_MARKERS = (
    "network",
    "econnrefused",
    "enotfound",
    "connection refused",
    "name or service not known",
    "temporary failure in name resolution",
)
_TIMEOUT_TYPE_NAMES = {"ReadTimeout", "ConnectTimeout", "WriteTimeout", "PoolTimeout", "TimeoutException"}
_NETWORK_TYPE_NAMES = {"ConnectError", "NetworkError", "RemoteProtocolError"}


def status_code_of(exc: BaseException) -> int | None:
    """Best-effort HTTP status code of an SDK exception."""
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def classify_by_heuristics(exc: BaseException) -> Classification:
    """Classify using status codes, exception types and message substrings."""
    status = status_code_of(exc)
    message = str(exc).lower()
    type_name = type(exc).__name__

    if status == 429:
        return Classification(kind=ErrorKind.RATE_LIMITED)
    if status == 503 or "overloaded" in message:
        return Classification(kind=ErrorKind.SERVICE_UNAVAILABLE)
    if (
        isinstance(exc, (TimeoutError, ConnectionResetError))
        or type_name in _TIMEOUT_TYPE_NAMES
        or any(marker in message for marker in _TIMEOUT_MARKERS)
    ):
        return Classification(kind=ErrorKind.TIMEOUT)
    if (
        isinstance(exc, (ConnectionError, socket.gaierror))
        or type_name in _NETWORK_TYPE_NAMES
        or any(marker in message for marker in _NETWORK_MARKERS)
    ):
        return Classification(kind=ErrorKind.NETWORK_ERROR)
    return Classification(kind=ErrorKind.OTHER)


class HeuristicErrorClassifier:
    """Provider-agnostic classifier."""

    def classify(self, exc: BaseException) -> Classification:
        return classify_by_heuristics(exc)


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------

_RETRY_INFO_TYPE = "type.googleapis.com/google.rpc.RetryInfo"
_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*s?\s*$")


def parse_duration(value: object) -> float | None:
    """Parse a protobuf duration string such as ``"37s"`` into seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if not isinstance(value, str):
        return None
    match = _DURATION_RE.match(value)
    if not match:
        return None
    return float(match.group(1))


def gemini_retry_delay(details: object) -> float | None:
    """Extract the ``RetryInfo.retryDelay`` hint from a Gemini error payload."""
    if not isinstance(details, dict):
        return None
    error = details.get("error")
    candidates = []
    if isinstance(error, dict):
        candidates.extend(error.get("details") or [])
    candidates.extend(details.get("details") or [])
    for detail in candidates:
        if isinstance(detail, dict) and detail.get("@type") == _RETRY_INFO_TYPE:
            return parse_duration(detail.get("retryDelay"))
    return None


class GeminiErrorClassifier:
    """Classifier for google-genai ``APIError`` and transport errors."""

    def classify(self, exc: BaseException) -> Classification:
        result = classify_by_heuristics(exc)
        if result.kind == ErrorKind.RATE_LIMITED:
            delay = gemini_retry_delay(getattr(exc, "details", None))
            return Classification(kind=ErrorKind.RATE_LIMITED, suggested_delay=delay)
        return result
