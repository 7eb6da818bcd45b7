"""Fan-out result types."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from estatenews.store.models import EmailType


class RecipientStatus(StrEnum):
    """Outcome of one candidate send."""

    SENT = "sent"
    FAILED = "failed"
    RATE_LIMITED = "rate_limited"


class RecipientResult(BaseModel):
    """Per-user detail of a fan-out run."""

    user_id: int
    email: str
    status: RecipientStatus
    article_count: int = 0
    error: str | None = None


class FanoutSummary(BaseModel):
    """Structured summary returned by every fan-out run."""

    email_type: EmailType
    message: str = ""
    subscribers: int = 0
    skipped: int = 0
    total_articles: int = 0
    results: list[RecipientResult] = Field(default_factory=list)

    def _count(self, status: RecipientStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def sent(self) -> int:
        return self._count(RecipientStatus.SENT)

    @property
    def failed(self) -> int:
        return self._count(RecipientStatus.FAILED)

    @property
    def rate_limited(self) -> int:
        return self._count(RecipientStatus.RATE_LIMITED)

    @property
    def digests_sent(self) -> int:
        return self.sent

    @property
    def total_articles_sent(self) -> int:
        return sum(r.article_count for r in self.results if r.status == RecipientStatus.SENT)

    def as_dict(self) -> dict[str, object]:
        """Flat counts for logging and CLI output."""
        return {
            "email_type": self.email_type.value,
            "message": self.message,
            "subscribers": self.subscribers,
            "sent": self.sent,
            "failed": self.failed,
            "rate_limited": self.rate_limited,
            "skipped": self.skipped,
            "total_articles": self.total_articles,
            "total_articles_sent": self.total_articles_sent,
        }
