"""Error taxonomy shared by every task.

Only ``ConfigurationError`` and ``ResponseParseError`` are allowed to
escape a task. Everything else is caught at an item or recipient
boundary and recorded in that task's summary.
"""

from __future__ import annotations


class EstateNewsError(Exception):
    """Base error for the estatenews package."""


class ConfigurationError(EstateNewsError):
    """A required secret or setting is missing. Raised before any work starts."""


class ResponseParseError(EstateNewsError):
    """An AI response could not be parsed into the expected JSON shape."""

    def __init__(self, message: str, preview: str = "") -> None:
        super().__init__(message)
        self.preview = preview


class StageError(EstateNewsError):
    """A synthesis stage produced no usable output."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage


class SlugConflictError(EstateNewsError):
    """An article with the same slug already exists."""

    def __init__(self, slug: str) -> None:
        super().__init__(f"Article slug already exists: {slug!r}")
        self.slug = slug


class LLMError(EstateNewsError):
    """Text generation failed after retries."""


class ImageGenerationError(EstateNewsError):
    """Image generation failed after retries."""


class BlobUploadError(EstateNewsError):
    """Uploading a binary object to the blob store failed."""


class EmailSendError(EstateNewsError):
    """The email transport rejected or failed to deliver a message."""
