"""Image generation for article hero images.

Uses Google Gemini's image generation capability via the google-genai SDK.
Transient failures are retried with the shared backoff policy; the
caller decides whether a final failure is fatal.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from typing import Any

from google import genai
from google.genai import types
from pydantic import BaseModel

from estatenews.shared.errors import ImageGenerationError
from estatenews.shared.retry import GeminiErrorClassifier, call_with_retry

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-3-pro-image-preview"


class GeneratedImage(BaseModel):
    """Binary image returned by the image service."""

    data: bytes
    mime_type: str = "image/png"


class ImageGenerator:
    """Generate hero images via Google Gemini."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        aspect_ratio: str = "16:9",
        max_retries: int = 3,
        sleep: Callable[[float], Any] | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.aspect_ratio = aspect_ratio
        self.max_retries = max_retries
        self._sleep = sleep
        self._client: genai.Client | None = None

    def is_configured(self) -> bool:
        """Check whether image generation has an API key."""
        return bool(self.api_key)

    def _get_client(self) -> genai.Client:
        """Lazy-create and cache the genai Client."""
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def generate(self, prompt: str) -> GeneratedImage | None:
        """Generate one image from a text prompt.

        Args:
            prompt: Description of the desired image.

        Returns:
            The first inline image part of the response, or None when the
            response carries no image data.

        Raises:
            ImageGenerationError: If the call still fails after retries.
        """
        client = self._get_client()

        def _create() -> Any:
            return client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    response_modalities=["TEXT", "IMAGE"],
                    image_config=types.ImageConfig(aspect_ratio=self.aspect_ratio),
                ),
            )

        kwargs: dict[str, Any] = {"max_retries": self.max_retries, "label": f"image {self.model}"}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        try:
            response = call_with_retry(_create, GeminiErrorClassifier(), **kwargs)
        except Exception as exc:
            raise ImageGenerationError(f"Image generation failed: {exc}") from exc

        for part in response.parts or []:
            inline = part.inline_data
            if inline is None or not inline.data:
                continue
            data = inline.data
            if isinstance(data, str):
                data = base64.b64decode(data)
            mime_type = inline.mime_type or "image/png"
            logger.info("Generated %s image (%d bytes)", mime_type, len(data))
            return GeneratedImage(data=data, mime_type=mime_type)

        logger.warning("No image data in response for prompt: %s", prompt[:80])
        return None
