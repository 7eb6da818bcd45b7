"""Hero image step, run after an article is published.

The automatic path never raises: an article without an image is still a
published article. Operator-driven regeneration raises instead so the
caller can report what went wrong.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from estatenews.prompts import IMAGE_GENERATION, PromptStore, resolve_prompt
from estatenews.shared.blob import BlobStore, image_filename
from estatenews.shared.errors import BlobUploadError, ConfigurationError, ImageGenerationError
from estatenews.shared.images import ImageGenerator
from estatenews.store import ArticleStore

logger = logging.getLogger(__name__)


class HeroImageStep:
    """Generate, upload and attach an article's hero image."""

    def __init__(
        self,
        generator: ImageGenerator,
        blob_store: BlobStore,
        articles: ArticleStore,
        prompts: PromptStore | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.generator = generator
        self.blob_store = blob_store
        self.articles = articles
        self.prompts = prompts
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def attach(self, article_id: int, title: str) -> str | None:
        """Best-effort image for a newly published article.

        Returns:
            The public image URL, or None if anything failed.
        """
        if not self.generator.is_configured():
            logger.info("Skipping image generation - image API key not configured")
            return None
        try:
            url = self._generate_and_store(article_id, title)
        except Exception:
            logger.error("Error generating or uploading image for article %d", article_id, exc_info=True)
            return None
        if url is None:
            logger.warning("No image data returned for article %d", article_id)
        return url

    def regenerate(self, article_id: int, custom_description: str | None = None) -> str:
        """Replace an article's image, optionally steering the prompt.

        Raises:
            LookupError: If the article does not exist.
            ConfigurationError: If image generation is not configured.
            ImageGenerationError: If no image could be produced.
            BlobUploadError: If the upload failed. A failed delete of the
                replaced image is only logged.
        """
        article = self.articles.get_article(article_id)
        if article is None:
            raise LookupError(f"Article {article_id} not found")
        if not self.generator.is_configured():
            raise ConfigurationError("GEMINI_API_KEY not configured")

        url = self._generate_and_store(article_id, article.title, custom_description)
        if url is None:
            raise ImageGenerationError(f"No image data returned for article {article_id}")
        if article.image and article.image != url:
            try:
                self.blob_store.delete(article.image)
            except BlobUploadError:
                logger.warning("Could not delete replaced image %s", article.image, exc_info=True)
        return url

    def build_prompt(self, title: str, custom_description: str | None = None) -> str:
        prompt = resolve_prompt(self.prompts, IMAGE_GENERATION, {"title": title})
        if custom_description and custom_description.strip():
            prompt = f"{prompt}\n\nAdditional instructions: {custom_description.strip()}"
        return prompt

    def _generate_and_store(
        self,
        article_id: int,
        title: str,
        custom_description: str | None = None,
    ) -> str | None:
        prompt = self.build_prompt(title, custom_description)
        logger.info("Generating hero image for article %d", article_id)
        image = self.generator.generate(prompt)
        if image is None:
            return None

        filename = image_filename(article_id, image.mime_type, self._clock())
        blob = self.blob_store.upload(filename, image.data, image.mime_type)
        self.articles.set_image(article_id, blob.url)
        logger.info("Image uploaded and article %d updated: %s", article_id, blob.url)
        return blob.url
