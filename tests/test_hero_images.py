"""Tests for image generation, blob storage and the hero image step."""

from __future__ import annotations

import base64
import json
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

from estatenews.config import EstateNewsConfig
from estatenews.pipeline import HeroImageStep
from estatenews.shared.blob import LocalBlobStore, VercelBlobStore, create_blob_store, image_filename
from estatenews.shared.errors import BlobUploadError, ConfigurationError, ImageGenerationError
from estatenews.shared.images import GeneratedImage, ImageGenerator
from estatenews.store import NewArticle

PNG = b"\x89PNG\r\n\x1a\nfake"


def _part(data=None, mime_type="image/png"):
    part = MagicMock()
    if data is None:
        part.inline_data = None
    else:
        part.inline_data = MagicMock(data=data, mime_type=mime_type)
    return part


def _generator(image: GeneratedImage | None = None, *, configured: bool = True) -> MagicMock:
    generator = MagicMock()
    generator.is_configured.return_value = configured
    generator.generate.return_value = image
    return generator


@pytest.fixture
def article(articles):
    return articles.insert_article(NewArticle(title="Nyt logistikcenter i Køge", slug="logistik-koege", content="x"))


@pytest.fixture
def blob_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "media", "http://localhost:8000/media")


# ---------------------------------------------------------------------------
# ImageGenerator
# ---------------------------------------------------------------------------


class TestImageGenerator:
    def test_not_configured_without_key(self):
        assert not ImageGenerator("").is_configured()
        assert ImageGenerator("g-key").is_configured()

    @patch("google.genai.Client")
    def test_returns_first_inline_image(self, mock_cls):
        mock_cls.return_value.models.generate_content.return_value = MagicMock(
            parts=[_part(), _part(PNG), _part(b"second")]
        )

        image = ImageGenerator("g-key").generate("A warehouse at dusk")

        assert image == GeneratedImage(data=PNG, mime_type="image/png")
        kwargs = mock_cls.return_value.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-3-pro-image-preview"
        assert kwargs["config"].image_config.aspect_ratio == "16:9"

    @patch("google.genai.Client")
    def test_base64_string_data_is_decoded(self, mock_cls):
        encoded = base64.b64encode(PNG).decode("ascii")
        mock_cls.return_value.models.generate_content.return_value = MagicMock(parts=[_part(encoded, "image/jpeg")])

        image = ImageGenerator("g-key").generate("prompt")

        assert image.data == PNG
        assert image.mime_type == "image/jpeg"

    @patch("google.genai.Client")
    def test_text_only_response_is_none(self, mock_cls):
        mock_cls.return_value.models.generate_content.return_value = MagicMock(parts=[_part()])
        assert ImageGenerator("g-key").generate("prompt") is None

    @patch("google.genai.Client")
    def test_failure_after_retries_raises(self, mock_cls):
        sleep = MagicMock()
        mock_cls.return_value.models.generate_content.side_effect = TimeoutError("timed out")

        with pytest.raises(ImageGenerationError):
            ImageGenerator("g-key", max_retries=2, sleep=sleep).generate("prompt")

        assert mock_cls.return_value.models.generate_content.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [30.0, 60.0]


# ---------------------------------------------------------------------------
# Blob storage
# ---------------------------------------------------------------------------


class TestImageFilename:
    def test_millisecond_timestamp(self):
        moment = datetime(2026, 3, 14, 12, 0, 0, 123000, tzinfo=UTC)
        millis = int(moment.timestamp() * 1000)
        assert image_filename(42, "image/png", moment) == f"article-42-{millis}.png"

    def test_jpeg_extension(self):
        assert image_filename(1, "image/jpeg").endswith(".jpg")


class TestLocalBlobStore:
    def test_upload_and_delete(self, blob_store, tmp_path):
        blob = blob_store.upload("a.png", PNG, "image/png")
        assert blob.url == "http://localhost:8000/media/a.png"
        assert (tmp_path / "media" / "a.png").read_bytes() == PNG

        blob_store.delete(blob.url)
        assert not (tmp_path / "media" / "a.png").exists()


class TestVercelBlobStore:
    @patch("urllib.request.urlopen")
    def test_upload(self, mock_urlopen):
        response = mock_urlopen.return_value.__enter__.return_value
        response.read.return_value = json.dumps(
            {"url": "https://store.public.blob.vercel-storage.com/a.png", "pathname": "a.png"}
        ).encode()

        blob = VercelBlobStore("tok").upload("a.png", PNG, "image/png")

        assert blob.url == "https://store.public.blob.vercel-storage.com/a.png"
        request = mock_urlopen.call_args.args[0]
        assert request.get_method() == "PUT"
        assert request.full_url == "https://blob.vercel-storage.com/?pathname=a.png"
        assert request.get_header("Authorization") == "Bearer tok"
        assert request.get_header("X-add-random-suffix") == "0"
        assert request.data == PNG

    @patch("urllib.request.urlopen")
    def test_upload_without_url_fails(self, mock_urlopen):
        mock_urlopen.return_value.__enter__.return_value.read.return_value = b"{}"
        with pytest.raises(BlobUploadError):
            VercelBlobStore("tok").upload("a.png", PNG, "image/png")

    @patch("urllib.request.urlopen", side_effect=OSError("connection reset"))
    def test_transport_error(self, mock_urlopen):
        with pytest.raises(BlobUploadError, match="connection reset"):
            VercelBlobStore("tok").upload("a.png", PNG, "image/png")


class TestCreateBlobStore:
    def test_vercel_requires_token(self):
        with pytest.raises(ConfigurationError, match="BLOB_READ_WRITE_TOKEN"):
            create_blob_store(EstateNewsConfig())

    def test_local_backend(self, tmp_path):
        config = EstateNewsConfig.model_validate(
            {"blob": {"backend": "local", "directory": str(tmp_path / "media")}}
        )
        assert isinstance(create_blob_store(config), LocalBlobStore)

    def test_unknown_backend(self):
        config = EstateNewsConfig.model_validate({"blob": {"backend": "s3"}})
        with pytest.raises(ConfigurationError, match="Unknown blob backend"):
            create_blob_store(config)


# ---------------------------------------------------------------------------
# HeroImageStep
# ---------------------------------------------------------------------------


class TestAttach:
    def test_uploads_and_sets_image(self, articles, article, blob_store):
        moment = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)
        step = HeroImageStep(_generator(GeneratedImage(data=PNG)), blob_store, articles, clock=lambda: moment)

        url = step.attach(article.id, article.title)

        expected = f"http://localhost:8000/media/{image_filename(article.id, 'image/png', moment)}"
        assert url == expected
        assert articles.get_article(article.id).image == expected

    def test_prompt_mentions_title(self, articles, article, blob_store):
        generator = _generator(GeneratedImage(data=PNG))
        HeroImageStep(generator, blob_store, articles).attach(article.id, article.title)
        assert article.title in generator.generate.call_args.args[0]

    def test_skips_when_not_configured(self, articles, article, blob_store):
        generator = _generator(configured=False)
        assert HeroImageStep(generator, blob_store, articles).attach(article.id, article.title) is None
        generator.generate.assert_not_called()

    def test_generation_error_is_swallowed(self, articles, article, blob_store):
        generator = _generator()
        generator.generate.side_effect = ImageGenerationError("quota")
        assert HeroImageStep(generator, blob_store, articles).attach(article.id, article.title) is None
        assert articles.get_article(article.id).image is None

    def test_upload_error_is_swallowed(self, articles, article):
        failing_store = MagicMock()
        failing_store.upload.side_effect = BlobUploadError("403")
        step = HeroImageStep(_generator(GeneratedImage(data=PNG)), failing_store, articles)
        assert step.attach(article.id, article.title) is None

    def test_no_image_data(self, articles, article, blob_store):
        assert HeroImageStep(_generator(None), blob_store, articles).attach(article.id, article.title) is None


class TestRegenerate:
    def test_custom_description_is_appended(self, articles, article, blob_store):
        generator = _generator(GeneratedImage(data=PNG))
        step = HeroImageStep(generator, blob_store, articles)

        url = step.regenerate(article.id, "  Vis en havn  ")

        assert url.startswith("http://localhost:8000/media/article-")
        prompt = generator.generate.call_args.args[0]
        assert prompt.endswith("\n\nAdditional instructions: Vis en havn")

    def test_replaced_image_is_deleted(self, articles, article, blob_store, tmp_path):
        moments = iter([datetime(2026, 3, 14, 12, 0, tzinfo=UTC), datetime(2026, 3, 14, 12, 5, tzinfo=UTC)])
        step = HeroImageStep(_generator(GeneratedImage(data=PNG)), blob_store, articles, clock=lambda: next(moments))
        old_url = step.attach(article.id, article.title)

        new_url = step.regenerate(article.id)

        assert new_url != old_url
        assert articles.get_article(article.id).image == new_url
        assert not (tmp_path / "media" / old_url.rsplit("/", 1)[1]).exists()
        assert (tmp_path / "media" / new_url.rsplit("/", 1)[1]).exists()

    def test_failed_delete_keeps_new_image(self, articles, article):
        store = MagicMock()
        store.upload.return_value = MagicMock(url="https://blob.example/new.png")
        store.delete.side_effect = BlobUploadError("403")
        articles.set_image(article.id, "https://blob.example/old.png")
        step = HeroImageStep(_generator(GeneratedImage(data=PNG)), store, articles)

        assert step.regenerate(article.id) == "https://blob.example/new.png"
        store.delete.assert_called_once_with("https://blob.example/old.png")
        assert articles.get_article(article.id).image == "https://blob.example/new.png"

    def test_unknown_article(self, articles, blob_store):
        with pytest.raises(LookupError):
            HeroImageStep(_generator(), blob_store, articles).regenerate(999)

    def test_not_configured(self, articles, article, blob_store):
        with pytest.raises(ConfigurationError):
            HeroImageStep(_generator(configured=False), blob_store, articles).regenerate(article.id)

    def test_no_data_raises(self, articles, article, blob_store):
        with pytest.raises(ImageGenerationError):
            HeroImageStep(_generator(None), blob_store, articles).regenerate(article.id)
