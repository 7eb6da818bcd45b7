"""Unified configuration loaded from .estatenews.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field

from estatenews.shared.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".estatenews.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "estatenews" / "config.toml"


class TextProvider(StrEnum):
    """Supported AI text providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


PROVIDER_MODELS: dict[TextProvider, dict[str, str]] = {
    TextProvider.OPENAI: {
        "news": "gpt-5-nano",
        "research": "gpt-5-mini",
        "writing": "gpt-5-mini",
        "metadata": "gpt-5-mini",
    },
    TextProvider.ANTHROPIC: {
        "news": "claude-sonnet-4-5",
        "research": "claude-sonnet-4-5",
        "writing": "claude-sonnet-4-5",
        "metadata": "claude-haiku-4-5",
    },
    TextProvider.GEMINI: {
        "news": "gemini-2.5-flash",
        "research": "gemini-2.5-pro",
        "writing": "gemini-2.5-pro",
        "metadata": "gemini-2.5-flash",
    },
}


class DatabaseConfig(BaseModel):
    """[database] section."""

    url: str = "sqlite:///estatenews.db"
    echo: bool = False


class AIConfig(BaseModel):
    """[ai] section.

    The provider is fixed for the lifetime of a task: it is read once
    when clients are constructed and never consulted again mid-run.
    """

    text_provider: TextProvider = TextProvider.OPENAI
    # Empty means "provider default" (see PROVIDER_MODELS).
    news_model: str = ""
    research_model: str = ""
    writing_model: str = ""
    metadata_model: str = ""
    image_model: str = "gemini-3-pro-image-preview"
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    gemini_api_key: str = ""
    timeout: int = 600

    def model_for(self, stage: str) -> str:
        """Resolve the model for a stage: news, research, writing or metadata."""
        configured = getattr(self, f"{stage}_model")
        if configured:
            return configured
        return PROVIDER_MODELS[self.text_provider][stage]

    def api_key_for(self, provider: TextProvider) -> str:
        return {
            TextProvider.OPENAI: self.openai_api_key,
            TextProvider.ANTHROPIC: self.anthropic_api_key,
            TextProvider.GEMINI: self.gemini_api_key,
        }[provider]


class RetryConfig(BaseModel):
    """[retry] section."""

    max_retries: int = 3


class PipelineConfig(BaseModel):
    """[pipeline] section."""

    item_cooldown_seconds: float = 60.0
    max_items: int = 10
    notify_on_publish: bool = True
    generate_images: bool = True


class BlobConfig(BaseModel):
    """[blob] section."""

    backend: str = "vercel"
    token: str = ""
    directory: str = "./media"
    base_url: str = "http://localhost:8000/media"


class EmailConfig(BaseModel):
    """[email] section."""

    mailgun_api_key: str = ""
    mailgun_domain: str = ""
    mailgun_host: str = "https://api.eu.mailgun.net"
    from_name: str = "Estate News"
    site_url: str = "https://estatenews.dk"

    @property
    def is_configured(self) -> bool:
        return bool(self.mailgun_api_key and self.mailgun_domain)


class NotificationsConfig(BaseModel):
    """[notifications] section."""

    daily_cap: int = 10
    window_hours: int = 24
    digest_days: int = 7
    max_workers: int = 1
    default_category_name: str = "Erhvervsejendomme"


class EstateNewsConfig(BaseModel):
    """Top-level configuration model."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    blob: BlobConfig = Field(default_factory=BlobConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)

    def require_text_provider(self) -> None:
        """Fail fast when the selected text provider has no API key."""
        provider = self.ai.text_provider
        if not self.ai.api_key_for(provider).strip():
            raise ConfigurationError(f"API key for text provider {provider.value!r} not configured")

    def require_email(self) -> None:
        """Fail fast when the Mailgun transport cannot be built."""
        if not self.email.mailgun_api_key:
            raise ConfigurationError("MAILGUN_API_KEY not configured")
        if not self.email.mailgun_domain:
            raise ConfigurationError("MAILGUN_DOMAIN not configured")

    def require_blob(self) -> None:
        """Fail fast when the blob backend is missing its credentials."""
        if self.blob.backend == "vercel" and not self.blob.token:
            raise ConfigurationError("BLOB_READ_WRITE_TOKEN not configured")
        if self.blob.backend not in ("vercel", "local"):
            raise ConfigurationError(f"Unknown blob backend: {self.blob.backend!r}")


def load_config(path: str | Path | None = None) -> EstateNewsConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .estatenews.toml in CWD
    3. ~/.config/estatenews/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged EstateNewsConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG_PATH.exists():
            data = _load_toml(GLOBAL_CONFIG_PATH)
            logger.info("Loaded config from %s", GLOBAL_CONFIG_PATH)

    config = EstateNewsConfig.model_validate(data) if data else EstateNewsConfig()
    return _apply_env_vars(config)


def merge_cli_overrides(config: EstateNewsConfig, **cli_kwargs: object) -> EstateNewsConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "database_url": ("database", "url"),
        "text_provider": ("ai", "text_provider"),
        "cooldown": ("pipeline", "item_cooldown_seconds"),
        "max_items": ("pipeline", "max_items"),
        "notify": ("pipeline", "notify_on_publish"),
        "images": ("pipeline", "generate_images"),
        "max_workers": ("notifications", "max_workers"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = value

    return EstateNewsConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: EstateNewsConfig) -> EstateNewsConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "ESTATENEWS_DATABASE_URL": ("database", "url"),
        "ESTATENEWS_TEXT_PROVIDER": ("ai", "text_provider"),
        "OPENAI_API_KEY": ("ai", "openai_api_key"),
        "ANTHROPIC_API_KEY": ("ai", "anthropic_api_key"),
        "GEMINI_API_KEY": ("ai", "gemini_api_key"),
        "BLOB_READ_WRITE_TOKEN": ("blob", "token"),
        "ESTATENEWS_BLOB_BACKEND": ("blob", "backend"),
        "MAILGUN_API_KEY": ("email", "mailgun_api_key"),
        "MAILGUN_DOMAIN": ("email", "mailgun_domain"),
        "MAILGUN_HOST": ("email", "mailgun_host"),
        "ESTATENEWS_SITE_URL": ("email", "site_url"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    cooldown_raw = os.environ.get("ESTATENEWS_ITEM_COOLDOWN")
    if cooldown_raw is not None:
        data["pipeline"]["item_cooldown_seconds"] = float(cooldown_raw)

    return EstateNewsConfig.model_validate(data)
