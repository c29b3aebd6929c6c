"""User settings and AI endpoint resolution."""

import logging
import os
from dataclasses import asdict, dataclass

import httpx

from news_aggregator.database import Database
from news_aggregator.summarizer import SummaryConfig

logger = logging.getLogger(__name__)

DEFAULT_AI_MODEL = "qwen3-max"


class ConfigurationError(Exception):
    """Raised when a feature needs settings that are not configured."""


@dataclass
class Settings:
    """Settings persisted in the settings table."""

    theme: str = "auto"
    ai_model: str = ""
    ai_base_url: str = ""
    ai_api_key: str = ""
    ai_summary_enabled: bool = True

    def to_dict(self, mask_secrets: bool = True) -> dict:
        data = asdict(self)
        if mask_secrets and self.ai_api_key:
            data["ai_api_key"] = "****" + self.ai_api_key[-4:]
        return data


def load_settings(db: Database) -> Settings:
    """Read settings, falling back to environment variables for AI fields."""
    return Settings(
        theme=db.get_setting("theme", "auto"),
        ai_model=db.get_setting("ai_model") or os.environ.get("AI_MODEL", DEFAULT_AI_MODEL),
        ai_base_url=db.get_setting("ai_base_url") or os.environ.get("AI_BASE_URL", ""),
        ai_api_key=db.get_setting("ai_api_key") or os.environ.get("AI_API_KEY", ""),
        ai_summary_enabled=db.get_setting("ai_summary_enabled", "true") == "true",
    )


def update_settings(db: Database, settings: Settings) -> Settings:
    """Persist all settings fields."""
    db.set_setting("theme", settings.theme)
    db.set_setting("ai_model", settings.ai_model)
    db.set_setting("ai_base_url", settings.ai_base_url)
    db.set_setting("ai_api_key", settings.ai_api_key)
    db.set_setting("ai_summary_enabled", "true" if settings.ai_summary_enabled else "false")
    return settings


def is_http_url(value: str) -> bool:
    """Whether a value parses as an absolute http(s) URL with a host."""
    try:
        url = httpx.URL(value)
    except (httpx.InvalidURL, ValueError):
        return False
    return url.scheme in ("http", "https") and bool(url.host)


def load_summary_config(db: Database) -> SummaryConfig | None:
    """Resolve the remote summary endpoint, or None if it is not usable."""
    settings = load_settings(db)
    if not settings.ai_summary_enabled:
        return None
    if not settings.ai_base_url or not settings.ai_api_key:
        return None
    if not is_http_url(settings.ai_base_url):
        logger.warning("Ignoring malformed AI base URL %r", settings.ai_base_url)
        return None
    return SummaryConfig(
        base_url=settings.ai_base_url,
        api_key=settings.ai_api_key,
        model=settings.ai_model or DEFAULT_AI_MODEL,
    )


def require_summary_config(db: Database) -> SummaryConfig:
    """Like ``load_summary_config`` but raise when nothing is configured.

    Raises:
        ConfigurationError: With a message suitable for showing the user.
    """
    config = load_summary_config(db)
    if config is None:
        raise ConfigurationError(
            "Configure the AI API (base URL and API key) in settings, "
            "or set AI_BASE_URL and AI_API_KEY in the environment"
        )
    return config
