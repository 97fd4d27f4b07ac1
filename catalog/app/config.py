"""Service settings.

Built once at process start by ``load_settings()`` and stored on
``app.state.settings``. Request handlers read from there, never from the
environment.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple
from urllib.parse import quote, urlsplit

from dotenv import load_dotenv

DEFAULT_CORS_ORIGIN_REGEX = (
    r"https://([a-zA-Z0-9-]+\.)*vercel\.app"
    r"|https?://(localhost|127\.0\.0\.1)(:\d+)?"
)


class ConfigurationError(Exception):
    """Raised when the database settings cannot be resolved."""


@dataclass(frozen=True)
class Settings:
    env: str = "development"
    database_url: str = "sqlite://"
    db_schema: Optional[str] = None
    api_prefix: str = "/api"
    cors_origins: Tuple[str, ...] = ()
    cors_origin_regex: Optional[str] = DEFAULT_CORS_ORIGIN_REGEX
    max_page_size: int = 100
    seed_sample_data: bool = True
    log_level: str = "INFO"
    port: int = 5000
    exposed_headers: Tuple[str, ...] = field(
        default=("X-Total-Count", "X-Page", "X-Page-Size")
    )

    @property
    def is_development(self) -> bool:
        return self.env == "development"

    @property
    def uses_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _normalize_prefix(prefix: str) -> str:
    # Same shape the gateway expects: leading slash, no trailing slash
    prefix = prefix.strip()
    if prefix and not prefix.startswith("/"):
        prefix = "/" + prefix
    return prefix.rstrip("/")


def normalize_database_url(url: str) -> str:
    """Rewrite Heroku/Render style ``postgres://`` URLs for psycopg3."""
    url = url.strip()
    parts = urlsplit(url)
    if not parts.scheme:
        raise ConfigurationError(f"DATABASE_URL has no scheme: {url!r}")
    if parts.scheme in ("postgres", "postgresql"):
        if not parts.hostname:
            raise ConfigurationError("DATABASE_URL has no host")
        return "postgresql+psycopg://" + url.split("://", 1)[1]
    return url


def build_discrete_url(user: str, password: str, host: str, port: str, name: str) -> str:
    return (
        f"postgresql+psycopg://{quote(user, safe='')}:{quote(password, safe='')}"
        f"@{host}:{port}/{name}"
    )


def resolve_database_url(env: str) -> str:
    """DATABASE_URL, then the discrete DB_* variables; development is in-memory."""
    if env == "development":
        return "sqlite://"
    url = os.getenv("DATABASE_URL")
    if url and url.strip():
        return normalize_database_url(url)
    return build_discrete_url(
        os.getenv("DB_USER", "app"),
        os.getenv("DB_PASS", "app"),
        os.getenv("DB_HOST", "localhost"),
        os.getenv("DB_PORT", "5432"),
        os.getenv("DB_NAME", "appdb"),
    )


def load_settings() -> Settings:
    load_dotenv()

    env = os.getenv("APP_ENV", "development").strip().lower() or "development"
    database_url = resolve_database_url(env)
    origins = tuple(
        o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()
    )
    regex = os.getenv("CORS_ORIGIN_REGEX", DEFAULT_CORS_ORIGIN_REGEX).strip() or None

    try:
        max_page_size = int(os.getenv("MAX_PAGE_SIZE", "100"))
        port = int(os.getenv("PORT", "5000"))
    except ValueError as exc:
        raise ConfigurationError(f"invalid integer setting: {exc}") from exc
    if max_page_size < 1:
        raise ConfigurationError("MAX_PAGE_SIZE must be at least 1")

    return Settings(
        env=env,
        database_url=database_url,
        db_schema=None if database_url.startswith("sqlite") else os.getenv("DB_SCHEMA", "catalog"),
        api_prefix=_normalize_prefix(os.getenv("API_PREFIX", "/api")),
        cors_origins=origins,
        cors_origin_regex=regex,
        max_page_size=max_page_size,
        seed_sample_data=_env_flag("SEED_SAMPLE_DATA", env == "development"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        port=port,
    )
