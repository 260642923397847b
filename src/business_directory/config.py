from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

RATING_SORT_MODES = ("page", "global")


def _env_bool(key: str, default: str) -> bool:
    return os.getenv(key, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    database_url: str
    db_pool_timeout: int
    admin_api_key: Optional[str]
    mutation_localhost_bypass: bool
    frontend_origins: tuple[str, ...]
    resend_api_key: Optional[str]
    email_from: str
    app_base_url: str
    http_timeout: int
    rating_sort_mode: str
    search_default_limit: int
    search_max_limit: int
    log_level: str


def _rating_sort_mode() -> str:
    raw = os.getenv("RATING_SORT_MODE", "page").strip().lower()
    if raw not in RATING_SORT_MODES:
        logger.warning("Unknown RATING_SORT_MODE=%r, using 'page'", raw)
        return "page"
    return raw


def load_config() -> Config:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set")

    search_max_limit = max(int(os.getenv("SEARCH_MAX_LIMIT", "100")), 1)

    return Config(
        database_url=database_url,
        db_pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", "30")),
        admin_api_key=(os.getenv("ADMIN_API_KEY") or "").strip() or None,
        mutation_localhost_bypass=_env_bool("MUTATION_LOCALHOST_BYPASS", "true"),
        frontend_origins=tuple(
            entry.strip()
            for entry in os.getenv(
                "FRONTEND_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if entry.strip()
        ),
        resend_api_key=(os.getenv("RESEND_API_KEY") or "").strip() or None,
        email_from=os.getenv("EMAIL_FROM", "Director Value <noreply@directorvalue.com>"),
        app_base_url=os.getenv("APP_BASE_URL", "https://directorvalue.com").rstrip("/"),
        http_timeout=int(os.getenv("HTTP_TIMEOUT", "10")),
        rating_sort_mode=_rating_sort_mode(),
        search_default_limit=min(max(int(os.getenv("SEARCH_DEFAULT_LIMIT", "12")), 1), search_max_limit),
        search_max_limit=search_max_limit,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
