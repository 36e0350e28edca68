"""Environment configuration for the crawler worker."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

from dotenv import load_dotenv

from sourcecrawler.extraction.documents import DEFAULT_USER_AGENT
from sourcecrawler.ingestion.post_types import RewriteRule, TagWhitelist
from sourcecrawler.normalization.normalizer import ContentRules

logger = logging.getLogger(__name__)

DEFAULT_PG_DSN = "dbname=sourcecrawler user=crawler password=crawlerpass host=localhost port=5432"
CRAWL_MODES = ("once", "scheduled")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        # reported by _validate
        return -1


def _load_json(raw: Optional[str]) -> Any:
    if raw is None or not raw.strip():
        return None
    return json.loads(raw)


@dataclass
class CrawlerConfig:
    """Crawler settings with validation"""

    pg_dsn: str = DEFAULT_PG_DSN

    # Scheduling
    crawl_mode: str = "scheduled"
    interval_seconds: int = 60
    max_workers: int = 8
    item_workers: int = 4
    only_enabled: bool = True
    shutdown_grace_seconds: int = 30

    # HTTP
    request_timeout: int = 30
    user_agent: str = DEFAULT_USER_AGENT
    referer: str = ""
    gapi_key: str = ""

    # Content rules (JSON documents)
    tags_whitelist_json: str = ""
    content_regexps_json: str = ""

    # Manual trigger endpoint
    trigger_enabled: bool = True
    trigger_host: str = "127.0.0.1"
    trigger_port: int = 5002

    # Logging
    log_level: str = "INFO"
    log_file: str = ""

    @classmethod
    def from_env(cls) -> "CrawlerConfig":
        """Load and validate configuration from environment variables"""
        load_dotenv()
        config = cls(
            pg_dsn=os.getenv("PG_DSN", DEFAULT_PG_DSN),
            crawl_mode=(os.getenv("CRAWL_MODE") or "scheduled").strip().lower(),
            interval_seconds=_env_int("CRAWL_INTERVAL_SECONDS", 60),
            max_workers=_env_int("CRAWL_MAX_WORKERS", 8),
            item_workers=_env_int("CRAWL_ITEM_WORKERS", 4),
            only_enabled=_env_bool("CRAWL_ONLY_ENABLED", True),
            shutdown_grace_seconds=_env_int("CRAWL_SHUTDOWN_GRACE", 30),
            request_timeout=_env_int("REQUEST_TIMEOUT", 30),
            user_agent=os.getenv("UA_STRING") or DEFAULT_USER_AGENT,
            referer=os.getenv("UA_REFERER", ""),
            gapi_key=os.getenv("GAPI_KEY", "").strip(),
            tags_whitelist_json=os.getenv("TAGS_WHITELIST", ""),
            content_regexps_json=os.getenv("GLOBAL_CONTENT_REGEXP", ""),
            trigger_enabled=_env_bool("TRIGGER_ENABLED", True),
            trigger_host=os.getenv("TRIGGER_HOST", "127.0.0.1"),
            trigger_port=_env_int("TRIGGER_PORT", 5002),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
            log_file=os.getenv("LOG_FILE", ""),
        )
        config._validate()
        return config

    def _validate(self):
        errors = []

        if not self.pg_dsn:
            errors.append("PG_DSN is required")
        if self.crawl_mode not in CRAWL_MODES:
            errors.append(f"CRAWL_MODE must be one of {', '.join(CRAWL_MODES)}")
        if self.interval_seconds < 1:
            errors.append("CRAWL_INTERVAL_SECONDS must be a positive integer")
        if self.max_workers < 1 or self.max_workers > 128:
            errors.append("CRAWL_MAX_WORKERS should be between 1 and 128")
        if self.item_workers < 1 or self.item_workers > 64:
            errors.append("CRAWL_ITEM_WORKERS should be between 1 and 64")
        if self.shutdown_grace_seconds < 0:
            errors.append("CRAWL_SHUTDOWN_GRACE must not be negative")
        if self.request_timeout < 1 or self.request_timeout > 300:
            errors.append("REQUEST_TIMEOUT should be between 1 and 300 seconds")
        if self.trigger_enabled and not (0 < self.trigger_port < 65536):
            errors.append("TRIGGER_PORT must be a valid TCP port")
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append("LOG_LEVEL must be a standard logging level name")

        try:
            TagWhitelist.from_config(_load_json(self.tags_whitelist_json))
        except (ValueError, TypeError, AttributeError) as e:
            errors.append(f"TAGS_WHITELIST is invalid: {e}")
        try:
            RewriteRule.list_from_config(_load_json(self.content_regexps_json))
        except (ValueError, TypeError) as e:
            errors.append(f"GLOBAL_CONTENT_REGEXP is invalid: {e}")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            raise ValueError(error_msg)

        if not self.gapi_key:
            logger.warning("GAPI_KEY is not set; listing sources will fail")

    def default_rules(self) -> ContentRules:
        """Global content rules; sources override them through their settings."""
        whitelist = TagWhitelist.from_config(_load_json(self.tags_whitelist_json)) or TagWhitelist.default()
        rewrites = RewriteRule.list_from_config(_load_json(self.content_regexps_json)) or ()
        return ContentRules(whitelist=whitelist, rewrites=rewrites)
