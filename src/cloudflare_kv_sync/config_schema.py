"""Unified configuration schema for cloudflare_kv_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the Cloudflare connection, document sync behaviour and
logging.

Usage:
    from cloudflare_kv_sync.config_schema import (
        UnifiedConfig, build_config, with_vault,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    settings = with_vault(unified.sync, "~/notes")
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_ERROR_LOG_FILE = "Cloudflare KV Sync error log.md"

MissingIdPolicy = Literal["error", "skip", "assign"]


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class CloudflareConfig(BaseModel):
    """Cloudflare KV connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    account_id: str | None = Field(
        default=None, description="Cloudflare account ID"
    )
    namespace_id: str | None = Field(
        default=None, description="Workers KV namespace ID"
    )
    api_token: str | None = Field(
        default=None, description="API token with KV read/write permission"
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout in seconds",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class SyncSettings(BaseModel):
    """How documents are discovered, keyed and synced.

    Attributes:
        vault: Root directory holding the Markdown documents.
        sync_key: Frontmatter field that opts a document into sync.
        id_key: Frontmatter field holding the document identifier.
        collection_key: Frontmatter field holding the optional key prefix.
        auto_sync: Sync documents automatically when they change.
        debounce_delay: Quiet period in seconds before an automatic sync.
        missing_id_policy: What to do with a document marked for sync
            that has no identifier (``error``, ``skip`` or ``assign``).
        cache_file: Sync cache location, relative to the vault.
        error_log_file: Error log location, relative to the vault.
    """

    vault: str = Field(default=".", description="Document root directory")
    sync_key: str = Field(default="kv_sync", min_length=1)
    id_key: str = Field(default="id", min_length=1)
    collection_key: str = Field(default="collection", min_length=1)
    auto_sync: bool = False
    debounce_delay: float = Field(
        default=60.0,
        ge=0,
        description="Seconds of inactivity before an automatic sync",
    )
    missing_id_policy: MissingIdPolicy = "error"
    cache_file: str = ".kv_sync/cache.json"
    error_log_file: str = DEFAULT_ERROR_LOG_FILE

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unset means the mode default (WARNING for MCP, INFO for CLI).
        file: Optional log file path.
    """

    level: str | None = Field(default=None, description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    cloudflare: CloudflareConfig = Field(default_factory=CloudflareConfig)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def with_vault(settings: SyncSettings, vault: str | None) -> SyncSettings:
    """Return *settings* with the vault replaced when *vault* is given."""
    if not vault:
        return settings
    return settings.model_copy(update={"vault": vault})


