"""Lifespan management for engine startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from ..config import load_config
from ..config_schema import UnifiedConfig, with_vault
from ..sync.cache import CacheLoadError
from ..sync.engine import SyncEngine
from ..watcher import DocumentWatcher

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    unified: UnifiedConfig,
    config_overrides: dict[str, Any] | None = None,
    watch: bool = True,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage engine startup and shutdown lifecycle.

    On startup:
    - Merge credentials via load_config(): CLI > env vars > .env > YAML > defaults
    - Build the SyncEngine over the configured vault
    - Load the sync cache; a malformed cache aborts startup
    - Start the file watcher when auto_sync is on (and *watch* allows it)

    On shutdown:
    - Stop the watcher
    - Cancel pending debounced syncs and save the cache (best effort)

    The caller is responsible for calling ``load_dotenv()`` before the
    YAML config is loaded so ``${VAR}`` interpolation sees .env values.

    Args:
        unified: Config loaded from the YAML config files.
        config_overrides: Optional dict with values from CLI (account_id,
            namespace_id, api_token, debug, vault)
        watch: Allow the auto-sync watcher to start.

    Yields:
        Dict with 'engine' key containing the loaded SyncEngine

    Raises:
        RuntimeError: If configuration is invalid or the cache is malformed.
    """
    logger.info("cloudflare-kv-sync starting...")
    _stderr_print("cloudflare-kv-sync starting...")
    overrides = config_overrides or {}

    # CLI args > env vars (.env loaded first) > YAML config > defaults
    try:
        yaml_fallbacks = {
            k: v
            for k, v in unified.cloudflare.model_dump().items()
            if v is not None
        }
        config = load_config(
            account_id=overrides.get("account_id"),
            namespace_id=overrides.get("namespace_id"),
            api_token=overrides.get("api_token"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print(
            "  Ensure CF_ACCOUNT_ID, CF_KV_NAMESPACE_ID, CF_API_TOKEN are set."
        )
        raise RuntimeError(
            f"Configuration error: {e}. Ensure CF_ACCOUNT_ID, "
            "CF_KV_NAMESPACE_ID, CF_API_TOKEN are set."
        ) from e

    _stderr_print("  Configuration loaded")

    settings = with_vault(unified.sync, overrides.get("vault"))
    engine = SyncEngine.from_config(config, settings)
    logger.info("Account %s, namespace %s", config.account_id, config.namespace_id)
    _stderr_print(f"  Vault: {engine.store.root}")

    # Fail closed: never sync on top of a cache we could not read
    try:
        engine.load()
    except CacheLoadError as e:
        logger.error("Sync cache error: %s", e)
        engine.error_log.write(f"Failed to load sync cache: {e}")
        _stderr_print(f"ERROR: {e}")
        _stderr_print(
            "  Fix or remove the cache file, then run a full sync."
        )
        raise RuntimeError(f"Sync cache error: {e}") from e
    _stderr_print(f"  Tracked documents: {len(engine.cache)}")

    watcher: DocumentWatcher | None = None
    if watch and settings.auto_sync:
        watcher = DocumentWatcher(
            engine.store.root, engine.notify_changed, engine.store.is_document
        )
        watcher.start()
        _stderr_print(
            f"  Auto sync on ({settings.debounce_delay}s debounce)"
        )

    _stderr_print("  Engine ready")

    try:
        yield {"engine": engine, "watcher": watcher}
    finally:
        logger.info("cloudflare-kv-sync shutting down")
        _stderr_print("cloudflare-kv-sync shutting down...")
        if watcher is not None:
            watcher.stop()
        engine.shutdown()
