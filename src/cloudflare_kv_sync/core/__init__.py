"""Cloudflare KV client and async helpers shared by the engine and the server."""

from .async_utils import run_sync
from .client import CloudflareKVClient, KVResponseError, KVResult

__all__ = ["CloudflareKVClient", "KVResponseError", "KVResult", "run_sync"]
