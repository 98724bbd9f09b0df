"""Shared pytest fixtures for cloudflare-kv-sync tests."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from cloudflare_kv_sync.config import Config
from cloudflare_kv_sync.config_schema import SyncSettings
from cloudflare_kv_sync.core.client import KVResult
from cloudflare_kv_sync.sync.cache import SyncCache
from cloudflare_kv_sync.sync.documents import VaultDocumentStore
from cloudflare_kv_sync.sync.engine import SyncEngine
from cloudflare_kv_sync.sync.errorlog import ErrorLogSink
from cloudflare_kv_sync.sync.metadata import set_frontmatter_field

ERROR_LOG = "Cloudflare KV Sync error log.md"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep real credentials and config files out of the tests."""
    for var in (
        "CF_ACCOUNT_ID",
        "CF_KV_NAMESPACE_ID",
        "CF_API_TOKEN",
        "CF_REQUEST_TIMEOUT",
        "KV_SYNC_DEBUG",
        "KV_SYNC_CONFIG",
        "LOG_LEVEL",
        "LOG_FILE",
    ):
        monkeypatch.delenv(var, raising=False)


class FakeKVClient:
    """Minimal CloudflareKVClient replacement for testing.

    Stores values in an in-memory dict and records every call. Keys in
    ``fail_put`` / ``fail_delete`` are rejected with an API error; keys in
    ``raise_on`` raise ``ConnectionError`` instead.
    """

    def __init__(self, store: dict[str, str] | None = None) -> None:
        self.store: dict[str, str] = dict(store or {})
        self.calls: list[tuple[str, str]] = []
        self.fail_put: set[str] = set()
        self.fail_delete: set[str] = set()
        self.raise_on: set[str] = set()

    def put(self, key: str, body: str) -> KVResult:
        self.calls.append(("put", key))
        if key in self.raise_on:
            raise ConnectionError(f"connection reset while writing {key}")
        if key in self.fail_put:
            return KVResult(success=False, error='[{"code": 10000}]')
        self.store[key] = body
        return KVResult(success=True)

    def delete(self, key: str) -> KVResult:
        self.calls.append(("delete", key))
        if key in self.raise_on:
            raise ConnectionError(f"connection reset while deleting {key}")
        if key in self.fail_delete:
            return KVResult(success=False, error='[{"code": 10009}]')
        self.store.pop(key, None)
        return KVResult(success=True)


class MemoryDocumentStore:
    """DocumentStore backed by a dict of path -> text."""

    def __init__(self, documents: dict[str, str] | None = None) -> None:
        self.documents: dict[str, str] = dict(documents or {})
        self.fail_set_field: set[str] = set()

    def list_paths(self) -> list[str]:
        return sorted(self.documents)

    def exists(self, path: str) -> bool:
        return path in self.documents

    def read(self, path: str) -> str:
        try:
            return self.documents[path]
        except KeyError:
            raise FileNotFoundError(path) from None

    def set_field(self, path: str, field: str, value: Any) -> None:
        if path in self.fail_set_field:
            raise PermissionError(f"{path} is read-only")
        self.documents[path] = set_frontmatter_field(
            self.read(path), field, value
        )


def doc(body: str = "Body text.\n", **fields: Any) -> str:
    """Build a Markdown document with the given frontmatter fields."""
    if not fields:
        return body
    lines = []
    for key, value in fields.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        lines.append(f"{key}: {value}")
    return "---\n" + "\n".join(lines) + "\n---\n" + body


FIXED_NOW = datetime(2026, 10, 19, 14, 3, 22)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        account_id="acc123",
        namespace_id="ns456",
        api_token="token789",
    )


@pytest.fixture
def fake_client():
    return FakeKVClient()


@pytest.fixture
def memory_store():
    return MemoryDocumentStore()


@pytest.fixture
def settings(tmp_path: Path) -> SyncSettings:
    return SyncSettings(vault=str(tmp_path), debounce_delay=0.01)


@pytest.fixture
def make_engine(tmp_path: Path, fixed_clock):
    """Factory for a SyncEngine over an in-memory store.

    Returns ``(engine, store, client, notices)``.
    """

    def _make(
        documents: dict[str, str] | None = None,
        cache: dict[str, str] | None = None,
        client: FakeKVClient | None = None,
        **setting_overrides: Any,
    ):
        store = MemoryDocumentStore(documents)
        sync_cache = SyncCache(tmp_path / ".kv_sync" / "cache.json")
        for path, key in (cache or {}).items():
            sync_cache.set(path, key)
        sync_cache.dirty = False
        fake = client or FakeKVClient()
        notices: list[str] = []
        engine = SyncEngine(
            store=store,
            cache=sync_cache,
            client=fake,  # type: ignore[arg-type]
            error_log=ErrorLogSink(tmp_path / ERROR_LOG, clock=fixed_clock),
            settings=SyncSettings(
                vault=str(tmp_path),
                debounce_delay=setting_overrides.pop("debounce_delay", 0.01),
                **setting_overrides,
            ),
            notifier=notices.append,
        )
        engine.loaded = True
        return engine, store, fake, notices

    return _make


@pytest.fixture
def vault(tmp_path: Path):
    """Factory writing files into a vault directory; returns its store."""
    root = tmp_path / "vault"
    root.mkdir()

    def _write(files: dict[str, str]) -> VaultDocumentStore:
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return VaultDocumentStore(root, exclude={ERROR_LOG})

    return _write
