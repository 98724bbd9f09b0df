"""Tests for tool routing and the command line entry point.

Verifies:
- Sync tools appear in handle_list_tools
- Tool calls route through the global registry and engine
- Unknown tools return an error response
- run_once() one-shot passes and their exit status
- run() argument handling
"""

import asyncio
import sys
from unittest.mock import AsyncMock, patch

import pytest

from cloudflare_kv_sync.config_schema import build_config
from cloudflare_kv_sync.mcp.server import (
    get_engine,
    handle_call_tool,
    handle_list_tools,
    run,
    run_once,
    set_engine,
    set_registry,
)
from cloudflare_kv_sync.mcp.tools import ALL_SPECS
from cloudflare_kv_sync.mcp.tools.registry import ToolRegistry

from conftest import doc

# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class TestToolRouting:
    def setup_method(self):
        set_registry(ToolRegistry(ALL_SPECS))

    def teardown_method(self):
        set_registry(None)
        set_engine(None)

    def test_tools_listed(self):
        names = [t.name for t in asyncio.run(handle_list_tools())]
        assert names == [
            "kv_sync_document",
            "kv_sync_all",
            "kv_remove_orphans",
            "kv_sync_status",
        ]

    def test_engine_required(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()

    async def test_call_routes_to_engine(self, make_engine):
        engine, _, client, _ = make_engine({"a.md": doc(kv_sync=True, id="a")})
        set_engine(engine)

        result = await handle_call_tool("kv_sync_document", {"path": "a.md"})

        assert not result.isError
        assert client.calls == [("put", "a")]

    async def test_unknown_tool(self, make_engine):
        engine, _, _, _ = make_engine({})
        set_engine(engine)

        result = await handle_call_tool("kv_publish", {})

        assert result.isError
        assert "unknown_tool" in result.content[0].text


# ---------------------------------------------------------------------------
# One-shot mode
# ---------------------------------------------------------------------------


def _unified(vault):
    return build_config(
        {
            "cloudflare": {"account_id": "a", "namespace_id": "n", "api_token": "t"},
            "sync": {"vault": str(vault)},
        }
    )


class TestRunOnce:
    async def test_sync_all_prints_report(self, tmp_path, capsys, fake_client):
        (tmp_path / "a.md").write_text(doc(kv_sync=True, id="a"))

        with (
            patch(
                "cloudflare_kv_sync.sync.engine.CloudflareKVClient",
                return_value=fake_client,
            ),
            patch("cloudflare_kv_sync.mcp.lifespan._stderr_print"),
        ):
            ok = await run_once(_unified(tmp_path), sync_all=True)

        assert ok is True
        assert "Sync complete: 1 successful, 0 failed" in capsys.readouterr().out
        assert "a" in fake_client.store

    async def test_sync_file_failure_returns_false(
        self, tmp_path, capsys, fake_client
    ):
        (tmp_path / "a.md").write_text(doc(kv_sync=True, id="a"))
        fake_client.fail_put.add("a")

        with (
            patch(
                "cloudflare_kv_sync.sync.engine.CloudflareKVClient",
                return_value=fake_client,
            ),
            patch("cloudflare_kv_sync.mcp.lifespan._stderr_print"),
        ):
            ok = await run_once(_unified(tmp_path), sync_file="a.md")

        assert ok is False
        assert "a.md: FAILED" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# run()
# ---------------------------------------------------------------------------


class TestRun:
    def test_init_config(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        monkeypatch.setattr(sys, "argv", ["cloudflare-kv-sync", "--init-config"])

        run()

        assert (tmp_path / ".kv_sync" / "config.yml").exists()
        assert "Config file:" in capsys.readouterr().err

    def test_sync_all_failure_exits_1(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            sys, "argv", ["cloudflare-kv-sync", "--vault", str(tmp_path), "--sync-all"]
        )
        with (
            patch(
                "cloudflare_kv_sync.mcp.server._load_unified_config",
                return_value=_unified(tmp_path),
            ),
            patch("cloudflare_kv_sync.mcp.server.setup_logging") as setup,
            patch(
                "cloudflare_kv_sync.mcp.server.run_once",
                new=AsyncMock(return_value=False),
            ) as one_shot,
        ):
            with pytest.raises(SystemExit) as exc:
                run()

        assert exc.value.code == 1
        assert setup.call_args.kwargs["mode"] == "cli"
        args = one_shot.call_args
        assert args.args[1] == {"vault": str(tmp_path)}
        assert args.kwargs == {"sync_all": True, "sync_file": None}

    def test_startup_error_exits_1(self, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["cloudflare-kv-sync"])
        with (
            patch(
                "cloudflare_kv_sync.mcp.server._load_unified_config",
                return_value=_unified(tmp_path),
            ),
            patch("cloudflare_kv_sync.mcp.server.setup_logging") as setup,
            patch(
                "cloudflare_kv_sync.mcp.server.main",
                new=AsyncMock(side_effect=RuntimeError("Sync cache error")),
            ),
        ):
            with pytest.raises(SystemExit) as exc:
                run()

        assert exc.value.code == 1
        assert setup.call_args.kwargs["mode"] == "mcp"

    def test_sync_modes_are_exclusive(self, monkeypatch):
        monkeypatch.setattr(
            sys, "argv", ["cloudflare-kv-sync", "--sync-all", "--sync-file", "a.md"]
        )
        with pytest.raises(SystemExit) as exc:
            run()
        assert exc.value.code == 2
