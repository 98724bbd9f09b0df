"""MCP Server for Cloudflare KV document sync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents trigger document syncs, and the one-shot command line mode
(``--sync-all`` / ``--sync-file``) that runs a single pass and exits.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys
from typing import Any

import mcp.server.stdio
import mcp.types as types
from dotenv import load_dotenv
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..config_loader import (
    discover_config_files,
    ensure_config,
    load_hierarchical_config,
)
from ..config_schema import UnifiedConfig, build_config
from ..logger import setup_logging
from ..sync.engine import SyncEngine
from ..sync.reporter import format_result, format_sync_report
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("cloudflare-kv-sync")

# Global engine instance (initialized in lifespan)
_engine: SyncEngine | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_engine() -> SyncEngine:
    """Get the global SyncEngine instance.

    Raises:
        RuntimeError: If engine is not initialized
    """
    if _engine is None:
        raise RuntimeError(
            "SyncEngine not initialized. Server lifespan not started."
        )
    return _engine


def set_engine(engine: SyncEngine | None) -> None:
    global _engine
    _engine = engine


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available sync tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    engine = get_engine()
    try:
        return await get_registry().call_tool(name, arguments, engine)
    except ValueError as e:
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(
    unified: UnifiedConfig, config_overrides: dict | None = None
) -> None:
    """Run the MCP server with stdio transport.

    Logging must already be set up for MCP mode (file only, never stdout)
    before this is called, so nothing contaminates protocol negotiation.

    Args:
        unified: Config loaded from the YAML config files.
        config_overrides: Optional dict with config values from CLI.
    """
    registry = ToolRegistry(ALL_SPECS)
    logger.info("Registered %d tools", registry.tool_count())
    set_registry(registry)

    # set_engine() is called here rather than in the lifespan so that
    # running this file as __main__ updates the module the handlers use.
    async with server_lifespan(unified, config_overrides) as ctx:
        set_engine(ctx["engine"])
        print(
            "Server ready. Waiting for MCP client connection...",
            file=sys.stderr,
            flush=True,
        )
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="cloudflare-kv-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(
                    read_stream, write_stream, init_options
                )
        finally:
            set_engine(None)
            set_registry(None)


async def run_once(
    unified: UnifiedConfig,
    config_overrides: dict | None = None,
    sync_all: bool = False,
    sync_file: str | None = None,
) -> bool:
    """Run a single sync pass and print the report to stdout.

    Returns:
        True if nothing failed.
    """
    async with server_lifespan(unified, config_overrides, watch=False) as ctx:
        engine: SyncEngine = ctx["engine"]
        if sync_file:
            result = await engine.sync_document(sync_file, notify_outcome=True)
            print(format_result(result))
            return not result.failed
        report = await engine.sync_all()
        print(format_sync_report(report))
        return not report.failed and report.orphans.failed == 0


def _load_unified_config() -> UnifiedConfig:
    """Load .env, then the YAML config files."""
    load_dotenv()
    return build_config(load_hierarchical_config())


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="cloudflare-kv-sync - sync frontmatter-tagged Markdown documents to Cloudflare Workers KV",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the MCP server with default config (from .env or .kv_sync/config.yml)
  cloudflare-kv-sync

  # Serve a specific vault
  cloudflare-kv-sync --vault ~/notes

  # Sync everything once and exit
  cloudflare-kv-sync --vault ~/notes --sync-all

  # Sync a single document once and exit
  cloudflare-kv-sync --vault ~/notes --sync-file posts/hello.md

  # Write a starter config file
  cloudflare-kv-sync --init-config

Note: Without --sync-all/--sync-file this runs an MCP server on stdio.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )

    parser.add_argument(
        "--vault",
        help="Document root directory (overrides sync.vault in config files)",
    )
    parser.add_argument(
        "--account-id",
        help="Override Cloudflare account ID (takes precedence over CF_ACCOUNT_ID and config files)",
    )
    parser.add_argument(
        "--namespace-id",
        help="Override KV namespace ID (takes precedence over CF_KV_NAMESPACE_ID and config files)",
    )
    parser.add_argument(
        "--api-token",
        help="Override API token (takes precedence over CF_API_TOKEN and config files)"
        " (visible in process list -- prefer CF_API_TOKEN env var for security)",
    )
    parser.add_argument(
        "--log-file",
        help="Log file path (default: /tmp/cloudflare-kv-sync.log in server mode)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--sync-all",
        action="store_true",
        help="Sync every document once and exit",
    )
    mode.add_argument(
        "--sync-file",
        metavar="PATH",
        help="Sync one document (path relative to the vault) and exit",
    )
    mode.add_argument(
        "--init-config",
        action="store_true",
        help="Write a starter .kv_sync/config.yml if no config file exists",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"cloudflare-kv-sync version {__version__}",
    )

    args = parser.parse_args()

    if args.init_config:
        print(f"Config file: {ensure_config()}", file=sys.stderr)
        return

    one_shot = bool(args.sync_all or args.sync_file)

    try:
        unified = _load_unified_config()
    except Exception as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        sys.exit(1)

    # CRITICAL: server mode must never log to stdout (stdio transport)
    setup_logging(
        mode="cli" if one_shot else "mcp",
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        level=unified.logging.level,
    )
    config_files = discover_config_files()
    if config_files:
        logger.info("Configuration loaded from: %s", config_files[0])

    config_overrides: dict[str, Any] = {}
    for key in ("vault", "account_id", "namespace_id", "api_token"):
        value = getattr(args, key)
        if value:
            config_overrides[key] = value
    if args.debug:
        config_overrides["debug"] = True

    if config_overrides:
        override_keys = [k for k in config_overrides if k != "api_token"]
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        if one_shot:
            ok = asyncio.run(
                run_once(
                    unified,
                    config_overrides,
                    sync_all=args.sync_all,
                    sync_file=args.sync_file,
                )
            )
            if not ok:
                sys.exit(1)
        else:
            asyncio.run(main(unified, config_overrides))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
