"""MCP server wiring for gitlab-mr-mcp.

Lists the tool registry, forwards tool calls to the dispatcher and exposes
non-secret status resources.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

try:
    from mcp.server import Server
    from mcp.types import CallToolResult, Resource, Tool
except ImportError as exc:  # pragma: no cover
    raise ImportError("MCP library not installed. Install with: pip install mcp") from exc

from . import __version__
from .errors import SafeError, ToolResult
from .tools import TOOL_METADATA, contract, dispatch_tool, initialize_runtime_from_env

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)

SERVER_NAME = "gitlab-mr-mcp"
CAPABILITIES_URI = "gitlab-mr-mcp://capabilities"
SERVER_STATUS_URI = "gitlab-mr-mcp://server-status"

server = Server(SERVER_NAME, version=__version__)


def _tool_descriptors() -> list[Tool]:
    return [
        Tool(
            name=tool_name,
            title=metadata["title"],
            description=metadata["description"],
            inputSchema=metadata["inputSchema"],
        )
        for tool_name, metadata in TOOL_METADATA.items()
    ]


def _resources() -> list[Resource]:
    return [
        Resource(
            uri=SERVER_STATUS_URI,
            name="Server Status",
            description="Non-secret server configuration",
        ),
        Resource(
            uri=CAPABILITIES_URI,
            name="Capabilities",
            description="Available GitLab operations",
        ),
    ]


def to_call_tool_result(result: ToolResult) -> CallToolResult:
    """Convert a dispatcher result into the MCP wire type."""
    return CallToolResult.model_validate(result.to_dict())


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools, in registry order."""
    tools = _tool_descriptors()
    logger.info("Listed %s tools", len(tools))
    return tools


# Arguments are validated by the dispatcher so every failure shares one error shape.
@server.call_tool(validate_input=False)
async def call_tool(name: str, arguments: dict[str, Any] | None) -> CallToolResult:
    """Execute a tool and return an MCP CallToolResult."""
    logger.info("Tool called: %s", name)
    result = await dispatch_tool(name, arguments if isinstance(arguments, dict) else {})
    return to_call_tool_result(result)


@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return _resources()


@server.read_resource()
async def read_resource(uri: Any) -> str:
    """Read resource content."""
    uri_s = uri if isinstance(uri, str) else str(uri)

    if uri_s == CAPABILITIES_URI:
        caps = {
            "server": SERVER_NAME,
            "version": __version__,
            "operations": list(TOOL_METADATA.keys()),
            "contracts": {name: contract(name) for name in TOOL_METADATA},
            "verbose_supported": sorted(
                name for name, meta in TOOL_METADATA.items() if "verbose" in meta["inputSchema"]["properties"]
            ),
        }
        return json.dumps(caps, indent=2)

    if uri_s == SERVER_STATUS_URI:
        status: dict[str, Any] = {
            "server": SERVER_NAME,
            "version": __version__,
            "tools_available": len(TOOL_METADATA),
            "configured": False,
        }
        try:
            runtime = initialize_runtime_from_env()
            status["configured"] = True
            status["gitlab_host"] = runtime.config.gitlab_host
            status["project_filter"] = {
                "min_access_level": runtime.config.project_filter.min_access_level,
                "search_enabled": runtime.config.project_filter.search is not None,
            }
            status["audit"] = {"file_sink_enabled": runtime.config.audit_log_path is not None}
        except SafeError:
            status["configured"] = False

        return json.dumps(status, indent=2)

    return json.dumps({"isError": True, "message": "Unknown resource"}, indent=2)


async def run_server() -> None:
    """Run the server over stdio."""
    # Fail fast on missing token or invalid host configuration.
    try:
        runtime = initialize_runtime_from_env()
    except SafeError as exc:
        logger.error("Startup configuration error: %s", exc.message)
        raise

    from mcp.server.stdio import stdio_server

    logger.info("%s %s started for %s", SERVER_NAME, __version__, runtime.config.gitlab_host)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


async def test_server() -> None:
    """Lightweight self-test to ensure tool/resource listing works."""
    tools = _tool_descriptors()
    resources = _resources()
    print(f"{SERVER_NAME}: {len(tools)} tools, {len(resources)} resources", file=sys.stderr)
