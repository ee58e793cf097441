#!/usr/bin/env python3
"""
MCP Server Runner

This script serves the graph engine tools to MCP clients over stdio. It
loads the persisted snapshot once at startup.
"""

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import CallToolRequest, CallToolRequestParams, TextContent, Tool

from depgraph.cli import LOG_FORMAT, apply_overrides, create_service
from depgraph.config import EngineConfig
from depgraph.errors import GraphEngineError
from depgraph.mcp_integration import GraphEngineMCP

logger = logging.getLogger(__name__)


class ToolCallFailed(Exception):
    """Raised inside the server handler so a failed envelope is reported with isError set."""


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Serve the dependency graph engine over MCP (stdio)')
    parser.add_argument('--storage', dest='storage_path', default=None,
                        help='Path of the JSON snapshot file. Default: $DEPGRAPH_STORAGE_PATH')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    return parser.parse_args(argv)


def build_server(integration: GraphEngineMCP) -> Server:
    """Register the integration's tools on an MCP server."""
    mcp_server = Server("depgraph-engine")

    @mcp_server.list_tools()
    async def list_tools() -> List[Tool]:
        return integration.get_tools()

    @mcp_server.call_tool()
    async def call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> List[TextContent]:
        request = CallToolRequest(
            method="tools/call",
            params=CallToolRequestParams(name=name, arguments=arguments or {})
        )
        result = await integration.call_tool(request)
        if result.isError:
            raise ToolCallFailed(result.content[0].text)
        return result.content

    return mcp_server


async def serve(mcp_server: Server) -> None:
    async with stdio_server() as (read_stream, write_stream):
        await mcp_server.run(read_stream, write_stream, mcp_server.create_initialization_options())


def main(argv=None):
    """Main entry point for the script."""
    args = parse_args(argv)
    # stdout carries the protocol, so logs go to stderr
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr
    )

    try:
        config = apply_overrides(EngineConfig.from_env(), args)
        service = create_service(config)
        if service.manager.load() is None:
            logger.warning(f"No snapshot found in {service.manager.storage.describe()}")
    except GraphEngineError as e:
        logger.error(f"Could not start the MCP server: {e}")
        return 1

    integration = GraphEngineMCP(service)
    logger.info(f"Serving {len(integration.tool_names)} MCP tools over stdio")
    try:
        asyncio.run(serve(build_server(integration)))
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt. Shutting down...")
    return 0


if __name__ == '__main__':
    sys.exit(main())
