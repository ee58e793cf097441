"""
MCP Integration for the Dependency Graph Engine

This module provides MCP (Model Context Protocol) integration for the graph
engine, allowing LLM agents to query the dependency graph through tool
calls. Every tool returns the same JSON envelope as the HTTP API, with
``isError`` set when the envelope reports a failure.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List

from mcp.types import (
    CallToolRequest,
    CallToolResult,
    TextContent,
    Tool,
)

from depgraph.query import DEFAULT_HOTSPOT_TOP, GraphQueryService

# Set up logging
logger = logging.getLogger(__name__)

ENTITY_KEY_DESCRIPTION = "Entity key in the form language:entity_type:name:path_token:start-end"


def _schema(properties: Dict[str, Any], required: List[str] = None) -> Dict[str, Any]:
    schema = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def _entity_param(description: str = ENTITY_KEY_DESCRIPTION) -> Dict[str, Any]:
    return {"type": "string", "description": description}


class GraphEngineMCP:
    """
    MCP integration for the dependency graph engine.

    This class exposes every query operation as an MCP tool. Handlers are
    thin: they unpack arguments, call the query service and wrap the
    envelope in a CallToolResult.
    """

    def __init__(self, service: GraphQueryService):
        """
        Initialize the MCP integration with a query service.

        Args:
            service: An instance of GraphQueryService
        """
        self.service = service
        self._handlers: Dict[str, Callable[[CallToolRequest], Awaitable[CallToolResult]]] = {
            "health_check": self.handle_health_check,
            "graph_overview": self.handle_graph_overview,
            "list_entities": self.handle_list_entities,
            "get_entity": self.handle_get_entity,
            "search_entities": self.handle_search_entities,
            "list_edges": self.handle_list_edges,
            "reverse_callers": self.handle_reverse_callers,
            "forward_callees": self.handle_forward_callees,
            "blast_radius": self.handle_blast_radius,
            "detect_cycles": self.handle_detect_cycles,
            "complexity_hotspots": self.handle_complexity_hotspots,
            "semantic_clusters": self.handle_semantic_clusters,
            "smart_context": self.handle_smart_context,
            "temporal_coupling": self.handle_temporal_coupling,
        }

    @property
    def tool_names(self) -> List[str]:
        return list(self._handlers)

    def _respond(self, tool: str, request: CallToolRequest,
                 operation: Callable[[Dict[str, Any]], Dict[str, Any]]) -> CallToolResult:
        try:
            arguments = request.params.arguments or {}
            envelope = operation(arguments)
        except Exception as e:
            logger.exception(f"Error in MCP tool {tool}")
            return CallToolResult(
                isError=True,
                content=[TextContent(type="text", text=f"Error in {tool}: {str(e)}")]
            )
        return CallToolResult(
            isError=not envelope['success'],
            content=[TextContent(type="text", text=json.dumps(envelope))]
        )

    async def call_tool(self, request: CallToolRequest) -> CallToolResult:
        """
        Dispatch a tool call to its handler by name.

        Args:
            request: The MCP tool call request

        Returns:
            MCP tool call result
        """
        name = request.params.name
        handler = self._handlers.get(name)
        if handler is None:
            return CallToolResult(
                isError=True,
                content=[TextContent(type="text", text=f"Unknown tool '{name}'")]
            )
        logger.debug(f"MCP tool call: {name}")
        return await handler(request)

    # --- MCP Tool Handlers ---

    async def handle_health_check(self, request: CallToolRequest) -> CallToolResult:
        return self._respond("health_check", request, lambda args: self.service.health())

    async def handle_graph_overview(self, request: CallToolRequest) -> CallToolResult:
        return self._respond("graph_overview", request, lambda args: self.service.overview())

    async def handle_list_entities(self, request: CallToolRequest) -> CallToolResult:
        """
        MCP handler for listing entities.

        Args:
            request: The MCP tool call request

        Returns:
            MCP tool call result
        """
        return self._respond("list_entities", request, lambda args: self.service.list_entities(
            entity_type=args.get("entity_type"), language=args.get("language")))

    async def handle_get_entity(self, request: CallToolRequest) -> CallToolResult:
        return self._respond("get_entity", request,
                             lambda args: self.service.entity_detail(args.get("key")))

    async def handle_search_entities(self, request: CallToolRequest) -> CallToolResult:
        """
        MCP handler for fuzzy entity search.

        Args:
            request: The MCP tool call request

        Returns:
            MCP tool call result
        """
        return self._respond("search_entities", request, lambda args: self.service.search(
            args.get("query"), limit=args.get("limit")))

    async def handle_list_edges(self, request: CallToolRequest) -> CallToolResult:
        return self._respond("list_edges", request, lambda args: self.service.list_edges())

    async def handle_reverse_callers(self, request: CallToolRequest) -> CallToolResult:
        return self._respond("reverse_callers", request,
                             lambda args: self.service.reverse_callers(args.get("entity")))

    async def handle_forward_callees(self, request: CallToolRequest) -> CallToolResult:
        return self._respond("forward_callees", request,
                             lambda args: self.service.forward_callees(args.get("entity")))

    async def handle_blast_radius(self, request: CallToolRequest) -> CallToolResult:
        """
        MCP handler for blast radius analysis.

        Args:
            request: The MCP tool call request

        Returns:
            MCP tool call result
        """
        return self._respond("blast_radius", request, lambda args: self.service.blast_radius(
            args.get("entity"), args.get("hops")))

    async def handle_detect_cycles(self, request: CallToolRequest) -> CallToolResult:
        return self._respond("detect_cycles", request, lambda args: self.service.cycles())

    async def handle_complexity_hotspots(self, request: CallToolRequest) -> CallToolResult:
        return self._respond("complexity_hotspots", request, lambda args: self.service.hotspots(
            args.get("top", DEFAULT_HOTSPOT_TOP)))

    async def handle_semantic_clusters(self, request: CallToolRequest) -> CallToolResult:
        return self._respond("semantic_clusters", request,
                             lambda args: self.service.clusters(args.get("threshold")))

    async def handle_smart_context(self, request: CallToolRequest) -> CallToolResult:
        """
        MCP handler for token-budgeted context selection.

        Args:
            request: The MCP tool call request

        Returns:
            MCP tool call result
        """
        return self._respond("smart_context", request, lambda args: self.service.smart_context(
            args.get("focus"), args.get("tokens"), max_depth=args.get("max_depth")))

    async def handle_temporal_coupling(self, request: CallToolRequest) -> CallToolResult:
        return self._respond("temporal_coupling", request, lambda args: self.service.temporal_coupling(
            args.get("entity"), min_strength=args.get("min_strength"),
            min_co_changes=args.get("min_co_changes")))

    # --- MCP Tool Definitions ---

    def get_tools(self) -> List[Tool]:
        """
        Get the list of MCP tools provided by this class.

        Returns:
            List of MCP Tool objects
        """
        return [
            Tool(
                name="health_check",
                description="Report whether the engine is up and which snapshot it serves.",
                inputSchema=_schema({}),
            ),
            Tool(
                name="graph_overview",
                description="Entity, edge, file and change set counts of the current snapshot.",
                inputSchema=_schema({}),
            ),
            Tool(
                name="list_entities",
                description="List entities, optionally filtered by entity type and language.",
                inputSchema=_schema({
                    "entity_type": {"type": "string", "description": "Entity type, e.g. 'function' or 'trait'"},
                    "language": {"type": "string", "description": "Language, e.g. 'rust' or 'python'"},
                }),
            ),
            Tool(
                name="get_entity",
                description="Get one entity with its inbound and outbound edge counts.",
                inputSchema=_schema({"key": _entity_param()}, ["key"]),
            ),
            Tool(
                name="search_entities",
                description="Fuzzy search over entity names (exact, prefix, substring, approximate).",
                inputSchema=_schema({
                    "query": {"type": "string", "description": "The search term to look for"},
                    "limit": {"type": "integer", "description": "Maximum number of results to return"},
                }, ["query"]),
            ),
            Tool(
                name="list_edges",
                description="List every edge of the current snapshot.",
                inputSchema=_schema({}),
            ),
            Tool(
                name="reverse_callers",
                description="Find the entities that depend on (call) an entity.",
                inputSchema=_schema({"entity": _entity_param()}, ["entity"]),
            ),
            Tool(
                name="forward_callees",
                description="Find the entities an entity depends on (calls).",
                inputSchema=_schema({"entity": _entity_param()}, ["entity"]),
            ),
            Tool(
                name="blast_radius",
                description="Multi-hop impact analysis: what is affected if this entity changes.",
                inputSchema=_schema({
                    "entity": _entity_param(),
                    "hops": {"type": "integer", "description": "Number of caller hops to follow", "minimum": 1},
                }, ["entity", "hops"]),
            ),
            Tool(
                name="detect_cycles",
                description="Find dependency cycles across the whole graph.",
                inputSchema=_schema({}),
            ),
            Tool(
                name="complexity_hotspots",
                description="Rank entities by how many other entities depend on them.",
                inputSchema=_schema({
                    "top": {"type": "integer", "description": "Number of hotspots to return",
                            "default": DEFAULT_HOTSPOT_TOP, "minimum": 1},
                }),
            ),
            Tool(
                name="semantic_clusters",
                description="Group entities into clusters by module and mutual edge density.",
                inputSchema=_schema({
                    "threshold": {"type": "number", "description": "Minimum mutual edge density in (0, 1]"},
                }),
            ),
            Tool(
                name="smart_context",
                description="Select the entities most relevant to a focus entity within a token budget.",
                inputSchema=_schema({
                    "focus": _entity_param("Key of the focus entity"),
                    "tokens": {"type": "integer", "description": "Token budget", "minimum": 1},
                    "max_depth": {"type": "integer", "description": "How many hops to look for candidates"},
                }, ["focus", "tokens"]),
            ),
            Tool(
                name="temporal_coupling",
                description="Find files that change together with the file of an entity.",
                inputSchema=_schema({
                    "entity": _entity_param(),
                    "min_strength": {"type": "number", "description": "Minimum coupling strength"},
                    "min_co_changes": {"type": "integer", "description": "Minimum shared change count"},
                }, ["entity"]),
            ),
        ]
