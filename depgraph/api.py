"""
API Module for the Dependency Graph Engine

This module provides a FastAPI application for exposing the dependency
graph queries through HTTP endpoints. Every response body is a query
envelope; the HTTP status code mirrors the envelope's error type.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from depgraph.query import DEFAULT_HOTSPOT_TOP, GraphQueryService

# Set up logging
logger = logging.getLogger(__name__)

STATUS_BY_ERROR_TYPE = {
    'NotFound': 404,
    'InvalidParameter': 400,
    'StorageError': 503,
}


def status_code_for(envelope: Dict[str, Any]) -> int:
    """Map a query envelope to its HTTP status code."""
    if envelope.get('success'):
        return 200
    error_type = (envelope.get('error') or {}).get('type')
    return STATUS_BY_ERROR_TYPE.get(error_type, 500)


def respond(envelope: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(content=envelope, status_code=status_code_for(envelope))


class GraphAPI:
    """
    API wrapper for exposing dependency graph queries.
    """

    def __init__(self, service: GraphQueryService):
        """
        Initialize the API with a query service.

        Args:
            service: An instance of GraphQueryService
        """
        self.service = service
        self.app = FastAPI(title="Dependency Graph Engine API")
        self._setup_routes()

    def _setup_routes(self):
        """Set up the API routes."""
        service = self.service

        @self.app.get("/health")
        async def health():
            logger.debug("GET request for /health")
            return respond(service.health())

        @self.app.get("/graph/overview")
        async def graph_overview():
            """Entity, edge and file counts of the current snapshot."""
            logger.debug("GET request for /graph/overview")
            return respond(service.overview())

        @self.app.get("/graph/entities")
        async def list_entities(entity_type: Optional[str] = None, language: Optional[str] = None):
            """
            Get all entities, optionally filtered.

            Returns:
                Envelope with the entity list
            """
            logger.debug(f"GET request for /graph/entities (type={entity_type}, language={language})")
            return respond(service.list_entities(entity_type=entity_type, language=language))

        @self.app.get("/graph/entity")
        async def get_entity(key: Optional[str] = None):
            logger.debug(f"GET request for /graph/entity?key={key}")
            return respond(service.entity_detail(key))

        @self.app.get("/graph/search")
        async def search_entities(q: Optional[str] = None, limit: Optional[str] = None):
            logger.debug(f"GET request for /graph/search?q={q}")
            return respond(service.search(q, limit=limit))

        @self.app.get("/graph/edges")
        async def list_edges():
            """
            Get all edges in the dependency graph.

            Returns:
                Envelope with the edge list
            """
            logger.debug("GET request for /graph/edges")
            return respond(service.list_edges())

        @self.app.get("/graph/callers")
        async def reverse_callers(entity: Optional[str] = None):
            logger.debug(f"GET request for /graph/callers?entity={entity}")
            return respond(service.reverse_callers(entity))

        @self.app.get("/graph/callees")
        async def forward_callees(entity: Optional[str] = None):
            logger.debug(f"GET request for /graph/callees?entity={entity}")
            return respond(service.forward_callees(entity))

        # Parameters arrive as strings so the facade reports bad values in an envelope
        @self.app.get("/graph/blast-radius")
        async def blast_radius(entity: Optional[str] = None, hops: Optional[str] = None):
            logger.debug(f"GET request for /graph/blast-radius?entity={entity}&hops={hops}")
            return respond(service.blast_radius(entity, hops))

        @self.app.get("/graph/cycles")
        async def detect_cycles():
            logger.debug("GET request for /graph/cycles")
            return respond(service.cycles())

        @self.app.get("/graph/hotspots")
        async def complexity_hotspots(top: str = str(DEFAULT_HOTSPOT_TOP)):
            logger.debug(f"GET request for /graph/hotspots?top={top}")
            return respond(service.hotspots(top))

        @self.app.get("/graph/clusters")
        async def semantic_clusters(threshold: Optional[str] = None):
            logger.debug(f"GET request for /graph/clusters?threshold={threshold}")
            return respond(service.clusters(threshold))

        @self.app.get("/graph/smart-context")
        async def smart_context(focus: Optional[str] = None, tokens: Optional[str] = None,
                                max_depth: Optional[str] = None):
            logger.debug(f"GET request for /graph/smart-context?focus={focus}&tokens={tokens}")
            return respond(service.smart_context(focus, tokens, max_depth=max_depth))

        @self.app.get("/graph/temporal-coupling")
        async def temporal_coupling(entity: Optional[str] = None, min_strength: Optional[str] = None,
                                    min_co_changes: Optional[str] = None):
            logger.debug(f"GET request for /graph/temporal-coupling?entity={entity}")
            return respond(service.temporal_coupling(entity, min_strength=min_strength,
                                                     min_co_changes=min_co_changes))


def create_app(service: GraphQueryService, disable_cors: bool = False) -> FastAPI:
    """
    Create a FastAPI application with the given query service.

    Args:
        service: An instance of GraphQueryService
        disable_cors: Whether to disable CORS middleware

    Returns:
        A FastAPI application
    """
    api = GraphAPI(service)
    app = api.app

    if not disable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        logger.info("CORS middleware enabled for all origins")

    return app
