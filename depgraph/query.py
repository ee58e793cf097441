"""
Query Facade Module

This module exposes every graph operation as a read method that returns a
response envelope. The HTTP and MCP surfaces are thin adapters over it.

Success envelope::

    {"success": true, "endpoint": "...", "data": ..., "tokens": 123}

Failure envelope::

    {"success": false, "endpoint": "...", "data": null,
     "error": {"type": "NotFound", "message": "..."}, "tokens": 12}

Each call reads the current snapshot exactly once, so a response is always
computed against a single snapshot even if a new one is swapped in
meanwhile.
"""

import json
import logging
import math
import re
from typing import Any, Callable, Dict, Optional

from depgraph import analysis
from depgraph.config import EngineConfig
from depgraph.errors import GraphEngineError, InvalidParameter
from depgraph.manager import DependencyGraphManager
from depgraph.storage.snapshot import Snapshot

# Set up logging
logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
DEFAULT_HOTSPOT_TOP = 10

INTEGER_PATTERN = re.compile(r"[+-]?[0-9]{1,18}", re.ASCII)


def estimate_response_tokens(payload: Any) -> int:
    """Approximate token count of a payload: ceil(JSON length / 4)."""
    text = json.dumps(payload, default=str)
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def success_envelope(endpoint: str, data: Any) -> Dict[str, Any]:
    return {
        'success': True,
        'endpoint': endpoint,
        'data': data,
        'tokens': estimate_response_tokens(data),
    }


def error_envelope(endpoint: str, error: GraphEngineError) -> Dict[str, Any]:
    payload = {'type': error.error_type, 'message': error.message}
    return {
        'success': False,
        'endpoint': endpoint,
        'data': None,
        'error': payload,
        'tokens': estimate_response_tokens(payload),
    }


def parse_positive_int(value: Any, name: str) -> int:
    """
    Coerce a request parameter to a positive integer.

    Integers and decimal strings are accepted; booleans, floats and other
    values are rejected.

    Raises:
        InvalidParameter: If the value is not a positive integer
    """
    if isinstance(value, bool):
        raise InvalidParameter(f"{name} must be a positive integer, got {value!r}")
    if isinstance(value, str):
        text = value.strip()
        if not INTEGER_PATTERN.fullmatch(text):
            raise InvalidParameter(f"{name} must be a positive integer, got '{value}'")
        value = int(text)
    if not isinstance(value, int) or value <= 0:
        raise InvalidParameter(f"{name} must be a positive integer, got {value!r}")
    return value


def parse_float(value: Any, name: str) -> float:
    """Coerce a request parameter to a float."""
    if isinstance(value, bool):
        raise InvalidParameter(f"{name} must be a number, got {value!r}")
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise InvalidParameter(f"{name} must be a number, got {value!r}")
    if math.isnan(result):
        raise InvalidParameter(f"{name} must be a number, got {value!r}")
    return result


def require_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidParameter(f"{name} is required")
    return value.strip()


class GraphQueryService:
    """
    Envelope-returning read operations over the served snapshot.
    """

    def __init__(self, manager: DependencyGraphManager, config: Optional[EngineConfig] = None):
        """
        Initialize the query service.

        Args:
            manager: Manager owning the current snapshot
            config: Engine settings supplying query defaults
        """
        self.manager = manager
        self.config = config or EngineConfig()

    def _run(self, endpoint: str, operation: Callable[[Snapshot], Any]) -> Dict[str, Any]:
        try:
            snapshot = self.manager.current()
            data = operation(snapshot)
        except GraphEngineError as e:
            logger.debug(f"{endpoint} failed with {e.error_type}: {e.message}")
            return error_envelope(endpoint, e)
        except Exception:
            logger.exception(f"Unexpected error while handling {endpoint}")
            raise
        logger.debug(f"{endpoint} succeeded")
        return success_envelope(endpoint, data)

    def health(self) -> Dict[str, Any]:
        """Report service status. Never fails, even without a snapshot."""
        data = {'status': 'ok'}
        data.update(self.manager.status())
        return success_envelope('health', data)

    def overview(self) -> Dict[str, Any]:
        return self._run('overview', analysis.overview)

    def list_entities(self, entity_type: Optional[str] = None,
                      language: Optional[str] = None) -> Dict[str, Any]:
        """List entities, optionally filtered. Unknown filter values match nothing."""
        def operation(snapshot: Snapshot) -> Dict[str, Any]:
            try:
                entities = snapshot.list_entities(entity_type=entity_type or None,
                                                  language=language or None)
            except InvalidParameter:
                entities = []
            return {
                'count': len(entities),
                'entities': [entity.to_dict() for entity in entities],
            }
        return self._run('list_entities', operation)

    def entity_detail(self, key: Any) -> Dict[str, Any]:
        def operation(snapshot: Snapshot) -> Dict[str, Any]:
            entity = snapshot.get_entity(require_text(key, 'key'))
            detail = entity.to_dict()
            detail['inbound_count'] = snapshot.index.in_degree(entity.key)
            detail['outbound_count'] = snapshot.index.out_degree(entity.key)
            return detail
        return self._run('entity', operation)

    def search(self, query: Any, limit: Any = None) -> Dict[str, Any]:
        def operation(snapshot: Snapshot) -> Dict[str, Any]:
            page = self.config.search_limit if limit is None else parse_positive_int(limit, 'limit')
            return analysis.fuzzy_search(snapshot, query, limit=page)
        return self._run('search', operation)

    def list_edges(self) -> Dict[str, Any]:
        def operation(snapshot: Snapshot) -> Dict[str, Any]:
            edges = snapshot.list_edges()
            return {'count': len(edges), 'edges': [edge.to_dict() for edge in edges]}
        return self._run('edges', operation)

    def reverse_callers(self, entity: Any) -> Dict[str, Any]:
        def operation(snapshot: Snapshot) -> Dict[str, Any]:
            key = require_text(entity, 'entity')
            callers = analysis.reverse_callers(snapshot, key)
            return {'entity': key, 'count': len(callers), 'callers': callers}
        return self._run('callers', operation)

    def forward_callees(self, entity: Any) -> Dict[str, Any]:
        def operation(snapshot: Snapshot) -> Dict[str, Any]:
            key = require_text(entity, 'entity')
            callees = analysis.forward_callees(snapshot, key)
            return {'entity': key, 'count': len(callees), 'callees': callees}
        return self._run('callees', operation)

    def blast_radius(self, entity: Any, hops: Any) -> Dict[str, Any]:
        """Blast radius over callers; hops must be a positive integer."""
        def operation(snapshot: Snapshot) -> Dict[str, Any]:
            return analysis.blast_radius(
                snapshot,
                require_text(entity, 'entity'),
                parse_positive_int(hops, 'hops'),
                max_entities_per_hop=self.config.blast_sample,
            )
        return self._run('blast_radius', operation)

    def cycles(self) -> Dict[str, Any]:
        return self._run('cycles', analysis.detect_cycles)

    def hotspots(self, top: Any = DEFAULT_HOTSPOT_TOP) -> Dict[str, Any]:
        def operation(snapshot: Snapshot) -> Dict[str, Any]:
            count = parse_positive_int(top, 'top')
            return {'top': count, 'hotspots': analysis.complexity_hotspots(snapshot, count)}
        return self._run('hotspots', operation)

    def clusters(self, threshold: Any = None) -> Dict[str, Any]:
        def operation(snapshot: Snapshot) -> Dict[str, Any]:
            value = self.config.cluster_threshold if threshold is None else parse_float(threshold, 'threshold')
            return analysis.semantic_clusters(snapshot, value)
        return self._run('clusters', operation)

    def smart_context(self, focus: Any, tokens: Any, max_depth: Any = None) -> Dict[str, Any]:
        def operation(snapshot: Snapshot) -> Dict[str, Any]:
            depth = self.config.context_max_depth if max_depth is None else parse_positive_int(max_depth, 'max_depth')
            return analysis.smart_context(
                snapshot,
                require_text(focus, 'focus'),
                parse_positive_int(tokens, 'tokens'),
                max_depth=depth,
            )
        return self._run('smart_context', operation)

    def temporal_coupling(self, entity: Any, min_strength: Any = None,
                          min_co_changes: Any = None) -> Dict[str, Any]:
        def operation(snapshot: Snapshot) -> Dict[str, Any]:
            options = {}
            if min_strength is not None:
                options['min_strength'] = parse_float(min_strength, 'min_strength')
            if min_co_changes is not None:
                options['min_co_changes'] = parse_positive_int(min_co_changes, 'min_co_changes')
            return analysis.temporal_coupling(snapshot, require_text(entity, 'entity'), **options)
        return self._run('temporal_coupling', operation)
