"""
Traversal Engine Module

This module provides the graph walks over a snapshot: single-hop reverse
and forward lookups, multi-hop blast radius analysis and whole-graph cycle
detection.
"""

import logging
from typing import Any, Dict, List, Optional

import networkx as nx

from depgraph.entities import EntityKey
from depgraph.errors import InvalidParameter
from depgraph.storage.snapshot import KeyLike, Snapshot

# Set up logging
logger = logging.getLogger(__name__)

REVERSE = 'reverse'
FORWARD = 'forward'
DIRECTIONS = (REVERSE, FORWARD)


def reverse_callers(snapshot: Snapshot, key: KeyLike) -> List[Dict[str, Any]]:
    """
    Get the entities with an edge pointing at ``key``.

    Args:
        snapshot: Snapshot to query
        key: Key of the target entity

    Returns:
        List of dictionaries with the caller entity and the relation, in
        lexical key order; empty if the entity has no callers

    Raises:
        EntityNotFound: If the key is absent from the snapshot
    """
    target = snapshot.resolve_key(key)
    return [
        {'entity': snapshot.get_entity(neighbor.key).to_dict(), 'relation': neighbor.relation}
        for neighbor in snapshot.index.callers(target)
    ]


def forward_callees(snapshot: Snapshot, key: KeyLike) -> List[Dict[str, Any]]:
    """
    Get the entities ``key`` has an edge pointing at.

    Raises:
        EntityNotFound: If the key is absent from the snapshot
    """
    source = snapshot.resolve_key(key)
    return [
        {'entity': snapshot.get_entity(neighbor.key).to_dict(), 'relation': neighbor.relation}
        for neighbor in snapshot.index.callees(source)
    ]


def blast_radius(snapshot: Snapshot, key: KeyLike, hops: int, direction: str = REVERSE,
                 max_entities_per_hop: Optional[int] = None) -> Dict[str, Any]:
    """
    Breadth-first impact analysis from one entity.

    With the default reverse direction this answers "what breaks if this
    entity changes": hop 1 holds its callers, hop 2 the callers of those,
    and so on. An entity is counted once, at the nearest hop that reaches
    it, and the source entity itself is never counted.

    Args:
        snapshot: Snapshot to query
        key: Key of the source entity
        hops: Maximum number of hops; 0 yields an empty result
        direction: 'reverse' (callers) or 'forward' (callees)
        max_entities_per_hop: Cap on the representative entity list of each
            hop; counts always cover every entity

    Returns:
        Dictionary with total_affected and the per-hop breakdown

    Raises:
        EntityNotFound: If the key is absent from the snapshot
        InvalidParameter: If hops is negative or not an integer, or the
            direction is unknown
    """
    if isinstance(hops, bool) or not isinstance(hops, int) or hops < 0:
        raise InvalidParameter(f"hops must be a non-negative integer, got {hops!r}")
    if direction not in DIRECTIONS:
        raise InvalidParameter(f"direction must be one of {DIRECTIONS}, got {direction!r}")

    source = snapshot.resolve_key(key)
    step = snapshot.index.caller_keys if direction == REVERSE else snapshot.index.callee_keys

    visited = {source}
    frontier = [source]
    by_hop = []
    for hop in range(1, hops + 1):
        reached = set()
        for current in frontier:
            for neighbor in step(current):
                if neighbor not in visited:
                    visited.add(neighbor)
                    reached.add(neighbor)
        if not reached:
            break
        frontier = sorted(reached)
        shown = frontier if max_entities_per_hop is None else frontier[:max_entities_per_hop]
        by_hop.append({
            'hop': hop,
            'count': len(frontier),
            'entities': [str(k) for k in shown],
        })

    total = sum(entry['count'] for entry in by_hop)
    logger.debug(f"Blast radius of {source} ({direction}, {hops} hops): {total} affected")
    return {
        'source': str(source),
        'hops': hops,
        'direction': direction,
        'total_affected': total,
        'by_hop': by_hop,
    }


def detect_cycles(snapshot: Snapshot) -> Dict[str, Any]:
    """
    Find dependency cycles across the whole snapshot.

    Strongly connected components are computed with networkx in O(V+E).
    A component with more than one member, or a single entity with a
    self-loop, is reported as a cycle.

    Returns:
        Dictionary with has_cycles, cycle_count and the member lists, each
        sorted lexically; larger cycles come first
    """
    index = snapshot.index
    cycles = []
    for component in nx.strongly_connected_components(index.digraph):
        if len(component) > 1:
            cycles.append(sorted(component))
        else:
            (member,) = component
            if member in index.self_loops:
                cycles.append([member])

    cycles.sort(key=lambda members: (-len(members), members[0]))
    logger.debug(f"Cycle detection over {snapshot.entity_count} entities: {len(cycles)} cycles")
    return {
        'has_cycles': bool(cycles),
        'cycle_count': len(cycles),
        'cycles': [[str(k) for k in members] for members in cycles],
    }
