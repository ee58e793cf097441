"""
Graph Index Module

This module provides the in-memory adjacency structure built once per
snapshot. It answers single-hop neighbor lookups in O(1) average time and
exposes a networkx view of the graph for whole-graph algorithms.
"""

import logging
from collections import defaultdict
from functools import cached_property
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, NamedTuple, Tuple

import networkx as nx

from depgraph.entities import Edge, EntityKey

# Set up logging
logger = logging.getLogger(__name__)


class Neighbor(NamedTuple):
    """One adjacency entry: the entity on the other end and the relation."""
    key: EntityKey
    relation: str


_EMPTY: Tuple[Neighbor, ...] = ()


class GraphIndex:
    """
    Forward and reverse adjacency maps for one snapshot.

    The index is never mutated after construction. Neighbor tuples keep the
    order in which edges are supplied; snapshots supply edges sorted by
    (source, target, relation), so every neighbor tuple is in lexical order.
    """

    def __init__(self, entity_keys: Iterable[EntityKey], edges: Iterable[Edge]):
        """
        Build the adjacency maps in a single pass over the edges.

        Args:
            entity_keys: Keys of every entity in the snapshot
            edges: Edges of the snapshot
        """
        forward: Dict[EntityKey, List[Neighbor]] = defaultdict(list)
        reverse: Dict[EntityKey, List[Neighbor]] = defaultdict(list)
        self_loops = set()
        edge_count = 0

        for edge in edges:
            forward[edge.source].append(Neighbor(edge.target, edge.relation))
            reverse[edge.target].append(Neighbor(edge.source, edge.relation))
            if edge.is_self_loop:
                self_loops.add(edge.source)
            edge_count += 1

        self._keys: Tuple[EntityKey, ...] = tuple(entity_keys)
        self._forward: Mapping[EntityKey, Tuple[Neighbor, ...]] = MappingProxyType(
            {key: tuple(items) for key, items in forward.items()}
        )
        self._reverse: Mapping[EntityKey, Tuple[Neighbor, ...]] = MappingProxyType(
            {key: tuple(items) for key, items in reverse.items()}
        )
        self._self_loops: FrozenSet[EntityKey] = frozenset(self_loops)
        self._edge_count = edge_count

        logger.debug(f"Built graph index: {len(self._keys)} entities, {edge_count} edges")

    @property
    def entity_keys(self) -> Tuple[EntityKey, ...]:
        return self._keys

    @property
    def edge_count(self) -> int:
        return self._edge_count

    @property
    def self_loops(self) -> FrozenSet[EntityKey]:
        return self._self_loops

    def callees(self, key: EntityKey) -> Tuple[Neighbor, ...]:
        """Outgoing adjacency of ``key`` (entities it depends on)."""
        return self._forward.get(key, _EMPTY)

    def callers(self, key: EntityKey) -> Tuple[Neighbor, ...]:
        """Incoming adjacency of ``key`` (entities that depend on it)."""
        return self._reverse.get(key, _EMPTY)

    def in_degree(self, key: EntityKey) -> int:
        return len(self._reverse.get(key, _EMPTY))

    def out_degree(self, key: EntityKey) -> int:
        return len(self._forward.get(key, _EMPTY))

    def caller_keys(self, key: EntityKey) -> List[EntityKey]:
        """Distinct callers of ``key`` in lexical order."""
        return _distinct(self.callers(key))

    def callee_keys(self, key: EntityKey) -> List[EntityKey]:
        """Distinct callees of ``key`` in lexical order."""
        return _distinct(self.callees(key))

    def neighbor_keys(self, key: EntityKey) -> List[EntityKey]:
        """Distinct entities adjacent to ``key`` in either direction."""
        return sorted(set(self.caller_keys(key)) | set(self.callee_keys(key)))

    @cached_property
    def digraph(self) -> nx.DiGraph:
        """
        A networkx view of the graph for whole-graph algorithms.

        Parallel edges with different relations collapse into one arc.
        """
        graph = nx.DiGraph()
        graph.add_nodes_from(self._keys)
        for source, neighbors in self._forward.items():
            graph.add_edges_from((source, neighbor.key) for neighbor in neighbors)
        return graph


def _distinct(neighbors: Tuple[Neighbor, ...]) -> List[EntityKey]:
    seen = set()
    result = []
    for neighbor in neighbors:
        if neighbor.key not in seen:
            seen.add(neighbor.key)
            result.append(neighbor.key)
    return result
