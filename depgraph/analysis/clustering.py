"""
Semantic Clustering Module

This module groups the entities of a snapshot into clusters. Entities are
first seeded into groups by language and module directory (co-location);
groups whose mutual edge density reaches a threshold are then merged,
transitively, using connected components of a networkx group graph.
The result depends only on the snapshot and the threshold.
"""

import logging
import posixpath
from collections import defaultdict
from typing import Any, Dict, List, Set, Tuple

import networkx as nx

from depgraph.entities import EntityKey
from depgraph.errors import InvalidParameter
from depgraph.storage.snapshot import Snapshot

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_CLUSTER_THRESHOLD = 0.2

GroupId = Tuple[str, str]


def _module_of(file_path: str) -> str:
    return posixpath.dirname(file_path) or '.'


def seed_groups(snapshot: Snapshot) -> Dict[GroupId, List[EntityKey]]:
    """Group in-repository entities by (language, module directory)."""
    groups: Dict[GroupId, List[EntityKey]] = defaultdict(list)
    for entity in snapshot.list_entities():
        if entity.is_external:
            continue
        groups[(entity.language.value, _module_of(entity.file_path))].append(entity.key)
    return dict(groups)


def mutual_density(pair_count: int, size_a: int, size_b: int) -> float:
    """Connected cross-group entity pairs divided by all possible cross pairs."""
    if size_a == 0 or size_b == 0:
        return 0.0
    return pair_count / (size_a * size_b)


def semantic_clusters(snapshot: Snapshot, threshold: float = DEFAULT_CLUSTER_THRESHOLD) -> Dict[str, Any]:
    """
    Cluster the entities of a snapshot.

    Args:
        snapshot: Snapshot to cluster
        threshold: Minimum mutual edge density for two groups to merge,
            in (0, 1]

    Returns:
        Dictionary with the clusters (largest first) and the number of
        external entities left out of clustering

    Raises:
        InvalidParameter: If the threshold is outside (0, 1]
    """
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not 0 < threshold <= 1:
        raise InvalidParameter(f"threshold must be in (0, 1], got {threshold!r}")

    groups = seed_groups(snapshot)
    group_of: Dict[EntityKey, GroupId] = {
        key: group for group, keys in groups.items() for key in keys
    }

    # Distinct undirected entity pairs connected across two groups
    cross_pairs: Dict[Tuple[GroupId, GroupId], Set[Tuple[EntityKey, EntityKey]]] = defaultdict(set)
    for edge in snapshot.list_edges():
        group_a = group_of.get(edge.source)
        group_b = group_of.get(edge.target)
        if group_a is None or group_b is None or group_a == group_b:
            continue
        pair_key = tuple(sorted((group_a, group_b)))
        cross_pairs[pair_key].add(tuple(sorted((edge.source, edge.target))))

    group_graph = nx.Graph()
    group_graph.add_nodes_from(groups)
    for (group_a, group_b), pairs in sorted(cross_pairs.items()):
        density = mutual_density(len(pairs), len(groups[group_a]), len(groups[group_b]))
        if density >= threshold:
            group_graph.add_edge(group_a, group_b, density=density)
            logger.debug(f"Merging groups {group_a} and {group_b} (density {density:.3f})")

    clusters = []
    for component in nx.connected_components(group_graph):
        member_groups = sorted(component)
        members = sorted(key for group in member_groups for key in groups[group])
        clusters.append(_describe_cluster(snapshot, member_groups, members))

    clusters.sort(key=lambda cluster: (-cluster['size'], cluster['label'], cluster['entities'][0]))
    for number, cluster in enumerate(clusters, start=1):
        cluster['cluster_id'] = f"cluster-{number}"

    external = snapshot.entity_count - len(group_of)
    logger.debug(f"Clustered {len(group_of)} entities into {len(clusters)} clusters (threshold {threshold})")
    return {
        'threshold': threshold,
        'cluster_count': len(clusters),
        'external_entity_count': external,
        'clusters': clusters,
    }


def _describe_cluster(snapshot: Snapshot, member_groups: List[GroupId],
                      members: List[EntityKey]) -> Dict[str, Any]:
    member_set = set(members)
    internal_pairs = set()
    for key in members:
        for callee in snapshot.index.callee_keys(key):
            if callee in member_set and callee != key:
                internal_pairs.add((key, callee))

    size = len(members)
    possible = size * (size - 1)
    return {
        'cluster_id': None,
        'label': '+'.join(module for _, module in member_groups),
        'languages': sorted({language for language, _ in member_groups}),
        'modules': [module for _, module in member_groups],
        'size': size,
        'internal_edges': len(internal_pairs),
        'cohesion': round(len(internal_pairs) / possible, 4) if possible else 0.0,
        'entities': [str(key) for key in members],
    }
