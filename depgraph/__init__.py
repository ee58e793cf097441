"""
Dependency Graph Engine Package

This package indexes code entities and their dependency edges into immutable
snapshots and answers structural queries over them: callers and callees,
blast radius, cycles, hotspots, clusters, smart context and temporal
coupling.
"""

from depgraph.entities import ChangeSet, Edge, Entity, EntityKey, EntityType, Language
from depgraph.manager import DependencyGraphManager
from depgraph.query import GraphQueryService
from depgraph.api import create_app
from depgraph.storage.json_storage import JSONGraphStorage
from depgraph.storage.in_memory import InMemoryGraphStorage

__all__ = [
    'ChangeSet',
    'DependencyGraphManager',
    'Edge',
    'Entity',
    'EntityKey',
    'EntityType',
    'GraphQueryService',
    'InMemoryGraphStorage',
    'JSONGraphStorage',
    'Language',
    'create_app',
]
