"""
Storage module for the dependency graph.

This package provides the snapshot write/read path and the different
persistence backends for committed snapshots.
"""
from depgraph.storage.snapshot import Snapshot, SnapshotBuilder
from depgraph.storage.in_memory import InMemoryGraphStorage
from depgraph.storage.json_storage import JSONGraphStorage

__all__ = ['Snapshot', 'SnapshotBuilder', 'InMemoryGraphStorage', 'JSONGraphStorage']
