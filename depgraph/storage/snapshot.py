"""
Snapshot Module

This module provides the write path and the read path of the entity/edge
store. A SnapshotBuilder stages batches of entities, edges and change sets
during an indexing run; ``commit()`` validates the staged data as a whole and
produces an immutable Snapshot. Nothing is visible before the commit
succeeds, so a failed indexing run never leaves a half-built graph behind.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from functools import cached_property
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from depgraph.entities import (
    ChangeSet,
    Edge,
    Entity,
    EntityKey,
    EntityType,
    Language,
    normalize_entity_type,
    normalize_language,
)
from depgraph.errors import EntityNotFound, InvalidParameter, SnapshotIntegrityError, StorageError
from depgraph.index import GraphIndex

# Set up logging
logger = logging.getLogger(__name__)

KeyLike = Union[str, EntityKey]

# Maximum number of offending keys quoted in an integrity error
_MAX_REPORTED = 5


class Snapshot:
    """
    One immutable build of the entity/edge graph.

    All collections are exposed read-only and the derived graph index is
    built once in the constructor, so a snapshot can be shared between any
    number of concurrent readers without locking.
    """

    def __init__(self, entities: Mapping[EntityKey, Entity], edges: Tuple[Edge, ...],
                 change_sets: Tuple[ChangeSet, ...], snapshot_id: str,
                 created_at: str, generation: int = 0):
        self._entities: Mapping[EntityKey, Entity] = MappingProxyType(dict(entities))
        self._edges = tuple(edges)
        self._change_sets = tuple(change_sets)
        self.snapshot_id = snapshot_id
        self.created_at = created_at
        self.generation = generation
        self.index = GraphIndex(sorted(self._entities), self._edges)

    def __repr__(self) -> str:
        return (f"Snapshot(id={self.snapshot_id}, generation={self.generation}, "
                f"entities={self.entity_count}, edges={self.edge_count})")

    @property
    def entity_count(self) -> int:
        return len(self._entities)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    @property
    def change_sets(self) -> Tuple[ChangeSet, ...]:
        return self._change_sets

    def resolve_key(self, key: KeyLike) -> EntityKey:
        """
        Parse ``key`` and check that it exists in this snapshot.

        Raises:
            InvalidParameter: If the key is malformed
            EntityNotFound: If the key is not part of the snapshot
        """
        parsed = EntityKey.parse(key)
        if parsed not in self._entities:
            raise EntityNotFound(parsed)
        return parsed

    def has_entity(self, key: KeyLike) -> bool:
        try:
            self.resolve_key(key)
        except (EntityNotFound, InvalidParameter):
            return False
        return True

    def get_entity(self, key: KeyLike) -> Entity:
        """
        Get one entity by key.

        Args:
            key: Key string or EntityKey

        Returns:
            The entity

        Raises:
            EntityNotFound: If the key is absent from the snapshot
        """
        return self._entities[self.resolve_key(key)]

    def list_entities(self, entity_type: Optional[Union[str, EntityType]] = None,
                      language: Optional[Union[str, Language]] = None) -> List[Entity]:
        """
        List entities in key order, optionally filtered by type and language.

        Raw filter values are normalized the same way extractor records are,
        so ``entity_type='fn'`` matches functions.
        """
        lang = normalize_language(language) if language else None
        etype = normalize_entity_type(entity_type, lang) if entity_type else None
        return [
            self._entities[key]
            for key in self.index.entity_keys
            if (etype is None or key.entity_type == etype)
            and (lang is None or key.language == lang)
        ]

    def list_edges(self) -> List[Edge]:
        """List all edges sorted by (source, target, relation)."""
        return list(self._edges)

    @cached_property
    def files(self) -> Mapping[str, Tuple[EntityKey, ...]]:
        """In-repository file paths mapped to the keys of their entities."""
        by_file: Dict[str, List[EntityKey]] = {}
        for key in self.index.entity_keys:
            entity = self._entities[key]
            if not entity.is_external:
                by_file.setdefault(entity.file_path, []).append(key)
        return MappingProxyType({path: tuple(keys) for path, keys in by_file.items()})

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the snapshot to JSON-compatible data."""
        return {
            'snapshot_id': self.snapshot_id,
            'created_at': self.created_at,
            'generation': self.generation,
            'entities': [self._entities[key].to_dict() for key in self.index.entity_keys],
            'edges': [edge.to_dict() for edge in self._edges],
            'change_sets': [change.to_dict() for change in self._change_sets],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Snapshot':
        """
        Rebuild a snapshot from data produced by ``to_dict``.

        The data goes through a SnapshotBuilder, so every invariant is
        checked again, and the content hash must match the stored id.

        Raises:
            StorageError: If the data is malformed or fails validation
        """
        try:
            builder = SnapshotBuilder(generation=int(data.get('generation', 0)),
                                      materialize_external=False)
            builder.put_entities(
                Entity(EntityKey.parse(item['key']), item['file_path'], item.get('metadata') or {})
                for item in data.get('entities', [])
            )
            builder.put_edges(
                Edge(EntityKey.parse(item['source']), EntityKey.parse(item['target']),
                     item.get('relation', 'calls'))
                for item in data.get('edges', [])
            )
            builder.put_change_sets(
                ChangeSet.create(item['id'], item.get('files', []))
                for item in data.get('change_sets', [])
            )
            snapshot = builder.commit(created_at=data.get('created_at'))
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Malformed snapshot data: {e}") from e

        stored_id = data.get('snapshot_id')
        if stored_id and stored_id != snapshot.snapshot_id:
            raise StorageError(
                f"Snapshot checksum mismatch: stored {stored_id}, computed {snapshot.snapshot_id}"
            )
        return snapshot


class SnapshotBuilder:
    """
    Stages one indexing run and commits it as a single Snapshot.

    Entities may be re-put with identical content (idempotent); a different
    entity under an existing key is rejected. Edges whose endpoints are
    missing are checked at commit time, once every batch has arrived.
    """

    def __init__(self, generation: int = 0, materialize_external: bool = True):
        """
        Initialize an empty builder.

        Args:
            generation: Generation number stamped on the committed snapshot
            materialize_external: Create sentinel entities for external edge
                endpoints that were never put explicitly
        """
        self.generation = generation
        self.materialize_external = materialize_external
        self._entities: Dict[EntityKey, Entity] = {}
        self._edges = set()
        self._change_sets: Dict[str, ChangeSet] = {}
        self._committed = False

    def _check_open(self) -> None:
        if self._committed:
            raise StorageError("Snapshot builder has already been committed")

    def put_entities(self, batch: Iterable[Entity]) -> int:
        """
        Stage a batch of entities.

        Returns:
            Number of entities in the batch

        Raises:
            SnapshotIntegrityError: If an entity conflicts with a staged one
        """
        self._check_open()
        count = 0
        for entity in batch:
            if not isinstance(entity, Entity):
                raise InvalidParameter(f"Expected Entity, got {type(entity).__name__}")
            existing = self._entities.get(entity.key)
            if existing is not None and existing != entity:
                raise SnapshotIntegrityError(f"Conflicting entities for key '{entity.key}'")
            self._entities[entity.key] = entity
            count += 1
        return count

    def put_edges(self, batch: Iterable[Edge]) -> int:
        """Stage a batch of edges. Exact duplicates collapse into one edge."""
        self._check_open()
        count = 0
        for edge in batch:
            if not isinstance(edge, Edge):
                raise InvalidParameter(f"Expected Edge, got {type(edge).__name__}")
            if not edge.relation:
                raise InvalidParameter(f"Edge {edge.source} -> {edge.target} has no relation")
            self._edges.add(edge)
            count += 1
        return count

    def put_change_sets(self, batch: Iterable[ChangeSet]) -> int:
        self._check_open()
        count = 0
        for change in batch:
            self._change_sets[change.change_id] = change
            count += 1
        return count

    def commit(self, created_at: Optional[str] = None) -> Snapshot:
        """
        Validate the staged data and produce the immutable snapshot.

        Args:
            created_at: Creation timestamp to keep (used when reloading);
                defaults to the current UTC time

        Returns:
            The committed Snapshot

        Raises:
            SnapshotIntegrityError: If an edge references a missing entity
        """
        self._check_open()

        entities = dict(self._entities)
        missing = set()
        materialized = 0
        for edge in self._edges:
            for key in (edge.source, edge.target):
                if key in entities:
                    continue
                if key.is_external and self.materialize_external:
                    entities[key] = Entity.sentinel_for(key)
                    materialized += 1
                else:
                    missing.add(key)

        if missing:
            quoted = ', '.join(str(key) for key in sorted(missing)[:_MAX_REPORTED])
            raise SnapshotIntegrityError(
                f"{len(missing)} edge endpoint(s) missing from the entity set: {quoted}"
            )
        if materialized:
            logger.warning(f"Materialized {materialized} external sentinel entities referenced only by edges")

        edges = tuple(sorted(self._edges))
        change_sets = tuple(self._change_sets[cid] for cid in sorted(self._change_sets))
        snapshot = Snapshot(
            entities=entities,
            edges=edges,
            change_sets=change_sets,
            snapshot_id=compute_snapshot_id(entities, edges, change_sets),
            created_at=created_at or datetime.now(timezone.utc).isoformat(),
            generation=self.generation,
        )
        self._committed = True
        self._entities.clear()
        self._edges.clear()
        self._change_sets.clear()

        logger.info(f"Committed snapshot {snapshot.snapshot_id} (generation {self.generation}): "
                    f"{snapshot.entity_count} entities, {snapshot.edge_count} edges, "
                    f"{len(change_sets)} change sets")
        return snapshot


def compute_snapshot_id(entities: Mapping[EntityKey, Entity], edges: Tuple[Edge, ...],
                        change_sets: Tuple[ChangeSet, ...]) -> str:
    """Content hash identifying a snapshot (first 16 hex digits of SHA-256)."""
    digest = hashlib.sha256()
    for key in sorted(entities):
        entity = entities[key]
        metadata = json.dumps(dict(entity.metadata), sort_keys=True, default=str)
        digest.update(f"E|{key}|{entity.file_path}|{metadata}\n".encode('utf-8'))
    for edge in edges:
        digest.update(f"R|{edge.source}|{edge.target}|{edge.relation}\n".encode('utf-8'))
    for change in change_sets:
        digest.update(f"C|{change.change_id}|{sorted(change.files)}\n".encode('utf-8'))
    return digest.hexdigest()[:16]
