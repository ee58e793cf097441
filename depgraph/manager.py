"""
Dependency Graph Manager Module

This module provides a manager that owns the currently served snapshot.
Indexing runs build a new snapshot off to the side, persist it, and only
then swap it in; queries grab the current snapshot once and work on it
without any further locking.
"""

import logging
import threading
from typing import Any, Dict, Iterable, Optional, Union

from depgraph.errors import NoSnapshotLoaded, StorageError
from depgraph.ingest import DEFAULT_BATCH_SIZE, Record, read_records, stage_records
from depgraph.storage.in_memory import InMemoryGraphStorage
from depgraph.storage.json_storage import JSONGraphStorage
from depgraph.storage.snapshot import Snapshot, SnapshotBuilder

# Set up logging
logger = logging.getLogger(__name__)


class DependencyGraphManager:
    """
    Manages the served dependency graph snapshot.

    This class serves as the coordinator between record ingestion, storage
    and the query surfaces. The current-snapshot pointer and the generation
    counter are the only mutable state, and both are guarded by one lock.
    """

    def __init__(self, storage: Union[InMemoryGraphStorage, JSONGraphStorage],
                 batch_size: int = DEFAULT_BATCH_SIZE):
        """
        Initialize the dependency graph manager.

        Args:
            storage: An instance of InMemoryGraphStorage or JSONGraphStorage to store the snapshot
            batch_size: Number of records converted and staged per batch
        """
        self.storage = storage
        self.batch_size = batch_size
        self._current: Optional[Snapshot] = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def has_snapshot(self) -> bool:
        with self._lock:
            return self._current is not None

    def current(self) -> Snapshot:
        """
        Get the snapshot currently being served.

        Returns:
            The current Snapshot

        Raises:
            NoSnapshotLoaded: If nothing has been indexed or loaded yet
        """
        with self._lock:
            snapshot = self._current
        if snapshot is None:
            raise NoSnapshotLoaded()
        return snapshot

    def _swap(self, snapshot: Snapshot) -> None:
        with self._lock:
            previous = self._current
            self._current = snapshot
            self._generation = max(self._generation, snapshot.generation)
        logger.info(f"Serving snapshot {snapshot.snapshot_id} (generation {snapshot.generation}), "
                    f"replacing {previous.snapshot_id if previous else 'nothing'}")

    def _next_generation(self) -> int:
        with self._lock:
            return self._generation + 1

    def load(self) -> Optional[Snapshot]:
        """
        Load the persisted snapshot from storage and start serving it.

        Returns:
            The loaded Snapshot, or None if storage holds no snapshot

        Raises:
            StorageError: If the stored snapshot cannot be read or validated
        """
        try:
            snapshot = self.storage.load_snapshot()
        except StorageError as e:
            logger.error(f"Failed to load snapshot from {self.storage.describe()}: {e}")
            raise
        if snapshot is None:
            logger.info(f"No snapshot stored in {self.storage.describe()}")
            return None
        self._swap(snapshot)
        return snapshot

    def index_records(self, records: Iterable[Record]) -> Snapshot:
        """
        Run one indexing pass over extractor records.

        The new snapshot is committed and persisted before it replaces the
        current one. If any step fails, the previous snapshot keeps serving.

        Args:
            records: (kind, record) pairs as produced by depgraph.ingest

        Returns:
            The newly served Snapshot

        Raises:
            StorageError: If the records violate snapshot invariants or the
                snapshot cannot be persisted
            InvalidParameter: If a record is malformed
        """
        builder = SnapshotBuilder(generation=self._next_generation())
        try:
            counts = stage_records(builder, records, self.batch_size)
            logger.info(f"Staged {counts['entities']} entities, {counts['edges']} edges and "
                        f"{counts['change_sets']} change sets in {counts['batches']} batches")
            snapshot = builder.commit()
            self.storage.save_snapshot(snapshot)
        except StorageError as e:
            logger.error(f"Indexing failed, keeping the previous snapshot: {e}")
            raise
        self._swap(snapshot)
        return snapshot

    def index_file(self, path: str) -> Snapshot:
        """Index the extractor records stored in ``path``."""
        logger.info(f"Indexing records from {path}")
        return self.index_records(read_records(path))

    def status(self) -> Dict[str, Any]:
        """Describe the manager state for health reporting."""
        with self._lock:
            snapshot = self._current
            generation = self._generation
        return {
            'storage': self.storage.describe(),
            'snapshot_loaded': snapshot is not None,
            'snapshot_id': snapshot.snapshot_id if snapshot else None,
            'generation': generation,
            'entity_count': snapshot.entity_count if snapshot else 0,
            'edge_count': snapshot.edge_count if snapshot else 0,
        }
