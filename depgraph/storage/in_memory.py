"""
In-Memory Snapshot Storage Module

This module provides an in-process storage backend that keeps the most
recently saved snapshot. It is used for tests and for servers that index
on startup and do not need durability.
"""

import logging
import threading
from typing import Optional

from depgraph.storage.snapshot import Snapshot

# Set up logging
logger = logging.getLogger(__name__)


class InMemoryGraphStorage:
    """
    Keeps the last saved snapshot in memory.
    """

    def __init__(self):
        """Initialize an empty in-memory storage."""
        self._snapshot: Optional[Snapshot] = None
        self._lock = threading.Lock()

    def save_snapshot(self, snapshot: Snapshot) -> None:
        """
        Store a committed snapshot, replacing the previous one.

        Args:
            snapshot: The snapshot to keep
        """
        with self._lock:
            self._snapshot = snapshot
        logger.info(f"Stored snapshot {snapshot.snapshot_id} in memory")

    def load_snapshot(self) -> Optional[Snapshot]:
        """Return the stored snapshot, or None if nothing was saved yet."""
        with self._lock:
            return self._snapshot

    def describe(self) -> str:
        return "memory"
