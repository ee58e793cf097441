"""
JSON Snapshot Storage Module

This module provides a JSON file-based storage backend for snapshots.
Snapshots are written atomically (temporary file plus rename) while holding
a cross-process lock file, so a reader never observes a partially written
snapshot and a crash during a save leaves the previous file intact.
"""

import os
import json
import logging
import threading
import time
import random
from typing import Optional

from depgraph.errors import StorageError
from depgraph.storage.snapshot import Snapshot

# Set up logging
logger = logging.getLogger(__name__)

# Lock files older than this are considered abandoned
STALE_LOCK_SECONDS = 60


class JSONGraphStorage:
    """
    A JSON file-based storage backend for committed snapshots.

    The file holds exactly one snapshot. Saving replaces it atomically;
    loading rebuilds and re-validates the snapshot from the file.
    """

    def __init__(self, json_path: str):
        """
        Initialize the JSON storage.

        Args:
            json_path: Path to the JSON file where the snapshot is stored
        """
        self.json_path = json_path
        self._lock = threading.RLock()  # Reentrant lock for thread safety
        self._lock_file = f"{json_path}.lock"

    def describe(self) -> str:
        return self.json_path

    def exists(self) -> bool:
        return os.path.exists(self.json_path)

    def load_snapshot(self) -> Optional[Snapshot]:
        """
        Load the snapshot from the JSON file.

        Returns:
            The stored Snapshot, or None if the file does not exist yet

        Raises:
            StorageError: If the file cannot be read, decoded or validated
        """
        with self._lock:
            if not os.path.exists(self.json_path):
                logger.info(f"JSON file {self.json_path} doesn't exist yet - no snapshot to load")
                return None

            lock_acquired = self._acquire_file_lock()
            if not lock_acquired:
                raise StorageError(f"Could not acquire lock to read {self.json_path}")

            try:
                with open(self.json_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                logger.error(f"Error decoding JSON from {self.json_path}: {e}")
                raise StorageError(f"Corrupt snapshot file {self.json_path}: {e}") from e
            except (IOError, OSError) as e:
                logger.error(f"Error loading snapshot from {self.json_path}: {e}")
                raise StorageError(f"Could not read snapshot file {self.json_path}: {e}") from e
            finally:
                self._release_file_lock()

            if not isinstance(data, dict):
                raise StorageError(f"Snapshot file {self.json_path} does not contain an object")

            snapshot = Snapshot.from_dict(data)
            logger.info(f"Loaded snapshot {snapshot.snapshot_id} from {self.json_path} - "
                        f"{snapshot.entity_count} entities, {snapshot.edge_count} edges")
            return snapshot

    def save_snapshot(self, snapshot: Snapshot) -> None:
        """
        Save a snapshot to the JSON file.

        The data is written to a temporary file first and then renamed over
        the target, which is atomic on POSIX and Windows.

        Raises:
            StorageError: If the lock cannot be acquired or the write fails
        """
        with self._lock:
            directory = os.path.dirname(os.path.abspath(self.json_path))
            try:
                os.makedirs(directory, exist_ok=True)
            except OSError as e:
                raise StorageError(f"Could not create storage directory {directory}: {e}") from e

            lock_acquired = self._acquire_file_lock()
            if not lock_acquired:
                raise StorageError(f"Could not acquire lock to save snapshot to {self.json_path}")

            temp_file = f"{self.json_path}.tmp"
            try:
                with open(temp_file, 'w', encoding='utf-8') as f:
                    json.dump(snapshot.to_dict(), f, indent=2)

                # Rename the temp file over the real one (atomic operation)
                os.replace(temp_file, self.json_path)
                logger.info(f"Saved snapshot {snapshot.snapshot_id} to {self.json_path}")
            except (IOError, OSError, TypeError, ValueError) as e:
                logger.error(f"Error saving snapshot to {self.json_path}: {e}")
                if os.path.exists(temp_file):
                    os.remove(temp_file)
                raise StorageError(f"Could not save snapshot to {self.json_path}: {e}") from e
            finally:
                self._release_file_lock()

    def _acquire_file_lock(self, max_attempts: int = 10, delay_base: float = 0.1) -> bool:
        """
        Acquire the cross-process lock file.

        A temporary file carrying the process ID is hard-linked to the lock
        path, which fails if another process holds the lock. Retries use
        exponential backoff with jitter, and a lock older than
        STALE_LOCK_SECONDS is broken.

        Args:
            max_attempts: Maximum number of attempts to acquire the lock
            delay_base: Base delay between attempts (increased exponentially)

        Returns:
            True if the lock was acquired, False otherwise
        """
        pid = os.getpid()
        temp_lock_file = f"{self._lock_file}.{pid}.{threading.get_ident()}"
        lock_dir = os.path.dirname(os.path.abspath(temp_lock_file))

        for attempt in range(max_attempts):
            try:
                os.makedirs(lock_dir, exist_ok=True)
                with open(temp_lock_file, 'w') as f:
                    f.write(str(pid))

                try:
                    os.link(temp_lock_file, self._lock_file)
                    logger.debug(f"Acquired file lock: {self._lock_file}")
                    return True
                except FileExistsError:
                    if os.path.exists(self._lock_file):
                        lock_age = time.time() - os.path.getmtime(self._lock_file)
                        if lock_age > STALE_LOCK_SECONDS:
                            logger.warning(f"Found stale lock file (age: {lock_age:.1f}s). Breaking lock.")
                            os.remove(self._lock_file)
                            continue

                delay = delay_base * (2 ** attempt) * (0.5 + random.random())
                logger.debug(f"Failed to acquire lock, retry in {delay:.2f}s (attempt {attempt+1}/{max_attempts})")
                time.sleep(delay)
            except OSError as e:
                logger.error(f"Error acquiring file lock {self._lock_file}: {e}")
                return False
            finally:
                if os.path.exists(temp_lock_file):
                    os.remove(temp_lock_file)

        logger.error(f"Failed to acquire file lock after {max_attempts} attempts")
        return False

    def _release_file_lock(self) -> None:
        """Release the file lock."""
        try:
            if os.path.exists(self._lock_file):
                os.remove(self._lock_file)
                logger.debug(f"Released file lock: {self._lock_file}")
        except OSError as e:
            logger.error(f"Error releasing file lock: {e}")
