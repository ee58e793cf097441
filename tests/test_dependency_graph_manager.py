"""
Tests for the DependencyGraphManager: indexing, loading and snapshot swaps.
"""

import os
import sys
import json
import tempfile
import threading
import unittest
import shutil
from pathlib import Path
from unittest.mock import MagicMock

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from depgraph.errors import InvalidParameter, NoSnapshotLoaded, SnapshotIntegrityError, StorageError
from depgraph.ingest import records_from_document
from depgraph.manager import DependencyGraphManager
from depgraph.storage.in_memory import InMemoryGraphStorage
from depgraph.storage.json_storage import JSONGraphStorage


def entity_record(name, path='src/lib.rs', start=1, end=10):
    return {'language': 'rust', 'entity_type': 'fn', 'name': name,
            'file_path': path, 'line_range': [start, end]}


def key_of(name, path_token='src_lib.rs', start=1, end=10):
    return f'rust:function:{name}:{path_token}:{start}-{end}'


def document(*names, edges=()):
    entities = [entity_record(name, start=i * 20 + 1, end=i * 20 + 10) for i, name in enumerate(names)]
    edge_records = [{'source': source, 'target': target} for source, target in edges]
    return records_from_document({'entities': entities, 'edges': edge_records})


class TestDependencyGraphManager(unittest.TestCase):
    """Tests for the DependencyGraphManager class."""

    def setUp(self):
        self.storage = InMemoryGraphStorage()
        self.manager = DependencyGraphManager(self.storage)

    def test_no_snapshot_yet(self):
        self.assertFalse(self.manager.has_snapshot)
        with self.assertRaises(NoSnapshotLoaded) as ctx:
            self.manager.current()
        self.assertIsInstance(ctx.exception, StorageError)
        self.assertIsNone(self.manager.load())

    def test_index_records_swaps_and_persists(self):
        snapshot = self.manager.index_records(document('a', 'b', edges=[(key_of('a'), key_of('b', start=21, end=30))]))
        self.assertIs(self.manager.current(), snapshot)
        self.assertIs(self.storage.load_snapshot(), snapshot)
        self.assertEqual(snapshot.generation, 1)
        self.assertEqual(self.manager.generation, 1)

    def test_generations_increase(self):
        first = self.manager.index_records(document('a'))
        second = self.manager.index_records(document('a', 'b'))
        self.assertEqual((first.generation, second.generation), (1, 2))
        self.assertIs(self.manager.current(), second)

    def test_failed_index_keeps_previous_snapshot(self):
        """An integrity failure leaves the served snapshot untouched."""
        good = self.manager.index_records(document('a'))
        broken = document('a', edges=[(key_of('a'), key_of('missing', start=50, end=60))])
        with self.assertLogs('depgraph.manager', level='ERROR'):
            with self.assertRaises(SnapshotIntegrityError):
                self.manager.index_records(broken)
        self.assertIs(self.manager.current(), good)

    def test_malformed_record_keeps_previous_snapshot(self):
        good = self.manager.index_records(document('a'))
        with self.assertRaises(InvalidParameter):
            self.manager.index_records([('entity', {'language': 'rust', 'name': 'x'})])
        self.assertIs(self.manager.current(), good)

    def test_persist_failure_keeps_previous_snapshot(self):
        good = self.manager.index_records(document('a'))
        self.storage.save_snapshot = MagicMock(side_effect=StorageError("disk full"))
        with self.assertRaises(StorageError):
            self.manager.index_records(document('a', 'b'))
        self.assertIs(self.manager.current(), good)

    def test_status(self):
        status = self.manager.status()
        self.assertFalse(status['snapshot_loaded'])
        self.manager.index_records(document('a', 'b'))
        status = self.manager.status()
        self.assertTrue(status['snapshot_loaded'])
        self.assertEqual(status['entity_count'], 2)
        self.assertEqual(status['storage'], 'memory')

    def test_readers_see_whole_snapshots(self):
        """Concurrent readers only ever observe fully committed snapshots."""
        self.manager.index_records(document('a'))
        sizes = {1, 2}
        seen = []
        errors = []

        def reader():
            for _ in range(200):
                snapshot = self.manager.current()
                count = snapshot.entity_count
                if count not in sizes or len(snapshot.list_entities()) != count:
                    errors.append(count)
                seen.append(count)

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for thread in threads:
            thread.start()
        for i in range(20):
            self.manager.index_records(document('a', 'b') if i % 2 == 0 else document('a'))
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(seen), 800)


class TestManagerWithJSONStorage(unittest.TestCase):
    """Tests for indexing into and loading from a JSON file."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.json_path = os.path.join(self.temp_dir, 'snapshot.json')

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_index_file_then_reload(self):
        records_path = os.path.join(self.temp_dir, 'records.json')
        with open(records_path, 'w') as f:
            json.dump({'entities': [entity_record('a'), entity_record('b', start=21, end=30)],
                       'edges': [{'source': key_of('a'), 'target': key_of('b', start=21, end=30)}]}, f)

        manager = DependencyGraphManager(JSONGraphStorage(self.json_path))
        indexed = manager.index_file(records_path)

        restarted = DependencyGraphManager(JSONGraphStorage(self.json_path))
        loaded = restarted.load()
        self.assertEqual(loaded.snapshot_id, indexed.snapshot_id)
        self.assertEqual(restarted.generation, 1)
        self.assertEqual(restarted.current().edge_count, 1)

    def test_corrupt_file_fails_load(self):
        with open(self.json_path, 'w') as f:
            f.write('not json')
        manager = DependencyGraphManager(JSONGraphStorage(self.json_path))
        with self.assertRaises(StorageError):
            manager.load()
        self.assertFalse(manager.has_snapshot)


if __name__ == '__main__':
    unittest.main()
