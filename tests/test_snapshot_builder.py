"""
Tests for snapshot building, validation and serialization.
"""

import sys
import unittest
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from depgraph.entities import ChangeSet, Edge, Entity, EntityKey
from depgraph.errors import (
    EntityNotFound,
    InvalidParameter,
    SnapshotIntegrityError,
    StorageError,
)
from depgraph.storage.snapshot import Snapshot, SnapshotBuilder

from graph_fixtures import build_snapshot, calls, make_entity


class TestSnapshotBuilder(unittest.TestCase):
    """Tests for the SnapshotBuilder commit path."""

    def setUp(self):
        self.main = make_entity('main', file_path='src/main.rs', start=1)
        self.parse = make_entity('parse', file_path='src/parser.rs', start=1)
        self.lex = make_entity('lex', file_path='src/parser.rs', start=20)

    def test_commit_in_batches(self):
        """Batches accumulate and become visible only at commit."""
        builder = SnapshotBuilder(generation=3)
        builder.put_entities([self.main])
        builder.put_entities([self.parse, self.lex])
        builder.put_edges([calls(self.main, self.parse)])
        builder.put_edges([calls(self.parse, self.lex)])
        snapshot = builder.commit()

        self.assertEqual(snapshot.entity_count, 3)
        self.assertEqual(snapshot.edge_count, 2)
        self.assertEqual(snapshot.generation, 3)
        self.assertEqual(len(snapshot.snapshot_id), 16)

    def test_duplicate_edges_collapse_and_sort(self):
        snapshot = build_snapshot(
            [self.main, self.parse, self.lex],
            [calls(self.parse, self.lex), calls(self.main, self.parse), calls(self.main, self.parse)],
        )
        self.assertEqual(snapshot.edge_count, 2)
        edges = snapshot.list_edges()
        self.assertEqual(edges, sorted(edges))

    def test_missing_source_endpoint_rejected(self):
        """An edge into an in-repo entity that was never put fails the commit."""
        builder = SnapshotBuilder()
        builder.put_entities([self.main])
        builder.put_edges([calls(self.main, self.parse)])
        with self.assertRaises(SnapshotIntegrityError) as ctx:
            builder.commit()
        self.assertIsInstance(ctx.exception, StorageError)
        self.assertIn(str(self.parse.key), str(ctx.exception))

    def test_external_endpoint_materialized(self):
        """External endpoints that were never put become sentinel entities."""
        display = EntityKey.external('rust', 'trait', 'std::fmt::Display')
        builder = SnapshotBuilder()
        builder.put_entities([self.main])
        builder.put_edges([Edge(self.main.key, display, 'implements')])
        with self.assertLogs('depgraph.storage.snapshot', level='WARNING'):
            snapshot = builder.commit()

        sentinel = snapshot.get_entity(display)
        self.assertTrue(sentinel.is_external)
        self.assertEqual(sentinel.file_path, 'unknown')

    def test_external_endpoint_rejected_without_materialization(self):
        display = EntityKey.external('rust', 'trait', 'std::fmt::Display')
        builder = SnapshotBuilder(materialize_external=False)
        builder.put_entities([self.main])
        builder.put_edges([Edge(self.main.key, display)])
        with self.assertRaises(SnapshotIntegrityError):
            builder.commit()

    def test_conflicting_entities(self):
        """Re-putting an identical entity is fine; a different one is not."""
        builder = SnapshotBuilder()
        builder.put_entities([self.main, self.main])
        changed = Entity(self.main.key, self.main.file_path, {'visibility': 'pub'})
        with self.assertRaises(SnapshotIntegrityError):
            builder.put_entities([changed])

    def test_rejects_foreign_objects(self):
        builder = SnapshotBuilder()
        with self.assertRaises(InvalidParameter):
            builder.put_entities([{'name': 'main'}])
        with self.assertRaises(InvalidParameter):
            builder.put_edges([('a', 'b')])

    def test_builder_is_single_use(self):
        builder = SnapshotBuilder()
        builder.put_entities([self.main])
        builder.commit()
        with self.assertRaises(StorageError):
            builder.commit()
        with self.assertRaises(StorageError):
            builder.put_entities([self.parse])

    def test_snapshot_id_is_content_hash(self):
        """Same content in any order gives the same id; other content does not."""
        first = build_snapshot([self.main, self.parse], [calls(self.main, self.parse)])
        second = build_snapshot([self.parse, self.main], [calls(self.main, self.parse)])
        third = build_snapshot([self.main, self.parse])
        self.assertEqual(first.snapshot_id, second.snapshot_id)
        self.assertNotEqual(first.snapshot_id, third.snapshot_id)


class TestSnapshot(unittest.TestCase):
    """Tests for snapshot reads and serialization."""

    def setUp(self):
        self.func = make_entity('run', file_path='app/run.py', language='python', entity_type='def')
        self.cls = make_entity('Runner', file_path='app/run.py', start=20,
                               language='python', entity_type='class')
        self.trait = make_entity('Iterator', file_path=None, entity_type='trait')
        self.snapshot = build_snapshot(
            [self.func, self.cls, self.trait],
            [calls(self.cls, self.func), Edge(self.cls.key, self.trait.key, 'implements')],
            [ChangeSet.create('c1', ['app/run.py', 'README.md'])],
            generation=2,
        )

    def test_get_entity(self):
        self.assertEqual(self.snapshot.get_entity(str(self.func.key)), self.func)
        self.assertTrue(self.snapshot.has_entity(self.cls.key))
        self.assertFalse(self.snapshot.has_entity('garbage'))

    def test_get_missing_entity(self):
        missing = 'python:function:nope:app_run.py:1-2'
        with self.assertRaises(EntityNotFound) as ctx:
            self.snapshot.get_entity(missing)
        self.assertIsInstance(ctx.exception, KeyError)
        self.assertEqual(ctx.exception.error_type, 'NotFound')

    def test_list_entities_filters(self):
        """Filters accept raw constructs and aliases."""
        functions = self.snapshot.list_entities(entity_type='def', language='py')
        self.assertEqual(functions, [self.func])
        self.assertEqual(len(self.snapshot.list_entities(language='rust')), 1)
        self.assertEqual(len(self.snapshot.list_entities()), 3)

    def test_files_excludes_externals(self):
        self.assertEqual(set(self.snapshot.files), {'app/run.py'})
        self.assertEqual(len(self.snapshot.files['app/run.py']), 2)

    def test_dict_round_trip(self):
        restored = Snapshot.from_dict(self.snapshot.to_dict())
        self.assertEqual(restored.snapshot_id, self.snapshot.snapshot_id)
        self.assertEqual(restored.generation, 2)
        self.assertEqual(restored.created_at, self.snapshot.created_at)
        self.assertEqual(restored.list_edges(), self.snapshot.list_edges())
        self.assertEqual(restored.change_sets, self.snapshot.change_sets)

    def test_checksum_mismatch(self):
        data = self.snapshot.to_dict()
        data['snapshot_id'] = '0' * 16
        with self.assertRaises(StorageError):
            Snapshot.from_dict(data)

    def test_malformed_data(self):
        data = self.snapshot.to_dict()
        del data['entities'][0]['key']
        with self.assertRaises(StorageError):
            Snapshot.from_dict(data)


if __name__ == '__main__':
    unittest.main()
