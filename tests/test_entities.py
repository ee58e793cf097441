"""
Tests for the entity model: keys, normalization and records.
"""

import sys
import unittest
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from depgraph.entities import (
    LANGUAGE_ENTITY_TYPES,
    ChangeSet,
    Edge,
    Entity,
    EntityKey,
    EntityType,
    ExternalLocation,
    Language,
    SourceLocation,
    normalize_entity_type,
    normalize_file_path,
    normalize_language,
    register_entity_type_alias,
    to_path_token,
)
from depgraph.errors import InvalidParameter


class TestEntityKey(unittest.TestCase):
    """Tests for the EntityKey format and parser."""

    def test_source_key_format(self):
        """A source key flattens the path and normalizes the raw type."""
        key = EntityKey.for_source('rust', 'fn', 'parse', 'src/parser.rs', 10, 42)
        self.assertEqual(str(key), 'rust:function:parse:src_parser.rs:10-42')
        self.assertEqual(key.language, Language.RUST)
        self.assertEqual(key.entity_type, EntityType.FUNCTION)
        self.assertEqual(key.line_range, (10, 42))
        self.assertFalse(key.is_external)

    def test_parse_round_trip(self):
        """Formatting then parsing yields an equal key."""
        key = EntityKey.for_source('python', 'def', 'load', 'pkg/io/loader.py', 3, 9)
        parsed = EntityKey.parse(str(key))
        self.assertEqual(parsed, key)
        self.assertEqual(hash(parsed), hash(key))
        self.assertIsInstance(parsed.location, SourceLocation)

    def test_external_key_with_colons_in_name(self):
        """Names may contain ':' and the external form parses to ExternalLocation."""
        key = EntityKey.external('rust', 'trait', 'std::fmt::Display')
        self.assertEqual(str(key), 'rust:trait:std::fmt::Display:unknown:0-0')

        parsed = EntityKey.parse('rust:trait:std::fmt::Display:unknown:0-0')
        self.assertEqual(parsed.name, 'std::fmt::Display')
        self.assertTrue(parsed.is_external)
        self.assertIsInstance(parsed.location, ExternalLocation)
        self.assertEqual(parsed, key)

    def test_parse_passes_keys_through(self):
        key = EntityKey.external('go', 'func', 'fmt.Println')
        self.assertIs(EntityKey.parse(key), key)

    def test_malformed_keys(self):
        """Every malformed form raises InvalidParameter."""
        malformed = [
            '',
            'rust:function:parse',
            'cobol:function:parse:src_a.rs:1-2',
            'rust:widget:parse:src_a.rs:1-2',
            'rust:function:parse:src_a.rs:5-2',
            'rust:function:parse:src_a.rs:1_2',
            'rust:function:parse:src_a.rs:' + '9' * 5000 + '-' + '9' * 5000,
            'rust:function:parse:src_a.rs:\u0663-\u0664',
            'rust:function:parse:unknown:1-2',
        ]
        for text in malformed:
            with self.subTest(text=text):
                with self.assertRaises(InvalidParameter):
                    EntityKey.parse(text)

    def test_invalid_parameter_is_value_error(self):
        with self.assertRaises(ValueError):
            EntityKey.parse('not-a-key')

    def test_unknown_path_reserved_for_externals(self):
        with self.assertRaises(InvalidParameter):
            SourceLocation('unknown', 1, 2)

    def test_equality_hash_and_ordering(self):
        """Keys built separately compare, hash and sort by their text."""
        first = EntityKey.for_source('rust', 'function', 'b', 'src/a.rs', 1, 2)
        second = EntityKey.parse('rust:function:b:src_a.rs:1-2')
        other = EntityKey.parse('rust:function:a:src_a.rs:1-2')

        self.assertEqual(len({first, second, other}), 2)
        self.assertEqual(sorted([first, other]), [other, first])
        self.assertLess(other, first)


class TestNormalization(unittest.TestCase):
    """Tests for language, entity type and path normalization."""

    def test_language_aliases(self):
        self.assertEqual(normalize_language('rs'), Language.RUST)
        self.assertEqual(normalize_language('C++'), Language.CPP)
        self.assertEqual(normalize_language(Language.GO), Language.GO)
        with self.assertRaises(InvalidParameter):
            normalize_language('cobol')

    def test_entity_type_tables(self):
        """Per-language constructs win over the common table."""
        self.assertEqual(normalize_entity_type('def', Language.PYTHON), EntityType.FUNCTION)
        self.assertEqual(normalize_entity_type('protocol', Language.SWIFT), EntityType.INTERFACE)
        self.assertEqual(normalize_entity_type('Struct'), EntityType.STRUCT)
        with self.assertRaises(InvalidParameter):
            normalize_entity_type('protocol')

    def test_register_entity_type_alias(self):
        saved = dict(LANGUAGE_ENTITY_TYPES)
        self.addCleanup(LANGUAGE_ENTITY_TYPES.update, saved)
        go_table = LANGUAGE_ENTITY_TYPES[Language.GO]

        register_entity_type_alias(Language.GO, 'Receiver_Fn', EntityType.METHOD)
        self.assertEqual(normalize_entity_type('receiver_fn', Language.GO), EntityType.METHOD)
        self.assertNotIn('receiver_fn', go_table)
        with self.assertRaises(InvalidParameter):
            normalize_entity_type('receiver_fn', Language.RUST)

    def test_registered_alias_is_restored(self):
        """Registrations made by other tests do not leak."""
        self.assertNotIn('receiver_fn', LANGUAGE_ENTITY_TYPES[Language.GO])

    def test_file_path_normalization(self):
        self.assertEqual(normalize_file_path('src\\parser\\mod.rs'), 'src/parser/mod.rs')
        self.assertEqual(normalize_file_path('./src/x.py'), 'src/x.py')
        for bad in ['', '/etc/passwd', 'C:/work/x.rs', '../outside.rs']:
            with self.subTest(path=bad):
                with self.assertRaises(InvalidParameter):
                    normalize_file_path(bad)

    def test_path_token(self):
        self.assertEqual(to_path_token('src/parser/mod.rs'), 'src_parser_mod.rs')


class TestEntityRecords(unittest.TestCase):
    """Tests for Entity, Edge and ChangeSet."""

    def test_create_source_entity(self):
        entity = Entity.create('rust', 'struct', 'Config', file_path='src/config.rs',
                               line_range=(10, 19), metadata={'visibility': 'pub'})
        self.assertFalse(entity.is_external)
        self.assertEqual(entity.file_path, 'src/config.rs')
        self.assertEqual(entity.line_count, 10)
        self.assertEqual(entity.metadata['visibility'], 'pub')

    def test_create_without_path_is_external(self):
        """A missing or 'unknown' file path yields an external sentinel."""
        for path in (None, 'unknown'):
            with self.subTest(path=path):
                entity = Entity.create('rust', 'trait', 'serde::Serialize', file_path=path)
                self.assertTrue(entity.is_external)
                self.assertEqual(entity.file_path, 'unknown')
                self.assertEqual(entity.line_count, 0)
                self.assertEqual(str(entity.key), 'rust:trait:serde::Serialize:unknown:0-0')

    def test_external_with_line_range_rejected(self):
        with self.assertRaises(InvalidParameter):
            Entity.create('rust', 'trait', 'Send', file_path='unknown', line_range=(3, 4))

    def test_metadata_is_read_only(self):
        entity = Entity.create('python', 'class', 'Loader', file_path='a.py', line_range=(1, 2),
                               metadata={'doc': 'x'})
        with self.assertRaises(TypeError):
            entity.metadata['doc'] = 'y'

    def test_sentinel_requires_external_key(self):
        key = EntityKey.for_source('rust', 'function', 'f', 'src/a.rs', 1, 2)
        with self.assertRaises(InvalidParameter):
            Entity.sentinel_for(key)

    def test_to_dict(self):
        entity = Entity.create('go', 'func', 'Serve', file_path='cmd/server.go', line_range=(4, 8))
        data = entity.to_dict()
        self.assertEqual(data['key'], 'go:function:Serve:cmd_server.go:4-8')
        self.assertEqual(data['line_range'], [4, 8])
        self.assertFalse(data['is_external'])

    def test_edge_ordering_and_self_loop(self):
        a = EntityKey.parse('rust:function:a:src_a.rs:1-2')
        b = EntityKey.parse('rust:function:b:src_a.rs:3-4')
        edges = [Edge(b, a), Edge(a, b, 'uses'), Edge(a, b)]
        self.assertEqual(sorted(edges), [Edge(a, b), Edge(a, b, 'uses'), Edge(b, a)])
        self.assertTrue(Edge(a, a).is_self_loop)
        self.assertEqual(Edge(a, b).to_dict()['relation'], 'calls')

    def test_change_set(self):
        change = ChangeSet.create(42, ['src\\b.rs', 'src/a.rs'])
        self.assertEqual(change.change_id, '42')
        self.assertEqual(change.to_dict(), {'id': '42', 'files': ['src/a.rs', 'src/b.rs']})


if __name__ == '__main__':
    unittest.main()
