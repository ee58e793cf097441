"""
Tests for the adjacency index built per snapshot.
"""

import sys
import unittest
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from depgraph.index import GraphIndex

from graph_fixtures import calls, make_entity


class TestGraphIndex(unittest.TestCase):
    """Tests for the GraphIndex class."""

    def setUp(self):
        self.a = make_entity('a', start=1)
        self.b = make_entity('b', start=20)
        self.c = make_entity('c', start=40)
        self.d = make_entity('d', start=60)
        edges = sorted([
            calls(self.a, self.b),
            calls(self.a, self.b, 'references'),
            calls(self.c, self.b),
            calls(self.b, self.d),
            calls(self.d, self.d),
        ])
        self.index = GraphIndex(sorted(e.key for e in (self.a, self.b, self.c, self.d)), edges)

    def test_callers_and_callees(self):
        """Adjacency keeps one entry per edge, in lexical order."""
        callers = self.index.callers(self.b.key)
        self.assertEqual([n.key for n in callers], [self.a.key, self.a.key, self.c.key])
        self.assertEqual({n.relation for n in callers}, {'calls', 'references'})
        self.assertEqual(self.index.callee_keys(self.a.key), [self.b.key])

    def test_distinct_keys(self):
        self.assertEqual(self.index.caller_keys(self.b.key), [self.a.key, self.c.key])

    def test_degrees(self):
        self.assertEqual(self.index.in_degree(self.b.key), 3)
        self.assertEqual(self.index.out_degree(self.a.key), 2)
        self.assertEqual(self.index.in_degree(self.a.key), 0)

    def test_unknown_key_has_no_neighbors(self):
        stranger = make_entity('stranger', start=100)
        self.assertEqual(self.index.callers(stranger.key), ())
        self.assertEqual(self.index.callee_keys(stranger.key), [])

    def test_neighbor_keys(self):
        self.assertEqual(self.index.neighbor_keys(self.b.key), [self.a.key, self.c.key, self.d.key])

    def test_self_loops(self):
        self.assertEqual(self.index.self_loops, frozenset({self.d.key}))

    def test_digraph_collapses_parallel_edges(self):
        graph = self.index.digraph
        self.assertEqual(graph.number_of_nodes(), 4)
        self.assertEqual(graph.number_of_edges(), 4)
        self.assertEqual(self.index.edge_count, 5)


if __name__ == '__main__':
    unittest.main()
