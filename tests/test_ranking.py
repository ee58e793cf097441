"""
Tests for hotspot ranking and fuzzy search.
"""

import sys
import unittest
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from depgraph.analysis.ranking import complexity_hotspots
from depgraph.analysis.search import fuzzy_search, match_score
from depgraph.errors import InvalidParameter

from graph_fixtures import service_graph, trait_with_callers


class TestComplexityHotspots(unittest.TestCase):
    """Tests for ranking by inbound edges."""

    def setUp(self):
        self.snapshot, self.entities = service_graph()

    def test_most_depended_on_first(self):
        hotspots = complexity_hotspots(self.snapshot, 1)
        self.assertEqual(len(hotspots), 1)
        self.assertEqual(hotspots[0]['name'], 'parse')
        self.assertEqual(hotspots[0]['inbound_count'], 2)
        self.assertEqual(hotspots[0]['outbound_count'], 2)
        self.assertEqual(hotspots[0]['rank'], 1)

    def test_ties_break_by_key(self):
        """Entities with equal inbound counts follow lexical key order."""
        names = [item['name'] for item in complexity_hotspots(self.snapshot, 5)]
        self.assertEqual(names, ['parse', 'cycle_a', 'cycle_b', 'tokenize', 'std::fmt::Display'])

    def test_externals_are_flagged(self):
        hotspots = complexity_hotspots(self.snapshot, 10)
        flagged = [item['name'] for item in hotspots if item['is_external']]
        self.assertEqual(flagged, ['std::fmt::Display'])
        self.assertEqual(len(hotspots), self.snapshot.entity_count)

    def test_stable_ordering(self):
        self.assertEqual(complexity_hotspots(self.snapshot, 7), complexity_hotspots(self.snapshot, 7))

    def test_trait_with_many_callers_ranks_first(self):
        snapshot, trait = trait_with_callers(12, 4)
        self.assertEqual(complexity_hotspots(snapshot, 3)[0]['entity'], str(trait.key))

    def test_invalid_top(self):
        for top in (0, -3, 2.5, True):
            with self.subTest(top=top):
                with self.assertRaises(InvalidParameter):
                    complexity_hotspots(self.snapshot, top)


class TestFuzzySearch(unittest.TestCase):
    """Tests for entity name search."""

    def setUp(self):
        self.snapshot, self.entities = service_graph()

    def test_match_kinds(self):
        self.assertEqual(match_score('parse', 'parse'), (1.0, 'exact'))
        self.assertEqual(match_score('PARSE', 'parse'), (1.0, 'exact'))
        self.assertEqual(match_score('par', 'parse'), (0.9, 'prefix'))
        self.assertEqual(match_score('ken', 'tokenize'), (0.79, 'substring'))
        self.assertEqual(match_score('zzz', 'parse'), (0.0, 'none'))

    def test_approximate_match(self):
        score, kind = match_score('parze', 'parse')
        self.assertEqual(kind, 'approximate')
        self.assertLess(score, 0.8)

    def test_exact_ranks_first(self):
        result = fuzzy_search(self.snapshot, 'parse')
        self.assertEqual(result['entities'][0]['name'], 'parse')
        self.assertEqual(result['entities'][0]['match'], 'exact')
        self.assertEqual(result['entities'][0]['score'], 1.0)

    def test_limit_pages_results(self):
        result = fuzzy_search(self.snapshot, 'cycle', limit=1)
        self.assertEqual(result['total_matches'], 2)
        self.assertEqual(result['returned'], 1)
        self.assertEqual(result['entities'][0]['name'], 'cycle_a')

    def test_no_match_is_empty(self):
        result = fuzzy_search(self.snapshot, 'qqqqqqqq')
        self.assertEqual(result['total_matches'], 0)
        self.assertEqual(result['entities'], [])

    def test_external_names_are_searchable(self):
        result = fuzzy_search(self.snapshot, 'Display')
        self.assertEqual(result['entities'][0]['name'], 'std::fmt::Display')
        self.assertTrue(result['entities'][0]['is_external'])

    def test_invalid_query_and_limit(self):
        with self.assertRaises(InvalidParameter):
            fuzzy_search(self.snapshot, '   ')
        with self.assertRaises(InvalidParameter):
            fuzzy_search(self.snapshot, 'parse', limit=0)


if __name__ == '__main__':
    unittest.main()
