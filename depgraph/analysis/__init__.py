"""
Analysis package: traversal, ranking, search, clustering, context selection
and coupling queries over a committed snapshot.
"""

from depgraph.analysis.traversal import blast_radius, detect_cycles, forward_callees, reverse_callers
from depgraph.analysis.ranking import complexity_hotspots
from depgraph.analysis.search import fuzzy_search
from depgraph.analysis.clustering import semantic_clusters
from depgraph.analysis.context import smart_context
from depgraph.analysis.coupling import temporal_coupling
from depgraph.analysis.overview import overview

__all__ = [
    'blast_radius',
    'complexity_hotspots',
    'detect_cycles',
    'forward_callees',
    'fuzzy_search',
    'overview',
    'reverse_callers',
    'semantic_clusters',
    'smart_context',
    'temporal_coupling',
]
