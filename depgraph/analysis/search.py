"""
Fuzzy Search Module

This module matches a query string against entity names. Exact, prefix and
substring matches rank first; remaining names are compared with difflib and
kept when they are similar enough.
"""

import difflib
import logging
from typing import Any, Dict, List, Optional, Tuple

from depgraph.errors import InvalidParameter
from depgraph.storage.snapshot import Snapshot

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 50
SIMILARITY_THRESHOLD = 0.6

EXACT_SCORE = 1.0
PREFIX_SCORE = 0.9
SUBSTRING_SCORE = 0.8
# Upper bound for approximate (non-substring) matches
APPROXIMATE_CEILING = 0.7


def match_score(query: str, name: str, similarity_threshold: float = SIMILARITY_THRESHOLD) -> Tuple[float, str]:
    """
    Score how well ``name`` matches ``query`` (both compared lowercase).

    Returns:
        Tuple of (score, match kind); the score is 0.0 for no match
    """
    q = query.lower()
    n = name.lower()
    if n == q:
        return EXACT_SCORE, 'exact'
    if n.startswith(q):
        return PREFIX_SCORE, 'prefix'
    position = n.find(q)
    if position >= 0:
        # Matches further into the name rank slightly lower
        return round(SUBSTRING_SCORE - min(position, 10) * 0.005, 4), 'substring'
    ratio = difflib.SequenceMatcher(None, q, n).ratio()
    if ratio >= similarity_threshold:
        return round(ratio * APPROXIMATE_CEILING, 4), 'approximate'
    return 0.0, 'none'


def fuzzy_search(snapshot: Snapshot, query: str, limit: Optional[int] = DEFAULT_SEARCH_LIMIT,
                 similarity_threshold: float = SIMILARITY_THRESHOLD) -> Dict[str, Any]:
    """
    Search entity names.

    Args:
        snapshot: Snapshot to search
        query: Search string
        limit: Page size; None returns every match
        similarity_threshold: Minimum difflib ratio for approximate matches

    Returns:
        Dictionary with the total match count and the ranked page of matches

    Raises:
        InvalidParameter: If the query is blank or the limit is not positive
    """
    if not isinstance(query, str) or not query.strip():
        raise InvalidParameter("Search query must be a non-empty string")
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0):
        raise InvalidParameter(f"limit must be a positive integer, got {limit!r}")

    query = query.strip()
    matches = []
    for entity in snapshot.list_entities():
        score, kind = match_score(query, entity.name, similarity_threshold)
        if score > 0:
            matches.append((score, str(entity.key), kind, entity))

    matches.sort(key=lambda item: (-item[0], item[1]))
    page = matches if limit is None else matches[:limit]
    logger.debug(f"Fuzzy search '{query}': {len(matches)} matches")

    results: List[Dict[str, Any]] = []
    for score, _, kind, entity in page:
        item = entity.to_dict()
        item['score'] = score
        item['match'] = kind
        results.append(item)

    return {
        'query': query,
        'total_matches': len(matches),
        'returned': len(results),
        'entities': results,
    }
