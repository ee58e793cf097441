"""
Smart Context Selector Module

This module picks the entities most relevant to a focus entity while
staying within a token budget, for clients with a limited context window.

Relevance scoring:
    - direct callers of the focus:          1.0   ('direct_caller')
    - direct callees of the focus:          0.95  ('direct_callee')
    - entities at undirected depth d >= 2:  0.7 - 0.1 * (d - 2), floored at
      MIN_TRANSITIVE_SCORE                         ('transitive')

Selection is greedy: candidates are visited by descending score (then
shallower depth, then key) and each is accepted if it still fits the
remaining budget. Candidates that do not fit are skipped, not fatal.
"""

import logging
import math
from typing import Any, Dict, List, Tuple

from depgraph.entities import Entity, EntityKey
from depgraph.errors import InvalidParameter
from depgraph.storage.snapshot import KeyLike, Snapshot

# Set up logging
logger = logging.getLogger(__name__)

DIRECT_CALLER_SCORE = 1.0
DIRECT_CALLEE_SCORE = 0.95
TRANSITIVE_BASE_SCORE = 0.7
TRANSITIVE_DECAY = 0.1
MIN_TRANSITIVE_SCORE = 0.05

DEFAULT_MAX_DEPTH = 3

TOKENS_PER_LINE = 10
ENTRY_OVERHEAD_TOKENS = 2

DIRECT_CALLER = 'direct_caller'
DIRECT_CALLEE = 'direct_callee'
TRANSITIVE = 'transitive'


def transitive_score(depth: int) -> float:
    """Relevance of an entity first reached at ``depth`` (>= 2)."""
    score = TRANSITIVE_BASE_SCORE - TRANSITIVE_DECAY * (depth - 2)
    return round(max(score, MIN_TRANSITIVE_SCORE), 4)


def estimate_tokens(entity: Entity) -> int:
    """
    Estimate the token cost of including ``entity`` in a context.

    An extractor-supplied ``token_estimate`` metadata value wins; otherwise
    the cost is derived from the entity's line span. A fixed per-entry
    overhead covers the score and label that accompany each entity.
    """
    estimate = entity.metadata.get('token_estimate')
    if isinstance(estimate, float) and not math.isfinite(estimate):
        estimate = None
    if isinstance(estimate, (int, float)) and not isinstance(estimate, bool) and estimate >= 0:
        base = int(estimate)
    else:
        base = max(1, entity.line_count) * TOKENS_PER_LINE
    return base + ENTRY_OVERHEAD_TOKENS


def collect_candidates(snapshot: Snapshot, focus: EntityKey,
                       max_depth: int) -> List[Tuple[float, int, EntityKey, str]]:
    """
    Score every entity related to ``focus`` within ``max_depth`` hops.

    Returns:
        List of (score, depth, key, relevance type) tuples
    """
    index = snapshot.index
    candidates: Dict[EntityKey, Tuple[float, int, EntityKey, str]] = {}

    for callee in index.callee_keys(focus):
        if callee != focus:
            candidates[callee] = (DIRECT_CALLEE_SCORE, 1, callee, DIRECT_CALLEE)
    # An entity that is both caller and callee keeps the higher caller score
    for caller in index.caller_keys(focus):
        if caller != focus:
            candidates[caller] = (DIRECT_CALLER_SCORE, 1, caller, DIRECT_CALLER)

    visited = set(candidates) | {focus}
    frontier = sorted(candidates)
    depth = 1
    while frontier and depth < max_depth:
        depth += 1
        reached = set()
        for key in frontier:
            for neighbor in index.neighbor_keys(key):
                if neighbor not in visited:
                    visited.add(neighbor)
                    reached.add(neighbor)
        for key in reached:
            candidates[key] = (transitive_score(depth), depth, key, TRANSITIVE)
        frontier = sorted(reached)

    return list(candidates.values())


def smart_context(snapshot: Snapshot, focus: KeyLike, token_budget: int,
                  max_depth: int = DEFAULT_MAX_DEPTH) -> Dict[str, Any]:
    """
    Select related entities for ``focus`` within ``token_budget``.

    Args:
        snapshot: Snapshot to query
        focus: Key of the focus entity
        token_budget: Maximum total estimated tokens of the selection
        max_depth: How far (undirected hops) to look for candidates

    Returns:
        Dictionary with tokens_used, entities_included and the ordered
        context entries

    Raises:
        EntityNotFound: If the focus key is absent
        InvalidParameter: If the budget or depth is not a positive integer
    """
    if isinstance(token_budget, bool) or not isinstance(token_budget, int) or token_budget <= 0:
        raise InvalidParameter(f"token budget must be a positive integer, got {token_budget!r}")
    if isinstance(max_depth, bool) or not isinstance(max_depth, int) or max_depth <= 0:
        raise InvalidParameter(f"max_depth must be a positive integer, got {max_depth!r}")

    focus_key = snapshot.resolve_key(focus)
    candidates = collect_candidates(snapshot, focus_key, max_depth)
    candidates.sort(key=lambda c: (-c[0], c[1], c[2]))

    tokens_used = 0
    selected = []
    for score, depth, key, relevance in candidates:
        entity = snapshot.get_entity(key)
        cost = estimate_tokens(entity)
        if tokens_used + cost > token_budget:
            continue
        tokens_used += cost
        selected.append({
            'entity': str(key),
            'name': entity.name,
            'entity_type': entity.entity_type.value,
            'file_path': entity.file_path,
            'line_range': list(entity.line_range),
            'score': score,
            'relevance_type': relevance,
            'depth': depth,
            'tokens': cost,
        })

    logger.debug(f"Smart context for {focus_key}: {len(selected)}/{len(candidates)} "
                 f"entities, {tokens_used}/{token_budget} tokens")
    return {
        'focus': str(focus_key),
        'token_budget': token_budget,
        'tokens_used': tokens_used,
        'entities_included': len(selected),
        'candidates_considered': len(candidates),
        'context': selected,
    }
