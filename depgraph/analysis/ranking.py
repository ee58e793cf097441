"""
Hotspot Ranking Module

This module ranks entities by how many other entities depend on them.
"""

import logging
from typing import Any, Dict, List

from depgraph.errors import InvalidParameter
from depgraph.storage.snapshot import Snapshot

# Set up logging
logger = logging.getLogger(__name__)


def complexity_hotspots(snapshot: Snapshot, top: int) -> List[Dict[str, Any]]:
    """
    Rank entities by inbound edge count.

    Ties are broken by lexical key order, so the ranking is stable for an
    unchanged snapshot. External sentinel entities take part in the ranking
    (heavy reliance on one library call is a hotspot too) and are flagged
    with ``is_external``.

    Args:
        snapshot: Snapshot to rank
        top: Number of entities to return

    Returns:
        Ranked list of hotspot dictionaries

    Raises:
        InvalidParameter: If top is not a positive integer
    """
    if isinstance(top, bool) or not isinstance(top, int) or top <= 0:
        raise InvalidParameter(f"top must be a positive integer, got {top!r}")

    index = snapshot.index
    ranked = sorted(index.entity_keys, key=lambda k: (-index.in_degree(k), str(k)))

    hotspots = []
    for rank, key in enumerate(ranked[:top], start=1):
        entity = snapshot.get_entity(key)
        hotspots.append({
            'rank': rank,
            'entity': str(key),
            'name': entity.name,
            'entity_type': entity.entity_type.value,
            'file_path': entity.file_path,
            'inbound_count': index.in_degree(key),
            'outbound_count': index.out_degree(key),
            'is_external': entity.is_external,
        })
    return hotspots

