"""
Snapshot overview statistics.
"""

from collections import Counter
from typing import Any, Dict

from depgraph.storage.snapshot import Snapshot


def overview(snapshot: Snapshot) -> Dict[str, Any]:
    """Summarize a snapshot: sizes and breakdowns by type, language and relation."""
    entities = snapshot.list_entities()
    edges = snapshot.list_edges()
    by_type = Counter(entity.entity_type.value for entity in entities)
    by_language = Counter(entity.language.value for entity in entities)
    by_relation = Counter(edge.relation for edge in edges)
    external = sum(1 for entity in entities if entity.is_external)

    return {
        'snapshot_id': snapshot.snapshot_id,
        'generation': snapshot.generation,
        'created_at': snapshot.created_at,
        'entity_count': len(entities),
        'edge_count': len(edges),
        'file_count': len(snapshot.files),
        'external_entity_count': external,
        'change_set_count': len(snapshot.change_sets),
        'entities_by_type': dict(sorted(by_type.items())),
        'entities_by_language': dict(sorted(by_language.items())),
        'edges_by_relation': dict(sorted(by_relation.items())),
    }
