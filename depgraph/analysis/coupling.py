"""
Temporal Coupling Module

This module finds files that change together with the file of a given
entity, using the change sets recorded in the snapshot. A coupling is
marked ``hidden`` when the static graph has no edge between the two files,
meaning the co-change is not explained by any recorded dependency.
"""

import logging
from collections import Counter
from typing import Any, Dict

from depgraph.storage.snapshot import KeyLike, Snapshot

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_MIN_STRENGTH = 0.3
DEFAULT_MIN_CO_CHANGES = 2
# Entity keys listed per coupled file
MAX_ENTITIES_PER_FILE = 10


def _files_linked(snapshot: Snapshot, file_a: str, file_b: str) -> bool:
    keys_a = snapshot.files.get(file_a, ())
    keys_b = set(snapshot.files.get(file_b, ()))
    index = snapshot.index
    for key in keys_a:
        if any(neighbor in keys_b for neighbor in index.callee_keys(key)):
            return True
        if any(neighbor in keys_b for neighbor in index.caller_keys(key)):
            return True
    return False


def temporal_coupling(snapshot: Snapshot, key: KeyLike,
                      min_strength: float = DEFAULT_MIN_STRENGTH,
                      min_co_changes: int = DEFAULT_MIN_CO_CHANGES) -> Dict[str, Any]:
    """
    Report files that co-change with the file of ``key``.

    Args:
        snapshot: Snapshot to query
        key: Key of the entity
        min_strength: Minimum co_changes / changes(file) ratio to report
        min_co_changes: Minimum number of shared change sets to report

    Returns:
        Dictionary with the entity's file, its change count and the coupled
        files ordered by strength

    Raises:
        EntityNotFound: If the key is absent from the snapshot
    """
    entity = snapshot.get_entity(key)
    history_available = bool(snapshot.change_sets)
    result: Dict[str, Any] = {
        'entity': str(entity.key),
        'file_path': entity.file_path,
        'history_available': history_available,
        'change_count': 0,
        'coupled_files': [],
    }
    if entity.is_external or not history_available:
        return result

    own_file = entity.file_path
    relevant = [change for change in snapshot.change_sets if own_file in change.files]
    co_changes = Counter(
        other for change in relevant for other in change.files if other != own_file
    )
    result['change_count'] = len(relevant)

    coupled = []
    for other, count in co_changes.items():
        strength = count / len(relevant)
        if count < min_co_changes or strength < min_strength:
            continue
        entities = [str(k) for k in snapshot.files.get(other, ())[:MAX_ENTITIES_PER_FILE]]
        coupled.append({
            'file_path': other,
            'co_changes': count,
            'strength': round(strength, 4),
            'hidden': not _files_linked(snapshot, own_file, other),
            'indexed': other in snapshot.files,
            'entities': entities,
        })

    coupled.sort(key=lambda item: (-item['strength'], -item['co_changes'], item['file_path']))
    result['coupled_files'] = coupled
    logger.debug(f"Temporal coupling for {entity.key}: {len(coupled)} coupled files")
    return result
