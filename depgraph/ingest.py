"""
Record Ingestion Module

This module turns the output of an entity/edge extractor into staged
snapshot data. Two input layouts are accepted:

- a JSON document: ``{"entities": [...], "edges": [...], "change_sets": [...]}``
- JSON Lines (``.jsonl`` / ``.ndjson``): one object per line with a
  ``"record"`` field of ``entity``, ``edge`` or ``change_set``

Records are converted and staged in batches so that large extractor runs do
not have to be materialized twice.
"""

import json
import logging
import os
from typing import Any, Dict, Iterable, Iterator, List, Mapping, NamedTuple, Tuple

from depgraph.entities import ChangeSet, Edge, Entity, EntityKey
from depgraph.errors import InvalidParameter, StorageError
from depgraph.storage.snapshot import SnapshotBuilder

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000
JSON_LINES_EXTENSIONS = ('.jsonl', '.ndjson')

ENTITY = 'entity'
EDGE = 'edge'
CHANGE_SET = 'change_set'
RECORD_KINDS = (ENTITY, EDGE, CHANGE_SET)

Record = Tuple[str, Mapping[str, Any]]


class RecordBatch(NamedTuple):
    entities: List[Entity]
    edges: List[Edge]
    change_sets: List[ChangeSet]


def entity_from_record(record: Mapping[str, Any]) -> Entity:
    """
    Convert an extractor entity record into an Entity.

    Raises:
        InvalidParameter: If a required field is missing or invalid
    """
    try:
        language = record['language']
        entity_type = record['entity_type']
        name = record['name']
    except KeyError as e:
        raise InvalidParameter(f"Entity record is missing field {e}") from e

    line_range = record.get('line_range')
    if line_range is None and 'start_line' in record:
        line_range = (record['start_line'], record.get('end_line', record['start_line']))
    if line_range is not None:
        try:
            start, end = (int(value) for value in line_range)
        except (TypeError, ValueError) as e:
            raise InvalidParameter(f"Invalid line range for entity '{name}': {line_range!r}") from e
        line_range = (start, end)

    return Entity.create(
        language, entity_type, name,
        file_path=record.get('file_path'),
        line_range=line_range,
        metadata=record.get('metadata') or {},
    )


def _endpoint(value: Any) -> EntityKey:
    if isinstance(value, Mapping):
        return entity_from_record(value).key
    return EntityKey.parse(value)


def edge_from_record(record: Mapping[str, Any]) -> Edge:
    """
    Convert an extractor edge record into an Edge.

    Endpoints are key strings or inline entity records.
    """
    try:
        source = _endpoint(record['source'])
        target = _endpoint(record['target'])
    except KeyError as e:
        raise InvalidParameter(f"Edge record is missing field {e}") from e
    relation = str(record.get('relation') or 'calls')
    return Edge(source, target, relation)


def change_set_from_record(record: Mapping[str, Any]) -> ChangeSet:
    try:
        return ChangeSet.create(record['id'], record.get('files') or [])
    except KeyError as e:
        raise InvalidParameter(f"Change set record is missing field {e}") from e


def records_from_document(data: Mapping[str, Any]) -> Iterator[Record]:
    """Yield (kind, record) pairs from a JSON document layout."""
    if not isinstance(data, Mapping):
        raise InvalidParameter("Record document must be a JSON object")
    for record in data.get('entities', []):
        yield ENTITY, record
    for record in data.get('edges', []):
        yield EDGE, record
    for record in data.get('change_sets', []):
        yield CHANGE_SET, record


def records_from_lines(lines: Iterable[str]) -> Iterator[Record]:
    """Yield (kind, record) pairs from JSON Lines input."""
    for line_number, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            raise InvalidParameter(f"Invalid JSON on line {line_number}: {e}") from e
        kind = record.get('record') if isinstance(record, dict) else None
        if kind not in RECORD_KINDS:
            raise InvalidParameter(f"Line {line_number}: 'record' must be one of {RECORD_KINDS}")
        yield kind, record


def read_records(path: str) -> Iterator[Record]:
    """
    Read extractor records from a file.

    Args:
        path: Path to a JSON document or a JSON Lines file

    Raises:
        StorageError: If the file cannot be read
        InvalidParameter: If the content is malformed
    """
    if not os.path.exists(path):
        raise StorageError(f"Record file not found: {path}")
    try:
        if path.lower().endswith(JSON_LINES_EXTENSIONS):
            with open(path, 'r', encoding='utf-8') as f:
                yield from records_from_lines(f)
        else:
            with open(path, 'r', encoding='utf-8') as f:
                try:
                    data = json.load(f)
                except json.JSONDecodeError as e:
                    raise InvalidParameter(f"Invalid JSON in {path}: {e}") from e
            yield from records_from_document(data)
    except (IOError, OSError) as e:
        raise StorageError(f"Could not read records from {path}: {e}") from e


def iter_record_batches(records: Iterable[Record],
                        batch_size: int = DEFAULT_BATCH_SIZE) -> Iterator[RecordBatch]:
    """Convert (kind, record) pairs into batches of model objects."""
    if batch_size <= 0:
        raise InvalidParameter(f"batch_size must be positive, got {batch_size}")

    batch = RecordBatch([], [], [])
    pending = 0
    converters = {
        ENTITY: (entity_from_record, batch.entities),
        EDGE: (edge_from_record, batch.edges),
        CHANGE_SET: (change_set_from_record, batch.change_sets),
    }
    for kind, record in records:
        if kind not in converters:
            raise InvalidParameter(f"Unknown record kind: {kind!r}")
        convert, target = converters[kind]
        target.append(convert(record))
        pending += 1
        if pending >= batch_size:
            yield RecordBatch(list(batch.entities), list(batch.edges), list(batch.change_sets))
            for items in batch:
                items.clear()
            pending = 0
    if pending:
        yield RecordBatch(list(batch.entities), list(batch.edges), list(batch.change_sets))


def stage_records(builder: SnapshotBuilder, records: Iterable[Record],
                  batch_size: int = DEFAULT_BATCH_SIZE) -> Dict[str, int]:
    """
    Stage extractor records into a snapshot builder.

    Returns:
        Counts of staged entities, edges and change sets
    """
    counts = {'entities': 0, 'edges': 0, 'change_sets': 0, 'batches': 0}
    for batch in iter_record_batches(records, batch_size):
        counts['entities'] += builder.put_entities(batch.entities)
        counts['edges'] += builder.put_edges(batch.edges)
        counts['change_sets'] += builder.put_change_sets(batch.change_sets)
        counts['batches'] += 1
        logger.debug(f"Staged batch {counts['batches']}: {len(batch.entities)} entities, "
                     f"{len(batch.edges)} edges")
    return counts
