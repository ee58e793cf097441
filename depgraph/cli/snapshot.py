#!/usr/bin/env python3
"""
Index Extractor Records

This script commits a snapshot from an extractor record file and persists
it, so that a later server start can load it.

Usage:
    depgraph-index --input records.jsonl [--storage .depgraph/snapshot.json]
"""

import argparse
import json
import logging
import sys

from depgraph.analysis import overview
from depgraph.cli import apply_overrides, configure_logging, create_service
from depgraph.config import EngineConfig
from depgraph.errors import GraphEngineError, StorageError

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Index extractor records into a dependency graph snapshot')
    parser.add_argument('--input', '-i', required=True,
                        help='Record file: a JSON document or JSON Lines (.jsonl)')
    parser.add_argument('--storage', dest='storage_path', default=None,
                        help='Path of the JSON snapshot file. Default: $DEPGRAPH_STORAGE_PATH')
    parser.add_argument('--in-memory', action='store_true',
                        help='Validate and summarize only; do not write a snapshot file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for the script."""
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = apply_overrides(EngineConfig.from_env(), args)
        service = create_service(config)
        try:
            service.manager.load()
        except StorageError:
            logger.warning("Stored snapshot is unreadable; indexing starts a new generation sequence")
        snapshot = service.manager.index_file(args.input)
    except GraphEngineError as e:
        logger.error(f"Error indexing {args.input}: {e}")
        return 1

    summary = overview(snapshot)
    summary['storage'] = service.manager.storage.describe()
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
