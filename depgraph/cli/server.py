#!/usr/bin/env python3
"""
API Server Runner

This script serves the dependency graph query API over HTTP. It loads the
persisted snapshot (or indexes a record file on startup) and runs the
FastAPI application with uvicorn.
"""

import argparse
import logging
import sys

import uvicorn

from depgraph.api import create_app
from depgraph.cli import apply_overrides, configure_logging, create_service
from depgraph.config import EngineConfig
from depgraph.errors import GraphEngineError

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Run the dependency graph engine API server.'
    )
    parser.add_argument(
        '--host', default=None,
        help='Host to bind the server to. Default: $DEPGRAPH_HOST or 127.0.0.1'
    )
    parser.add_argument(
        '--port', type=int, default=None,
        help='Port to bind the server to. Default: $DEPGRAPH_PORT or 8000'
    )
    parser.add_argument(
        '--storage', dest='storage_path', default=None,
        help='Path of the JSON snapshot file. Default: $DEPGRAPH_STORAGE_PATH'
    )
    parser.add_argument(
        '--in-memory', action='store_true',
        help='Keep the snapshot in memory only'
    )
    parser.add_argument(
        '--input', '-i', default=None,
        help='Extractor record file to index before serving'
    )
    parser.add_argument(
        '--disable-cors', action='store_true',
        help='Disable CORS middleware'
    )
    parser.add_argument(
        '--verbose', '-v', action='store_true',
        help='Enable verbose logging'
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for the script."""
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = apply_overrides(EngineConfig.from_env(), args)
        service = create_service(config)
        manager = service.manager
        loaded = manager.load()
        if args.input:
            manager.index_file(args.input)
        elif loaded is None:
            logger.warning("Starting without a snapshot; graph queries will fail until one is indexed")

        logger.info("Creating FastAPI application...")
        app = create_app(service, disable_cors=args.disable_cors)

        logger.info(f"Starting API server at http://{config.host}:{config.port}")
        uvicorn.run(app, host=config.host, port=config.port)

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt. Shutting down...")
    except GraphEngineError as e:
        logger.error(f"Could not start the API server: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
