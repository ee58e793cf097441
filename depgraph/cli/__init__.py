"""
Command line entry points for the dependency graph engine.

Shared helpers for logging setup and for wiring storage, manager and query
service from an EngineConfig.
"""

import logging
import os
from typing import Union

from depgraph.config import EngineConfig
from depgraph.manager import DependencyGraphManager
from depgraph.query import GraphQueryService
from depgraph.storage.in_memory import InMemoryGraphStorage
from depgraph.storage.json_storage import JSONGraphStorage

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging; verbose switches to DEBUG."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT
    )


def apply_overrides(config: EngineConfig, args) -> EngineConfig:
    """Copy the command line flags that were given onto the config."""
    for field in ('storage_path', 'host', 'port'):
        value = getattr(args, field, None)
        if value is not None:
            setattr(config, field, value)
    if getattr(args, 'in_memory', False):
        config.in_memory = True
    return config


def create_storage(config: EngineConfig) -> Union[InMemoryGraphStorage, JSONGraphStorage]:
    """Create the storage backend selected by the config."""
    if config.in_memory:
        return InMemoryGraphStorage()
    directory = os.path.dirname(config.storage_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    return JSONGraphStorage(config.storage_path)


def create_service(config: EngineConfig) -> GraphQueryService:
    """Create a query service over a manager with the configured storage."""
    manager = DependencyGraphManager(create_storage(config))
    return GraphQueryService(manager, config)
