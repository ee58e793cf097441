"""
Configuration Module

Settings are read from environment variables; command line flags override
them in the entry points.
"""

import os
from dataclasses import dataclass

from depgraph.analysis.clustering import DEFAULT_CLUSTER_THRESHOLD
from depgraph.analysis.context import DEFAULT_MAX_DEPTH
from depgraph.analysis.search import DEFAULT_SEARCH_LIMIT
from depgraph.errors import InvalidParameter

DEFAULT_JSON_PATH = os.path.join('.depgraph', 'snapshot.json')
DEFAULT_HOST = '127.0.0.1'
DEFAULT_PORT = 8000
DEFAULT_BLAST_SAMPLE = 50


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_number(name: str, default, cast):
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return cast(value)
    except ValueError:
        raise InvalidParameter(f"Environment variable {name} has an invalid value: '{value}'")


@dataclass
class EngineConfig:
    """Runtime settings of the engine and its servers."""
    storage_path: str = DEFAULT_JSON_PATH
    in_memory: bool = False
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    context_max_depth: int = DEFAULT_MAX_DEPTH
    cluster_threshold: float = DEFAULT_CLUSTER_THRESHOLD
    search_limit: int = DEFAULT_SEARCH_LIMIT
    blast_sample: int = DEFAULT_BLAST_SAMPLE

    @classmethod
    def from_env(cls) -> 'EngineConfig':
        """Build a configuration from DEPGRAPH_* environment variables."""
        return cls(
            storage_path=os.environ.get('DEPGRAPH_STORAGE_PATH', DEFAULT_JSON_PATH),
            in_memory=_env_bool('DEPGRAPH_IN_MEMORY', False),
            host=os.environ.get('DEPGRAPH_HOST', DEFAULT_HOST),
            port=_env_number('DEPGRAPH_PORT', DEFAULT_PORT, int),
            context_max_depth=_env_number('DEPGRAPH_CONTEXT_MAX_DEPTH', DEFAULT_MAX_DEPTH, int),
            cluster_threshold=_env_number('DEPGRAPH_CLUSTER_THRESHOLD', DEFAULT_CLUSTER_THRESHOLD, float),
            search_limit=_env_number('DEPGRAPH_SEARCH_LIMIT', DEFAULT_SEARCH_LIMIT, int),
            blast_sample=_env_number('DEPGRAPH_BLAST_SAMPLE', DEFAULT_BLAST_SAMPLE, int),
        )
