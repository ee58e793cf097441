"""
Error Taxonomy Module

This module defines the exceptions raised by the graph engine. Each exception
carries an ``error_type`` string that is reported in response envelopes.
"""


class GraphEngineError(Exception):
    """Base class for all graph engine errors."""

    error_type = "GraphEngineError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class EntityNotFound(GraphEngineError, KeyError):
    """Raised when an entity key is absent from the current snapshot."""

    error_type = "NotFound"

    def __init__(self, key):
        super().__init__(f"Entity '{key}' not found")
        self.key = str(key)


class InvalidParameter(GraphEngineError, ValueError):
    """Raised for malformed keys and non-positive or non-numeric parameters."""

    error_type = "InvalidParameter"


class StorageError(GraphEngineError):
    """Raised when the persistence layer fails to read or write a snapshot."""

    error_type = "StorageError"


class SnapshotIntegrityError(StorageError):
    """Raised when a snapshot violates its invariants at commit time."""


class NoSnapshotLoaded(StorageError):
    """Raised when a query arrives before any snapshot has been committed."""

    def __init__(self):
        super().__init__("No snapshot has been indexed or loaded yet")
