"""
Entity Model Module

This module defines the data model shared by every layer of the engine:
languages, normalized entity types, source locations, the stable entity key
scheme and the entity/edge/change-set records that make up a snapshot.

Entity keys have the string form::

    language:entity_type:name:path_token:start-end

where ``path_token`` is the file path with path separators replaced by
underscores. External (unresolved) references use the reserved path
``unknown`` with the range ``0-0``.
"""

import functools
import logging
import posixpath
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple, Union

from depgraph.errors import InvalidParameter

# Set up logging
logger = logging.getLogger(__name__)

UNKNOWN_PATH = "unknown"
KEY_SEPARATOR = ":"

_RANGE_PATTERN = re.compile(r"^([0-9]{1,10})-([0-9]{1,10})$")
_DRIVE_PATTERN = re.compile(r"^[A-Za-z]:")


class Language(str, Enum):
    """Source languages the engine can address."""
    RUST = 'rust'
    PYTHON = 'python'
    JAVASCRIPT = 'javascript'
    TYPESCRIPT = 'typescript'
    GO = 'go'
    JAVA = 'java'
    C = 'c'
    CPP = 'cpp'
    CSHARP = 'csharp'
    RUBY = 'ruby'
    PHP = 'php'
    SWIFT = 'swift'
    KOTLIN = 'kotlin'
    SCALA = 'scala'


class EntityType(str, Enum):
    """Normalized kinds of code entities, independent of source language."""
    FUNCTION = 'function'
    METHOD = 'method'
    STRUCT = 'struct'
    CLASS = 'class'
    ENUM = 'enum'
    TRAIT = 'trait'
    INTERFACE = 'interface'
    IMPL = 'impl'
    MODULE = 'module'
    CONSTANT = 'constant'
    VARIABLE = 'variable'
    TYPE_ALIAS = 'type_alias'
    MACRO = 'macro'


LANGUAGE_ALIASES: Dict[str, Language] = {
    'rs': Language.RUST,
    'py': Language.PYTHON,
    'js': Language.JAVASCRIPT,
    'jsx': Language.JAVASCRIPT,
    'ts': Language.TYPESCRIPT,
    'tsx': Language.TYPESCRIPT,
    'golang': Language.GO,
    'c++': Language.CPP,
    'cxx': Language.CPP,
    'cc': Language.CPP,
    'c#': Language.CSHARP,
    'cs': Language.CSHARP,
    'rb': Language.RUBY,
    'kt': Language.KOTLIN,
    'kts': Language.KOTLIN,
}

# Raw constructs shared by most languages.
COMMON_ENTITY_TYPES: Dict[str, EntityType] = {
    'fn': EntityType.FUNCTION,
    'func': EntityType.FUNCTION,
    'def': EntityType.FUNCTION,
    'method': EntityType.METHOD,
    'struct': EntityType.STRUCT,
    'class': EntityType.CLASS,
    'enum': EntityType.ENUM,
    'trait': EntityType.TRAIT,
    'interface': EntityType.INTERFACE,
    'impl': EntityType.IMPL,
    'mod': EntityType.MODULE,
    'package': EntityType.MODULE,
    'namespace': EntityType.MODULE,
    'const': EntityType.CONSTANT,
    'static': EntityType.CONSTANT,
    'var': EntityType.VARIABLE,
    'let': EntityType.VARIABLE,
    'type': EntityType.TYPE_ALIAS,
    'typedef': EntityType.TYPE_ALIAS,
    'macro': EntityType.MACRO,
}

# Per-language overrides consulted before the common table.
LANGUAGE_ENTITY_TYPES: Dict[Language, Dict[str, EntityType]] = {
    Language.RUST: {'macro_rules': EntityType.MACRO, 'type': EntityType.TYPE_ALIAS},
    Language.PYTHON: {'async_def': EntityType.FUNCTION},
    Language.GO: {'type_spec': EntityType.STRUCT},
    Language.SWIFT: {'protocol': EntityType.INTERFACE, 'extension': EntityType.IMPL},
    Language.KOTLIN: {'object': EntityType.CLASS, 'fun': EntityType.FUNCTION},
    Language.SCALA: {'object': EntityType.CLASS, 'trait': EntityType.TRAIT},
    Language.RUBY: {'module': EntityType.MODULE},
    Language.CPP: {'using': EntityType.TYPE_ALIAS},
    Language.CSHARP: {'record': EntityType.CLASS, 'delegate': EntityType.TYPE_ALIAS},
    Language.PHP: {'function': EntityType.FUNCTION},
}
_ALIAS_LOCK = threading.Lock()


def normalize_language(raw: Union[str, Language]) -> Language:
    """
    Map a raw language name to a Language.

    Raises:
        InvalidParameter: If the language is not supported
    """
    if isinstance(raw, Language):
        return raw
    value = str(raw).strip().lower()
    try:
        return Language(value)
    except ValueError:
        pass
    if value in LANGUAGE_ALIASES:
        return LANGUAGE_ALIASES[value]
    raise InvalidParameter(f"Unsupported language: '{raw}'")


def normalize_entity_type(raw: Union[str, EntityType], language: Optional[Language] = None) -> EntityType:
    """
    Map a raw language construct to a normalized EntityType.

    The per-language table is consulted first, then the common table.

    Args:
        raw: Raw construct name as emitted by an extractor (e.g. 'fn', 'def')
        language: Language the construct belongs to, if known

    Returns:
        The normalized EntityType

    Raises:
        InvalidParameter: If the construct cannot be mapped
    """
    if isinstance(raw, EntityType):
        return raw
    value = str(raw).strip().lower()
    try:
        return EntityType(value)
    except ValueError:
        pass
    table = LANGUAGE_ENTITY_TYPES.get(language, {}) if language is not None else {}
    if value in table:
        return table[value]
    if value in COMMON_ENTITY_TYPES:
        return COMMON_ENTITY_TYPES[value]
    raise InvalidParameter(f"Unsupported entity type: '{raw}'")


def register_entity_type_alias(language: Language, raw: str, entity_type: EntityType) -> None:
    """
    Extend the per-language mapping table with a new raw construct.

    Meant to be called at startup, before records are ingested. The
    language's table is replaced rather than mutated, so a concurrent
    lookup sees either the old or the new table.
    """
    with _ALIAS_LOCK:
        table = dict(LANGUAGE_ENTITY_TYPES.get(language, {}))
        table[raw.strip().lower()] = entity_type
        LANGUAGE_ENTITY_TYPES[language] = table
    logger.debug(f"Registered entity type alias {language.value}:{raw} -> {entity_type.value}")


def normalize_file_path(file_path: str) -> str:
    """
    Normalize a file path to a relative, '/'-separated form.

    Raises:
        InvalidParameter: If the path is empty or absolute
    """
    path = str(file_path).strip().replace('\\', '/')
    if not path:
        raise InvalidParameter("file_path must not be empty")
    if path.startswith('/') or _DRIVE_PATTERN.match(path):
        raise InvalidParameter(f"file_path must be relative: '{file_path}'")
    path = posixpath.normpath(path)
    if path == '.' or path.startswith('../'):
        raise InvalidParameter(f"file_path escapes the source root: '{file_path}'")
    return path


def to_path_token(file_path: str) -> str:
    """Flatten a file path into the key form (separators become underscores)."""
    return re.sub(r"[/\\:]", "_", file_path)


@dataclass(frozen=True)
class SourceLocation:
    """A resolved location inside the indexed source tree."""
    path_token: str
    start_line: int
    end_line: int

    is_external = False

    def __post_init__(self):
        if not self.path_token or KEY_SEPARATOR in self.path_token:
            raise InvalidParameter(f"Invalid path token: '{self.path_token}'")
        if self.path_token == UNKNOWN_PATH:
            raise InvalidParameter(f"'{UNKNOWN_PATH}' is reserved for external references")
        if self.start_line < 0 or self.end_line < self.start_line:
            raise InvalidParameter(f"Invalid line range: {self.start_line}-{self.end_line}")

    @property
    def line_range(self) -> Tuple[int, int]:
        return (self.start_line, self.end_line)


@dataclass(frozen=True)
class ExternalLocation:
    """Placeholder location of an unresolved reference outside the codebase."""

    is_external = True
    path_token = UNKNOWN_PATH
    start_line = 0
    end_line = 0

    @property
    def line_range(self) -> Tuple[int, int]:
        return (0, 0)


Location = Union[SourceLocation, ExternalLocation]


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class EntityKey:
    """
    Structured, hashable address of one code entity.

    Equality, hashing and ordering all use the canonical string form, which
    is computed once at construction.
    """
    language: Language
    entity_type: EntityType
    name: str
    location: Location
    _text: str = field(init=False, repr=False)
    _hash: int = field(init=False, repr=False)

    def __post_init__(self):
        if not isinstance(self.language, Language):
            raise InvalidParameter(f"Invalid language: {self.language!r}")
        if not isinstance(self.entity_type, EntityType):
            raise InvalidParameter(f"Invalid entity type: {self.entity_type!r}")
        if not self.name or not self.name.strip() or '\n' in self.name:
            raise InvalidParameter(f"Invalid entity name: {self.name!r}")
        loc = self.location
        text = KEY_SEPARATOR.join([
            self.language.value,
            self.entity_type.value,
            self.name,
            loc.path_token,
            f"{loc.start_line}-{loc.end_line}",
        ])
        object.__setattr__(self, '_text', text)
        object.__setattr__(self, '_hash', hash(text))

    @classmethod
    def for_source(cls, language, entity_type, name: str, file_path: str,
                   start_line: int, end_line: int) -> 'EntityKey':
        """Build the key of an entity located in the source tree."""
        lang = normalize_language(language)
        path = normalize_file_path(file_path)
        location = SourceLocation(to_path_token(path), int(start_line), int(end_line))
        return cls(lang, normalize_entity_type(entity_type, lang), name, location)

    @classmethod
    def external(cls, language, entity_type, name: str) -> 'EntityKey':
        """Build the key of an unresolved external reference."""
        lang = normalize_language(language)
        return cls(lang, normalize_entity_type(entity_type, lang), name, ExternalLocation())

    @classmethod
    def parse(cls, text: Union[str, 'EntityKey']) -> 'EntityKey':
        """
        Parse a key string.

        The language and entity type are split from the left and the path
        token and range from the right, so names may contain ':'.

        Args:
            text: Key string (or an EntityKey, returned unchanged)

        Returns:
            The parsed EntityKey

        Raises:
            InvalidParameter: If the key is malformed
        """
        if isinstance(text, EntityKey):
            return text
        if not isinstance(text, str) or not text.strip():
            raise InvalidParameter("Entity key must be a non-empty string")
        parts = text.strip().split(KEY_SEPARATOR)
        if len(parts) < 5:
            raise InvalidParameter(f"Malformed entity key: '{text}'")
        language = normalize_language(parts[0])
        entity_type = normalize_entity_type(parts[1], language)
        name = KEY_SEPARATOR.join(parts[2:-2])
        path_token = parts[-2]
        match = _RANGE_PATTERN.match(parts[-1])
        if not match:
            raise InvalidParameter(f"Malformed line range in entity key: '{text}'")
        start, end = int(match.group(1)), int(match.group(2))
        if path_token == UNKNOWN_PATH:
            if (start, end) != (0, 0):
                raise InvalidParameter(f"External reference must use range 0-0: '{text}'")
            location: Location = ExternalLocation()
        else:
            location = SourceLocation(path_token, start, end)
        return cls(language, entity_type, name, location)

    @property
    def path_token(self) -> str:
        return self.location.path_token

    @property
    def line_range(self) -> Tuple[int, int]:
        return self.location.line_range

    @property
    def is_external(self) -> bool:
        return self.location.is_external

    def __str__(self) -> str:
        return self._text

    def __eq__(self, other) -> bool:
        if not isinstance(other, EntityKey):
            return NotImplemented
        return self._text == other._text

    def __lt__(self, other) -> bool:
        if not isinstance(other, EntityKey):
            return NotImplemented
        return self._text < other._text

    def __hash__(self) -> int:
        return self._hash


@dataclass(frozen=True)
class Entity:
    """One named code construct in a snapshot."""
    key: EntityKey
    file_path: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'metadata', MappingProxyType(dict(self.metadata)))

    @classmethod
    def create(cls, language, entity_type, name: str, file_path: Optional[str] = None,
               line_range: Optional[Iterable[int]] = None,
               metadata: Optional[Mapping[str, Any]] = None) -> 'Entity':
        """
        Create an entity from raw extractor values.

        A missing file path, or the reserved ``unknown`` path, produces an
        external sentinel entity.
        """
        if file_path is None or file_path == UNKNOWN_PATH:
            if line_range is not None and tuple(line_range) != (0, 0):
                raise InvalidParameter(f"External reference '{name}' must not carry a line range")
            return cls.external(language, entity_type, name, metadata=metadata)
        start, end = tuple(line_range) if line_range is not None else (0, 0)
        key = EntityKey.for_source(language, entity_type, name, file_path, start, end)
        return cls(key, normalize_file_path(file_path), metadata or {})

    @classmethod
    def external(cls, language, entity_type, name: str,
                 metadata: Optional[Mapping[str, Any]] = None) -> 'Entity':
        return cls(EntityKey.external(language, entity_type, name), UNKNOWN_PATH, metadata or {})

    @classmethod
    def sentinel_for(cls, key: EntityKey) -> 'Entity':
        """Materialize the sentinel entity for an external key."""
        if not key.is_external:
            raise InvalidParameter(f"Key '{key}' is not an external reference")
        return cls(key, UNKNOWN_PATH, {})

    @property
    def language(self) -> Language:
        return self.key.language

    @property
    def entity_type(self) -> EntityType:
        return self.key.entity_type

    @property
    def name(self) -> str:
        return self.key.name

    @property
    def line_range(self) -> Tuple[int, int]:
        return self.key.line_range

    @property
    def is_external(self) -> bool:
        return self.key.is_external

    @property
    def line_count(self) -> int:
        if self.is_external:
            return 0
        start, end = self.line_range
        return end - start + 1

    def __hash__(self) -> int:
        return hash(self.key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key': str(self.key),
            'language': self.language.value,
            'entity_type': self.entity_type.value,
            'name': self.name,
            'file_path': self.file_path,
            'line_range': list(self.line_range),
            'is_external': self.is_external,
            'metadata': dict(self.metadata),
        }


@functools.total_ordering
@dataclass(frozen=True)
class Edge:
    """A directed, typed relation between two entity keys."""
    source: EntityKey
    target: EntityKey
    relation: str = 'calls'

    def sort_key(self) -> Tuple[str, str, str]:
        return (str(self.source), str(self.target), self.relation)

    def __lt__(self, other) -> bool:
        if not isinstance(other, Edge):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    @property
    def is_self_loop(self) -> bool:
        return self.source == self.target

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source': str(self.source),
            'target': str(self.target),
            'relation': self.relation,
        }


@dataclass(frozen=True)
class ChangeSet:
    """One recorded version-control change and the files it touched."""
    change_id: str
    files: FrozenSet[str]

    @classmethod
    def create(cls, change_id: str, files: Iterable[str]) -> 'ChangeSet':
        return cls(str(change_id), frozenset(normalize_file_path(f) for f in files))

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.change_id, 'files': sorted(self.files)}
