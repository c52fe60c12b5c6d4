# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_aegis

"""
Pattern registry.

Loads the named pattern definitions that classify sensitive infrastructure
identifiers (AWS resource IDs, ARNs, Kubernetes credentials, IP addresses,
etc.) from YAML documents and exposes them as an ordered, cached list.
"""

import re
import threading
from importlib import resources
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import yaml

from wont_let_you_see.exceptions import PatternDefinitionError
from wont_let_you_see.models import Pattern
from wont_let_you_see.utils.logger import logger

DEFINITIONS_PACKAGE = "wont_let_you_see"
DEFINITIONS_DIR = "definitions"


def parse_definition(name: str, definition: Any) -> Pattern:
    """
    Parses a single pattern definition.

    Supported forms:
    - a bare string: a plain regex
    - `{exact: "..."}`: a literal, escaped into a regex
    - `{pattern: "...", contextual: bool}`: a contextual or plain regex

    Args:
        name: The pattern name.
        definition: The raw YAML value.

    Returns:
        The compiled Pattern.

    Raises:
        PatternDefinitionError: If the definition is malformed or does not compile.
    """
    try:
        if isinstance(definition, str):
            return Pattern.plain(name, definition)
        if isinstance(definition, dict):
            if "exact" in definition:
                literal = definition["exact"]
                if not isinstance(literal, str):
                    raise PatternDefinitionError(f"Pattern {name!r}: 'exact' must be a string")
                return Pattern.exact_literal(name, literal)
            if "pattern" in definition:
                source = definition["pattern"]
                if not isinstance(source, str):
                    raise PatternDefinitionError(f"Pattern {name!r}: 'pattern' must be a string")
                if definition.get("contextual", False):
                    return Pattern.contextual_regex(name, source)
                return Pattern.plain(name, source)
    except re.error as e:
        raise PatternDefinitionError(f"Pattern {name!r} does not compile: {e}") from e
    raise PatternDefinitionError(f"Pattern {name!r}: unsupported definition {definition!r}")


def parse_document(text: str, origin: str) -> List[Pattern]:
    """Parses one definition document, keeping declaration order."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise PatternDefinitionError(f"Cannot parse pattern definitions in {origin}: {e}") from e
    if data is None:
        return []
    if not isinstance(data, dict):
        raise PatternDefinitionError(f"Pattern definitions in {origin} must be a mapping of name to definition")
    return [parse_definition(str(name), definition) for name, definition in data.items()]


def _bundled_documents() -> List[Tuple[str, str]]:
    root = resources.files(DEFINITIONS_PACKAGE).joinpath(DEFINITIONS_DIR)
    documents = [entry for entry in root.iterdir() if entry.name.endswith((".yaml", ".yml"))]
    return [(entry.name, entry.read_text(encoding="utf-8")) for entry in sorted(documents, key=lambda e: e.name)]


def _directory_documents(directory: Path) -> List[Tuple[str, str]]:
    paths = sorted(p for p in directory.iterdir() if p.suffix in (".yaml", ".yml"))
    return [(str(p), p.read_text(encoding="utf-8")) for p in paths]


class PatternRegistry:
    """
    An ordered, cached collection of Patterns.

    Bundled definitions are read first (in file name order), then any extra
    directories in the order given. The list is built on first `load()` and
    kept until `reset()`.
    """

    def __init__(self, extra_dirs: Optional[Sequence[Path]] = None, include_bundled: bool = True) -> None:
        """
        Initializes the registry without loading anything.

        Args:
            extra_dirs: Additional directories of YAML definition documents.
            include_bundled: Whether to read the definitions shipped with the package.
        """
        self._extra_dirs = [Path(d) for d in extra_dirs or []]
        self._include_bundled = include_bundled
        self._cache: Optional[List[Pattern]] = None
        self._lock = threading.Lock()

    def _documents(self) -> Iterable[Tuple[str, str]]:
        if self._include_bundled:
            yield from _bundled_documents()
        for directory in self._extra_dirs:
            yield from _directory_documents(directory)

    def load(self) -> List[Pattern]:
        """
        Returns the ordered pattern list, loading it if not cached.

        Raises:
            PatternDefinitionError: If any definition is malformed or a name repeats.
        """
        with self._lock:
            if self._cache is None:
                patterns: List[Pattern] = []
                seen = set()
                for origin, text in self._documents():
                    for pattern in parse_document(text, origin):
                        if pattern.name in seen:
                            raise PatternDefinitionError(f"Duplicate pattern name {pattern.name!r} in {origin}")
                        seen.add(pattern.name)
                        patterns.append(pattern)
                self._cache = patterns
                logger.debug(f"Loaded {len(patterns)} patterns.")
            return list(self._cache)

    def reset(self) -> None:
        """Drops the cached list; the next `load()` re-reads the definitions."""
        with self._lock:
            self._cache = None

    def by_name(self, name: str) -> Optional[Pattern]:
        for pattern in self.load():
            if pattern.name == name:
                return pattern
        return None

    def names(self) -> List[str]:
        return [pattern.name for pattern in self.load()]
