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
Data models for the infrastructure identifier masking engine.

This module defines the Pattern classifier (a tagged variant over plain,
contextual and exact-literal shapes) and the MappingTable persisted per
session.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict

from pydantic import BaseModel, Field

MAPPING_VERSION = 1

# Token grammar: "#(" + one or more non-")" characters + ")".
TOKEN_RE = re.compile(r"#\([^)]+\)")

# Shape of a token issued by the store: "#(" + type + "-" + counter + ")", on one line.
ISSUED_TOKEN_RE = re.compile(r"#\([^()\s]+-\d+\)")


class PatternKind(str, Enum):
    """
    Enumeration of supported pattern shapes.

    Attributes:
        PLAIN: A regex whose whole match is the sensitive value.
        CONTEXTUAL: A regex matching a surrounding context; only group 1 is sensitive.
        EXACT: A literal string, escaped into a regex.
    """

    PLAIN = "PLAIN"
    CONTEXTUAL = "CONTEXTUAL"
    EXACT = "EXACT"


def _search_source(source: str) -> str:
    """
    Turns a whole-string matcher into a free-text scanner.

    Leading `^` and trailing `$` are dropped and a trailing `\\b` is appended
    (unless already present) so that a match cannot stop mid-identifier.
    Scanners are compiled with `re.ASCII`, so any non-ASCII character ends a word.
    """
    body = source[1:] if source.startswith("^") else source
    if body.endswith("$") and not body.endswith("\\$"):
        body = body[:-1]
    if not body.endswith("\\b"):
        body += "\\b"
    return body


def literal_source(value: str) -> str:
    """Escapes a literal; the trailing lookahead keeps `abc` from matching inside `abcd`."""
    return re.escape(value) + r"(?!\w)"


@dataclass(frozen=True)
class Pattern:
    """
    A named classifier of sensitive text.

    Attributes:
        name: Unique identifier; also the token type and the reveal key.
        kind: The pattern shape.
        source: The definition text (regex source, or the literal for EXACT).
        matcher: Whole-value matcher, used to test a single candidate value.
        scanner: Free-text scanner used by the masking engine.
    """

    name: str
    kind: PatternKind
    source: str
    matcher: "re.Pattern[str]"
    scanner: "re.Pattern[str]"

    @classmethod
    def plain(cls, name: str, source: str) -> "Pattern":
        return cls(name, PatternKind.PLAIN, source, re.compile(source), re.compile(_search_source(source), re.ASCII))

    @classmethod
    def contextual_regex(cls, name: str, source: str) -> "Pattern":
        compiled = re.compile(source)
        if compiled.groups < 1:
            raise re.error(f"contextual pattern {name!r} needs a capture group")
        return cls(name, PatternKind.CONTEXTUAL, source, compiled, compiled)

    @classmethod
    def exact_literal(cls, name: str, value: str) -> "Pattern":
        if not value:
            raise re.error(f"exact pattern {name!r} is empty")
        whole = re.compile(r"\A" + re.escape(value) + r"\Z")
        return cls(name, PatternKind.EXACT, value, whole, re.compile(literal_source(value), re.ASCII))

    @property
    def contextual(self) -> bool:
        return self.kind is PatternKind.CONTEXTUAL

    @property
    def exact(self) -> bool:
        return self.kind is PatternKind.EXACT

    def matches(self, value: str) -> bool:
        """Returns True if `value` is classified by this pattern."""
        return self.matcher.search(value) is not None


class MappingTable(BaseModel):
    """
    The persisted token -> original value table for one session.

    Attributes:
        version: File format version.
        entries: Dictionary mapping tokens (keys) to original values.
    """

    version: int = MAPPING_VERSION
    entries: Dict[str, str] = Field(default_factory=dict)
