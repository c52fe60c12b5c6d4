# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_aegis

import bisect
import re
from functools import lru_cache
from typing import Dict, Iterator, List, Sequence, Tuple

from wont_let_you_see.config import ConfigStore
from wont_let_you_see.exceptions import CustomPatternError
from wont_let_you_see.models import ISSUED_TOKEN_RE, Pattern, PatternKind
from wont_let_you_see.patterns import PatternRegistry
from wont_let_you_see.utils.logger import logger
from wont_let_you_see.vault import MappingStore

CUSTOM_TYPE = "custom"
REGEX_PREFIX = "regex:"

Span = Tuple[int, int]


@lru_cache(maxsize=256)
def compile_custom_pattern(spec: str) -> Pattern:
    """
    Compiles one operator-supplied custom pattern spec.

    A `regex:` prefix marks a regex, used as-is for searching; anything else
    is a literal value.

    Raises:
        CustomPatternError: If the spec is empty or the regex does not compile.
    """
    if spec.startswith(REGEX_PREFIX):
        source = spec[len(REGEX_PREFIX) :]
        try:
            compiled = re.compile(source)
        except re.error as e:
            raise CustomPatternError(f"Invalid custom pattern regex {source!r}: {e}") from e
        return Pattern(CUSTOM_TYPE, PatternKind.PLAIN, source, compiled, compiled)
    if not spec:
        raise CustomPatternError("Custom pattern must not be empty")
    return Pattern.exact_literal(CUSTOM_TYPE, spec)


def _candidate_spans(pattern: Pattern, text: str) -> Iterator[Span]:
    for match in pattern.scanner.finditer(text):
        start, end = match.span(1) if pattern.contextual else match.span()
        if start < end:
            yield start, end


class MaskingEngine:
    """
    Replaces sensitive values with session tokens.

    Custom patterns run first, then registry patterns in registry order. Each
    pattern sees the output of the previous one. Matches that touch a token
    issued for the session are left alone, which keeps masking idempotent.
    """

    def __init__(self, store: MappingStore, registry: PatternRegistry, config: ConfigStore) -> None:
        self.store = store
        self.registry = registry
        self.config = config

    def _active_patterns(self) -> List[Pattern]:
        settings = self.config.get()
        if not settings.enabled:
            return []
        patterns = [compile_custom_pattern(spec) for spec in settings.custom_patterns]
        patterns.extend(p for p in self.registry.load() if settings.is_pattern_enabled(p.name))
        return patterns

    def mask(self, session_id: str, text: str) -> str:
        """
        Masks every enabled pattern's matches in `text`.

        Args:
            session_id: The session whose mapping table receives new tokens.
            text: The input text.

        Returns:
            The text with sensitive values replaced by `#(type-N)` tokens.

        Raises:
            CustomPatternError: If a configured custom regex is invalid.
            OSError: If a new token cannot be persisted.
        """
        if not text:
            return text

        patterns = self._active_patterns()
        if not patterns:
            return text

        hits: Dict[str, int] = {}
        for pattern in patterns:
            text, count = self._apply(session_id, pattern, text)
            if count:
                hits[pattern.name] = hits.get(pattern.name, 0) + count

        if hits:
            logger.debug(f"Masked session {session_id}: {hits}")
        return text

    def _apply(self, session_id: str, pattern: Pattern, text: str) -> Tuple[str, int]:
        # Only tokens that resolve in this session are shielded.
        tokens = [
            m.span()
            for m in ISSUED_TOKEN_RE.finditer(text)
            if self.store.get_original(session_id, m.group(0)) is not None
        ]
        spans = [span for span in _candidate_spans(pattern, text) if not _overlaps(tokens, span)]
        if not spans:
            return text, 0

        replacements: Dict[str, str] = {}
        for start, end in spans:
            value = text[start:end]
            if value not in replacements:
                replacements[value] = self.store.add_entry(session_id, pattern.name, value)

        pieces: List[str] = []
        cursor = 0
        for start, end in spans:
            pieces.append(text[cursor:start])
            pieces.append(replacements[text[start:end]])
            cursor = end
        pieces.append(text[cursor:])
        return "".join(pieces), len(spans)


def _overlaps(tokens: Sequence[Span], span: Span) -> bool:
    # Token spans are sorted and disjoint; only the last one starting before
    # `span` ends can reach into it.
    start, end = span
    i = bisect.bisect_left(tokens, (end, -1))
    return i > 0 and tokens[i - 1][1] > start
