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
Main entry point for the infrastructure identifier masker.

This module exposes the `Masker` class, which composes the pattern registry,
the session mapping store and the masking/re-identification engines, plus
module-level `mask`/`unmask` helpers backed by a lazily built default.
"""

import threading
from typing import Optional

from wont_let_you_see.config import ConfigStore
from wont_let_you_see.masking import MaskingEngine, compile_custom_pattern
from wont_let_you_see.patterns import PatternRegistry
from wont_let_you_see.reidentifier import ReIdentifier
from wont_let_you_see.utils.logger import logger
from wont_let_you_see.vault import MappingStore


class Masker:
    """
    The main interface for masking.
    Coordinates PatternRegistry, MappingStore, MaskingEngine, and ReIdentifier.
    """

    def __init__(
        self,
        store: Optional[MappingStore] = None,
        registry: Optional[PatternRegistry] = None,
        config: Optional[ConfigStore] = None,
    ) -> None:
        """
        Initializes the Masker. Missing collaborators are built with defaults.
        """
        self.store = store or MappingStore()
        self.registry = registry or PatternRegistry()
        self.config = config or ConfigStore()
        self.masking_engine = MaskingEngine(self.store, self.registry, self.config)
        self.reidentifier = ReIdentifier(self.store)

    def mask(self, session_id: str, text: str) -> str:
        """
        Replaces sensitive infrastructure identifiers in `text` with tokens.

        Args:
            session_id: The session that owns the issued tokens.
            text: The raw text, e.g. command output headed for the model.

        Returns:
            The masked text.

        Raises:
            Exception: Any failure is logged and re-raised, so unmasked text
                is never passed along by mistake.
        """
        try:
            return self.masking_engine.mask(session_id, text)
        except Exception as e:
            logger.error(f"Masking failed for session {session_id}: {e}")
            raise

    def unmask(self, session_id: str, text: str) -> str:
        """
        Restores original values for the tokens in `text`.

        Args:
            session_id: The session that issued the tokens.
            text: Text containing `#(type-N)` tokens.

        Returns:
            The text with known tokens replaced by original values.
        """
        try:
            return self.reidentifier.unmask(session_id, text)
        except Exception as e:
            logger.error(f"Unmasking failed for session {session_id}: {e}")
            raise

    def reset(self) -> None:
        """Drops cached settings, patterns and session states; files are kept."""
        self.config.invalidate()
        self.registry.reset()
        self.store.reset()
        compile_custom_pattern.cache_clear()
        logger.info("Masker caches reset.")


_default: Optional[Masker] = None
_default_lock = threading.Lock()


def get_masker() -> Masker:
    """Returns the process-wide Masker, building it on first use."""
    global _default
    with _default_lock:
        if _default is None:
            _default = Masker()
        return _default


def mask(session_id: str, text: str) -> str:
    return get_masker().mask(session_id, text)


def unmask(session_id: str, text: str) -> str:
    return get_masker().unmask(session_id, text)
