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
Re-identification module for reversing tokenization.

This module restores original values in text that carries `#(type-N)`
tokens, e.g. a command the model wants to run against real infrastructure.
"""

import re
from typing import Dict, Optional

from wont_let_you_see.models import TOKEN_RE
from wont_let_you_see.utils.logger import logger
from wont_let_you_see.vault import MappingStore


class ReIdentifier:
    """
    Handles the reversal of tokenization (re-identification).
    """

    def __init__(self, store: MappingStore) -> None:
        """
        Initializes the ReIdentifier.

        Args:
            store: The MappingStore instance to resolve tokens from.
        """
        self.store = store

    def unmask(self, session_id: str, text: str) -> str:
        """
        Replaces known tokens with their original values.

        Unknown tokens stay in the text as they are; each distinct one is
        reported once per call as a warning. This never fails because of a
        token it cannot resolve.

        Args:
            session_id: The session whose mapping table resolves the tokens.
            text: The text containing tokens.

        Returns:
            The text with original values restored where known.
        """
        if not text:
            return text

        resolved: Dict[str, Optional[str]] = {}
        for token in TOKEN_RE.findall(text):
            if token not in resolved:
                resolved[token] = self.store.get_original(session_id, token)
                if resolved[token] is None:
                    logger.warning(f"Unknown token: {token}")

        if not resolved:
            return text

        def _substitute(match: "re.Match[str]") -> str:
            original = resolved[match.group(0)]
            return match.group(0) if original is None else original

        # Single pass, so a restored value that itself looks like a token is not expanded again.
        return TOKEN_RE.sub(_substitute, text)
