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
Host hook adapter.

Wires `mask`/`unmask` into an agent host's tool and chat events: infra
commands are unmasked before they run, their output is masked before the
model sees it, and user chat text is masked on the way in.
"""

import re
import threading
import time
from typing import Any, Callable, Dict, List, MutableMapping

from cachetools import TTLCache

from wont_let_you_see.main import Masker
from wont_let_you_see.utils.logger import logger

INFRA_COMMAND_PATTERN = re.compile(r"\b(aws|terraform|kubectl|helm)\s")
SHELL_TOOL = "bash"


class HookAdapter:
    """
    Translates host events into Masker calls.

    Calls whose command was unmasked are remembered until their output has
    been masked. Entries expire after `call_ttl` seconds so calls that never
    complete do not pile up.
    """

    def __init__(
        self,
        masker: Masker,
        call_ttl: float = 3600,
        max_calls: int = 4096,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.masker = masker
        self._infra_calls: MutableMapping[str, bool] = TTLCache(maxsize=max_calls, ttl=call_ttl, timer=timer)
        self._lock = threading.Lock()

    def tool_execute_before(self, tool: str, session_id: str, call_id: str, args: Dict[str, Any]) -> None:
        """Unmasks an infra command in `args["command"]` in place."""
        if tool != SHELL_TOOL:
            return
        command = args.get("command")
        if not isinstance(command, str) or not INFRA_COMMAND_PATTERN.search(command):
            return

        with self._lock:
            self._infra_calls[call_id] = True
        args["command"] = self.masker.unmask(session_id, command)
        logger.debug(f"Unmasked infra command for call {call_id}.")

    def tool_execute_after(self, tool: str, session_id: str, call_id: str, output: Dict[str, Any]) -> None:
        """Masks the output of a remembered infra command in place."""
        if tool != SHELL_TOOL:
            return
        with self._lock:
            remembered = self._infra_calls.pop(call_id, False)
        if not remembered:
            return

        if output.get("output"):
            output["output"] = self.masker.mask(session_id, output["output"])

        # The TUI renders metadata.output when present.
        metadata = output.get("metadata")
        if isinstance(metadata, dict) and metadata.get("output"):
            metadata["output"] = self.masker.mask(session_id, metadata["output"])

    def chat_message(self, session_id: str, parts: List[Dict[str, Any]]) -> None:
        """Masks the text parts of a chat message in place."""
        for part in parts:
            if part.get("type") == "text" and part.get("text"):
                part["text"] = self.masker.mask(session_id, part["text"])
