# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_aegis

"""Durable storage for token mappings.

This module provides the MappingStore, which keeps one MappingTable per
session in memory and mirrors every change to a JSON file on disk, so that
tokens issued before a restart still resolve after it.
"""

import os
import re
import tempfile
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, MutableMapping, Optional

from cachetools import LRUCache
from pydantic import ValidationError

from wont_let_you_see.exceptions import MappingFileError
from wont_let_you_see.models import MappingTable
from wont_let_you_see.utils.logger import logger

APP_DIR = ".opencode"
MAPPING_FILENAME = "wont-let-you-see-mapping.json"

# Types may contain hyphens ("eks-cluster"); the counter is the last "-N".
_TOKEN_PARTS = re.compile(r"^#\((?P<type>[^)]+)-(?P<n>\d+)\)$")


def format_token(token_type: str, counter: int) -> str:
    return f"#({token_type}-{counter})"


@dataclass
class SessionState:
    """In-memory view of one session: the table, per-type counters, and a value index."""

    table: MappingTable
    counters: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    by_value: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_table(cls, table: MappingTable) -> "SessionState":
        state = cls(table=table)
        for token, value in table.entries.items():
            state.by_value.setdefault(value, token)
            match = _TOKEN_PARTS.match(token)
            if match:
                n = int(match.group("n"))
                state.counters[match.group("type")] = max(state.counters[match.group("type")], n)
        return state


class MappingStore:
    """Manages per-session MappingTables with a write-through JSON mirror.

    Session states are cached in an LRU cache; an evicted session is simply
    re-read from disk on next access. Each session has its own lock, so the
    read-check-increment-write sequence of `add_entry` cannot race for the
    same session, while different sessions proceed independently.
    """

    def __init__(self, root: Optional[Path] = None, max_cached_sessions: int = 1024) -> None:
        """Initializes the MappingStore.

        Args:
            root: Directory under which `.opencode/sessions/` lives. If None,
                it is chosen per call (project directory or home directory).
            max_cached_sessions: Maximum number of session states kept in memory.
        """
        self._root = Path(root) if root is not None else None
        self._states: MutableMapping[str, SessionState] = LRUCache(maxsize=max_cached_sessions)
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    # ------------------------------------------------------------------
    # Paths and locking
    # ------------------------------------------------------------------

    def _resolve_root(self) -> Path:
        if self._root is not None:
            return self._root
        cwd = Path.cwd()
        if (cwd / APP_DIR).exists():
            return cwd
        try:
            home = Path.home()
        except RuntimeError:
            # No HOME and no passwd entry.
            return cwd
        return home if home.exists() else cwd

    def get_session_path(self, session_id: str) -> Path:
        """Returns the mapping file location for a session.

        Prefers the working directory when it holds a `.opencode` directory
        (or when there is no usable home directory), otherwise the home directory.

        Raises:
            ValueError: If the session id cannot be used as a directory name.
        """
        if not session_id or session_id in (".", "..") or "/" in session_id or "\\" in session_id:
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self._resolve_root() / APP_DIR / "sessions" / session_id / MAPPING_FILENAME

    def _lock_for(self, session_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.RLock()
            return lock

    # ------------------------------------------------------------------
    # State access (callers hold the session lock)
    # ------------------------------------------------------------------

    def _read(self, session_id: str) -> SessionState:
        path = self.get_session_path(session_id)
        if not path.exists():
            return SessionState(table=MappingTable())
        try:
            table = MappingTable.model_validate_json(path.read_text(encoding="utf-8"))
        except (ValidationError, UnicodeDecodeError) as e:
            raise MappingFileError(f"Mapping file for session {session_id} is corrupted: {path}") from e
        logger.debug(f"Loaded {len(table.entries)} mappings for session {session_id}.")
        return SessionState.from_table(table)

    def _state(self, session_id: str) -> SessionState:
        with self._guard:
            state = self._states.get(session_id)
        if state is None:
            state = self._read(session_id)
            with self._guard:
                self._states[session_id] = state
        return state

    def _write(self, session_id: str, table: MappingTable) -> None:
        path = self.get_session_path(session_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Readers never observe a partial file.
        tmp = tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        )
        try:
            with tmp:
                tmp.write(table.model_dump_json(indent=2))
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp.name, path)
        except Exception:
            if os.path.exists(tmp.name):
                os.unlink(tmp.name)
            raise

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    def create_mapping(self, session_id: str) -> MappingTable:
        """Starts a session afresh, overwriting any previous state in memory and on disk.

        Raises:
            OSError: If the empty mapping cannot be written.
        """
        with self._lock_for(session_id):
            state = SessionState(table=MappingTable())
            self._write(session_id, state.table)
            with self._guard:
                self._states[session_id] = state
            return state.table.model_copy(deep=True)

    def load_mapping(self, session_id: str) -> MappingTable:
        """Returns a copy of the session's table, reading the file on first access.

        A missing file yields an empty table, which is not written until the first entry.

        Raises:
            MappingFileError: If the file exists but is not a valid mapping.
        """
        with self._lock_for(session_id):
            return self._state(session_id).table.model_copy(deep=True)

    def add_entry(self, session_id: str, token_type: str, original_value: str) -> str:
        """Returns the token for `original_value`, allocating and persisting a new one if needed.

        An existing value returns its existing token without touching the
        counters or the file. A new value gets `#(type-N)` with N one above
        the type's counter, and is written to disk before returning.

        Raises:
            OSError: If the new entry cannot be persisted; memory is left unchanged.
        """
        with self._lock_for(session_id):
            state = self._state(session_id)
            existing = state.by_value.get(original_value)
            if existing is not None:
                return existing

            counter = state.counters[token_type] + 1
            token = format_token(token_type, counter)
            state.table.entries[token] = original_value
            try:
                self._write(session_id, state.table)
            except Exception:
                del state.table.entries[token]
                raise
            state.counters[token_type] = counter
            state.by_value[original_value] = token
            logger.debug(f"Issued {token} for session {session_id}.")
            return token

    def get_original(self, session_id: str, token: str) -> Optional[str]:
        with self._lock_for(session_id):
            return self._state(session_id).table.entries.get(token)

    def get_token(self, session_id: str, original_value: str) -> Optional[str]:
        with self._lock_for(session_id):
            return self._state(session_id).by_value.get(original_value)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self, session_id: Optional[str] = None) -> None:
        """Evicts cached state (one session, or all); files are untouched."""
        with self._guard:
            if session_id is None:
                self._states.clear()
            else:
                self._states.pop(session_id, None)

    def delete_mapping(self, session_id: str) -> None:
        """Forgets a session entirely, removing its mapping file if present."""
        with self._lock_for(session_id):
            path = self.get_session_path(session_id)
            if path.exists():
                path.unlink()
            with self._guard:
                self._states.pop(session_id, None)
