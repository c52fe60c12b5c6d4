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
Masking configuration.

Settings come from three layers, lowest precedence first: built-in defaults,
a `.wont-let-you-see.json` file (nearest ancestor of the working directory,
else the home directory), and `WONT_LET_YOU_SEE_*` environment variables.
"""

import json
import threading
from pathlib import Path
from typing import Annotated, Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, PydanticBaseSettingsSource, SettingsConfigDict

from wont_let_you_see.utils.logger import logger

CONFIG_FILENAME = ".wont-let-you-see.json"

_JSON_KEYS = {
    "enabled": "enabled",
    "revealedPatterns": "revealed_patterns",
    "revealed_patterns": "revealed_patterns",
    "customPatterns": "custom_patterns",
    "custom_patterns": "custom_patterns",
}


class MaskingSettings(BaseSettings):
    """
    Masking policy.

    Uses environment variables with the WONT_LET_YOU_SEE_ prefix.
    List values are comma separated in the environment.
    """

    model_config = SettingsConfigDict(env_prefix="WONT_LET_YOU_SEE_", extra="ignore")

    enabled: bool = True
    revealed_patterns: Annotated[List[str], NoDecode] = []
    custom_patterns: Annotated[List[str], NoDecode] = []

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats init kwargs, which carry the JSON file values.
        return env_settings, init_settings

    @field_validator("enabled", mode="before")
    @classmethod
    def parse_enabled(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower() != "false" and v.strip() != "0"
        return v

    @field_validator("revealed_patterns", "custom_patterns", mode="before")
    @classmethod
    def split_csv(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    def is_pattern_enabled(self, name: str) -> bool:
        """Returns False if masking is off globally or `name` is revealed."""
        if not self.enabled:
            return False
        return name not in self.revealed_patterns


def _home_dir(home: Optional[Path] = None) -> Optional[Path]:
    if home is not None:
        return home.resolve()
    try:
        return Path.home().resolve()
    except RuntimeError:
        # No HOME and no passwd entry.
        return None


def _find_ancestor_config(start: Path, home: Optional[Path]) -> Optional[Path]:
    current = start.resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.exists():
            return candidate
        if current == home or current.parent == current:
            return None
        current = current.parent


def _config_candidates(start: Optional[Path], home: Optional[Path]) -> List[Path]:
    home_dir = _home_dir(home)
    candidates: List[Path] = []
    ancestor = _find_ancestor_config(start or Path.cwd(), home_dir)
    if ancestor is not None:
        candidates.append(ancestor)
    if home_dir is not None:
        home_file = home_dir / CONFIG_FILENAME
        if home_file.exists() and home_file not in candidates:
            candidates.append(home_file)
    return candidates


def find_config_file(start: Optional[Path] = None, home: Optional[Path] = None) -> Optional[Path]:
    """
    Locates the JSON config file.

    Walks from `start` (default: the working directory) up through its
    ancestors, stopping after the home directory or the filesystem root.
    Falls back to `<home>/.wont-let-you-see.json` when a home directory
    can be resolved.
    """
    candidates = _config_candidates(start, home)
    return candidates[0] if candidates else None


def _read_json_config(path: Path) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Ignoring config file {path}: top level is not an object")
        return None
    return {_JSON_KEYS[key]: value for key, value in data.items() if key in _JSON_KEYS}


def load_settings(start: Optional[Path] = None, home: Optional[Path] = None) -> MaskingSettings:
    """
    Builds MaskingSettings from the JSON config file and the environment.

    An unreadable project file falls through to the home file.
    """
    path: Optional[Path] = None
    file_values: Dict[str, Any] = {}
    for candidate in _config_candidates(start, home):
        values = _read_json_config(candidate)
        if values is not None:
            path, file_values = candidate, values
            break
    settings = MaskingSettings(**file_values)
    logger.debug(
        f"Loaded settings from {path or 'environment'}: enabled={settings.enabled}, "
        f"revealed={settings.revealed_patterns}, custom={len(settings.custom_patterns)}"
    )
    return settings


class ConfigStore:
    """Owns the process copy of MaskingSettings; load once, invalidate on demand."""

    def __init__(self, loader: Callable[[], MaskingSettings] = load_settings) -> None:
        self._loader = loader
        self._cached: Optional[MaskingSettings] = None
        self._lock = threading.Lock()

    def get(self) -> MaskingSettings:
        with self._lock:
            if self._cached is None:
                self._cached = self._loader()
            return self._cached

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None
