# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_aegis

import os
from pathlib import Path
from typing import Any, Callable, Generator, List

import pytest
from loguru import logger

from wont_let_you_see.config import ConfigStore, MaskingSettings
from wont_let_you_see.masking import MaskingEngine, compile_custom_pattern
from wont_let_you_see.patterns import PatternRegistry
from wont_let_you_see.reidentifier import ReIdentifier
from wont_let_you_see.vault import MappingStore


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Runs every test in a fresh project directory with its own home and no masking env vars."""
    for key in list(os.environ):
        if key.startswith("WONT_LET_YOU_SEE_"):
            monkeypatch.delenv(key)
    home = tmp_path / "home"
    project = tmp_path / "project"
    home.mkdir()
    project.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(project)
    compile_custom_pattern.cache_clear()
    return project


@pytest.fixture
def make_config() -> Callable[..., ConfigStore]:
    def _make(**kwargs: Any) -> ConfigStore:
        return ConfigStore(loader=lambda: MaskingSettings(**kwargs))

    return _make


@pytest.fixture
def config(make_config: Callable[..., ConfigStore]) -> ConfigStore:
    return make_config()


@pytest.fixture
def store(tmp_path: Path) -> MappingStore:
    return MappingStore(root=tmp_path / "data")


@pytest.fixture
def registry() -> PatternRegistry:
    return PatternRegistry()


@pytest.fixture
def engine(store: MappingStore, registry: PatternRegistry, config: ConfigStore) -> MaskingEngine:
    return MaskingEngine(store, registry, config)


@pytest.fixture
def reidentifier(store: MappingStore) -> ReIdentifier:
    return ReIdentifier(store)


@pytest.fixture
def warnings_log() -> Generator[List[str], None, None]:
    """Collects loguru WARNING-and-above messages emitted during the test."""
    messages: List[str] = []
    handler_id = logger.add(lambda msg: messages.append(msg.record["message"]), level="WARNING")
    yield messages
    logger.remove(handler_id)
