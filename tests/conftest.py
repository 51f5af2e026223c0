"""Pytest configuration and fixtures for jules-command tests."""

from collections.abc import Iterator
from datetime import datetime
from pathlib import Path

import pytest

from jules_command.config import (
    AutoMergeConfig,
    ComplexityConfig,
    JulesCommandConfig,
    StallConfig,
)
from jules_command.constants import (
    ENV_CONFIG_FILE,
    ENV_DATABASE_PATH,
    ENV_DEBUG,
    ENV_GITHUB_TOKEN,
    ENV_JULES_API_KEY,
    ENV_LOG_LEVEL,
    ENV_NUMERIC_OVERRIDES,
)
from jules_command.services.auto_merge import AutoMergeEvaluator
from jules_command.services.complexity_scorer import ComplexityScorer
from jules_command.services.stall_detector import StallDetector
from jules_command.store.core import CommandStore
from tests.unit.fixtures import NOW


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of config resolution."""
    for name in (
        ENV_CONFIG_FILE,
        ENV_DATABASE_PATH,
        ENV_DEBUG,
        ENV_GITHUB_TOKEN,
        ENV_JULES_API_KEY,
        ENV_LOG_LEVEL,
    ):
        monkeypatch.delenv(name, raising=False)
    for env_var, _section, _key, _cast in ENV_NUMERIC_OVERRIDES:
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "jules-command.db"


@pytest.fixture
def store(db_path: Path) -> Iterator[CommandStore]:
    """A real CommandStore backed by a temporary database."""
    command_store = CommandStore(db_path)
    yield command_store
    command_store.close()


@pytest.fixture
def stall_config() -> StallConfig:
    return StallConfig()


@pytest.fixture
def detector(stall_config: StallConfig) -> StallDetector:
    return StallDetector(stall_config)


@pytest.fixture
def scorer() -> ComplexityScorer:
    return ComplexityScorer(ComplexityConfig())


@pytest.fixture
def evaluator() -> AutoMergeEvaluator:
    return AutoMergeEvaluator(AutoMergeConfig())


@pytest.fixture
def config(db_path: Path) -> JulesCommandConfig:
    """Default config pointing at the temporary database, with no API credentials."""
    return JulesCommandConfig(database_path=str(db_path))
