"""Shared test fixtures for unit tests."""

import pytest

from boss_agent.core.config import clear_config_cache
from boss_agent.sessions import InMemoryTaskSessionStore, TaskSessionManager
from tests.unit.delegation_fixtures import FakeExecutor


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def session_manager():
    return TaskSessionManager(InMemoryTaskSessionStore())


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    clear_config_cache()
    yield
    clear_config_cache()
