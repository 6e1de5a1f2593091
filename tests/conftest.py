"""Pytest fixtures for royalty engine tests."""

from __future__ import annotations

from uuid import UUID, uuid4

import pytest

from royalty_engine.config import EngineConfig, RetryConfig, WorkflowConfig
from royalty_engine.events.emitter import AsyncEventEmitter
from royalty_engine.repository.memory import InMemoryRepository
from tests.factories import Catalog, RecordingHandler, RecordingSleep, seed_catalog


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def catalog(repo: InMemoryRepository, user_id: UUID) -> Catalog:
    return seed_catalog(repo, user_id)


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(
        retry=RetryConfig(max_retries=3, initial_delay=0.01, max_delay=0.05, timeout=2.0),
        workflow=WorkflowConfig(conflict_policy="reject", batch_size=2),
    )


@pytest.fixture
def emitter() -> AsyncEventEmitter:
    return AsyncEventEmitter()


@pytest.fixture
def recorder(emitter: AsyncEventEmitter) -> RecordingHandler:
    handler = RecordingHandler()
    emitter.on_all(handler)
    return handler
