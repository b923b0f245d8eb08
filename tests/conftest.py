"""Shared fixtures for the test suite."""

import pytest

from pressroom.config.ingestion import IngestionSettings
from pressroom.database.engine import build_engine, build_session_factory, init_models


@pytest.fixture
def settings():
    return IngestionSettings()


@pytest.fixture
async def session_factory():
    """Fresh in-memory SQLite store per test."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await init_models(engine)
    yield build_session_factory(engine)
    await engine.dispose()
