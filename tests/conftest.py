"""Shared fixtures: a real temporary database and the repositories on it."""

import tempfile
from pathlib import Path

import pytest

from triage.captures.repository import CaptureRepository
from triage.entities.repository import EntityRepository
from triage.memory.manager import PreferenceMemory
from triage.memory.repository import PreferenceRepository
from triage.storage.database import DatabaseManager


@pytest.fixture
async def db_manager():
    """Create test database manager with migrations applied."""
    with tempfile.TemporaryDirectory() as temp_dir:
        db_path = Path(temp_dir) / "test.db"
        manager = DatabaseManager(f"sqlite:///{db_path}")
        await manager.initialize()
        yield manager
        await manager.close()


@pytest.fixture
def capture_repo(db_manager):
    return CaptureRepository(db_manager)


@pytest.fixture
def entity_repo(db_manager):
    return EntityRepository(db_manager)


@pytest.fixture
def preference_repo(db_manager):
    return PreferenceRepository(db_manager)


@pytest.fixture
def memory(preference_repo):
    return PreferenceMemory(preference_repo)
