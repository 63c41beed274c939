"""
Shared fixtures: a throwaway SQLite database per test.
"""

import pytest

from feedposts.models.database import Database
from feedposts.services.store import FeedStore


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'feedposts.db'}"


@pytest.fixture
async def database(database_url):
    db = Database(database_url)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
async def store(database) -> FeedStore:
    return FeedStore(database)
