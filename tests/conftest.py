from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from mongokit.config import get_settings
from mongokit.database.client import MongoDBClient


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def mongo() -> MagicMock:
    """Stand-in for pymongo.MongoClient."""
    return MagicMock(name="MongoClient")


@pytest.fixture
def collection(mongo: MagicMock) -> MagicMock:
    return mongo.__getitem__.return_value.__getitem__.return_value


@pytest.fixture
def db(mongo: MagicMock) -> MongoDBClient:
    return MongoDBClient(
        "mongodb://localhost:27017",
        "testdb",
        context_timeout=5,
        client=mongo,
    )
