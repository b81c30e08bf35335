import random

import pytest
from unittest.mock import MagicMock

from datastore.configs.manager import normalize_store


@pytest.fixture
def store_config():
    """Returns a datastore with a primary and two readers."""
    return normalize_store(
        "test",
        {
            "primary": {"driver": "Pg", "host": "db-primary", "database": "app", "user": "app", "schemas": ["public"]},
            "readers": {
                "replica_a": {"host": "db-replica-a"},
                "replica_b": {"host": "db-replica-b", "schemas": ["reporting"]},
            },
        },
    )


@pytest.fixture
def seeded_rng():
    return random.Random(1234)


@pytest.fixture
def sqlite_store(tmp_path):
    """Returns an inline SQLite datastore definition backed by a temp file."""
    return {
        "name": "sqlite_test",
        "primary": {"driver": "SQLite", "database": str(tmp_path / "test.db")},
        "logging": {"level": "DEBUG"},
    }


@pytest.fixture
def mock_handle():
    """Returns a connection handle double with a qmark paramstyle."""
    handle = MagicMock()
    handle.owned = False
    handle.closed = False
    handle.dialect_name = "sqlite"
    return handle
