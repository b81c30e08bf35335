import pytest
from unittest.mock import MagicMock

from datastore import DataStore
from datastore.configs.manager import ConfigManager


@pytest.fixture
def store(store_config):
    ds = DataStore(store_config, config_manager=ConfigManager(search_paths=[]))
    ds.executor = MagicMock()
    ds.connections = MagicMock()
    return ds


def test_logger_built_from_store_config():
    ds = DataStore(
        {"name": "logged", "primary": {"driver": "sqlite"}, "logging": {"level": "info", "show_sql": True}},
        config_manager=ConfigManager(search_paths=[]),
    )

    assert ds.name == "logged"
    assert ds.logger.level == "INFO"
    assert ds.logger.show_sql() is True
    ds.close()


def test_do_passes_only_given_options(store):
    store.do("select * from t where id in ???", [1, 2], page=3, name="by ids")

    store.executor.execute.assert_called_once_with(
        {"page": 3, "name": "by ids"}, "select * from t where id in ???", ([1, 2],)
    )


def test_execute_is_passed_through(store):
    store.execute({"server": "replica_a"}, "select ?", [1])

    store.executor.execute.assert_called_once_with({"server": "replica_a"}, "select ?", [1])


def test_transaction_commits_on_success(store):
    store.connections.in_transaction = True

    with store.transaction() as tx:
        assert tx is store

    store.connections.begin.assert_called_once()
    store.connections.commit.assert_called_once()
    store.connections.rollback.assert_not_called()


def test_transaction_rolls_back_and_reraises(store):
    store.connections.in_transaction = True

    with pytest.raises(KeyError):
        with store.transaction():
            raise KeyError("boom")

    store.connections.rollback.assert_called_once()
    store.connections.commit.assert_not_called()


def test_context_manager_closes_connections(store):
    with store:
        pass

    store.connections.close.assert_called_once()
