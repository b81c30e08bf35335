import pytest
from unittest.mock import MagicMock

from datastore.common.errors import ConfigurationError, DriverError, ErrorCode, PlaceholderError
from datastore.common.logger import DataStoreLogger
from datastore.execution.contracts import QueryOptions
from datastore.execution.executor import QueryExecutor
from datastore.execution.router import ServerRouter
from datastore.query.statements import StatementKind


@pytest.fixture
def connections(mock_handle):
    manager = MagicMock()
    manager.in_transaction = False
    manager.get.return_value = mock_handle
    mock_handle.execute.return_value.field_names.return_value = ["id"]
    return manager


@pytest.fixture
def executor(connections, store_config, seeded_rng):
    logger = DataStoreLogger("test", level="DEBUG")
    return QueryExecutor(connections, ServerRouter(store_config, logger, rng=seeded_rng), logger)


def test_options_coercion():
    options = QueryOptions.coerce({"page": 2, "name": "  list\n users "})

    assert options.paginated
    assert options.effective_page == 2
    assert options.effective_per_page == 25
    assert options.name == "list users"
    assert not QueryOptions.coerce(None).paginated


@pytest.mark.parametrize("options", [{"page": 0}, {"per_page": -5}, {"pages": 2}])
def test_invalid_options_rejected(options):
    with pytest.raises(ConfigurationError) as exc:
        QueryOptions.coerce(options)

    assert exc.value.error_code == ErrorCode.INVALID_OPTIONS


def test_select_is_expanded_paginated_and_routed_to_reader(executor, connections, mock_handle):
    # Arrange
    options = {"page": 2, "per_page": 25, "server": "replica_a"}

    # Act
    res = executor.execute(options, "select id from t where id in ???", [[1, 2]])

    # Assert
    connections.get.assert_called_once_with("replica_a")
    mock_handle.prepare.assert_called_once_with("select id from t where id in (?,?)\nlimit 25 offset 25")
    mock_handle.execute.assert_called_once_with(mock_handle.prepare.return_value, [1, 2])
    assert res
    assert res.kind is StatementKind.SELECT
    assert res.sql == "select id from t where id in (?,?)"
    assert (res.page, res.per_page) == (2, 25)
    mock_handle.commit_if_autocommit.assert_not_called()


def test_write_goes_to_primary_and_autocommits(executor, connections, mock_handle):
    res = executor.execute(None, "update t set ??? where id = ?", [{"a": 1}, 9])

    connections.get.assert_called_once_with("primary")
    mock_handle.execute.return_value.buffer.assert_called_once()
    mock_handle.commit_if_autocommit.assert_called_once()
    assert res.binds == [1, 9]


def test_write_inside_transaction_is_not_committed(executor, connections, mock_handle):
    connections.in_transaction = True

    executor.execute(None, "delete from t where id = ?", [1])

    mock_handle.commit_if_autocommit.assert_not_called()


def test_pagination_ignored_for_writes(executor, mock_handle):
    res = executor.execute({"page": 3}, "delete from t", [])

    mock_handle.prepare.assert_called_once_with("delete from t")
    assert not res.paginated


def test_driver_error_yields_falsy_result(executor, mock_handle):
    """Verifies that a database error is reported on the result instead of raised."""
    mock_handle.execute.side_effect = DriverError("syntax error near 'form'")

    res = executor.execute({"name": "broken"}, "select * form t", [])

    assert not res
    assert res.error() == "syntax error near 'form'"
    assert res.name == "broken"
    mock_handle.recover.assert_called_once()


def test_owned_handle_closed_after_driver_error(executor, mock_handle):
    mock_handle.owned = True
    mock_handle.execute.side_effect = DriverError("boom")

    executor.execute(None, "select 1", [])

    mock_handle.close.assert_called_once()


def test_placeholder_errors_raise_before_connecting(executor, connections):
    with pytest.raises(PlaceholderError):
        executor.execute(None, "select * from t where id = ? and x = ?", [1])

    connections.get.assert_not_called()


def test_unknown_server_raises(executor):
    with pytest.raises(ConfigurationError):
        executor.execute({"server": "replica_z"}, "select 1", [])
