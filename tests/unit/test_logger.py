import json
import logging
import re

import pytest

from datastore.common.errors import ConfigurationError, CriticalError
from datastore.common.logger import (
    DataStoreLogger,
    JsonFormatter,
    QueryContextFilter,
    condense_name,
    configure_logging,
    query_context,
    random_query_name,
)


class _Query:
    name = "load users"
    sql = "select *\nfrom users\nwhere id = ?"
    binds = [42]


def test_messages_below_level_are_suppressed(caplog):
    logger = DataStoreLogger("orders", level="WARN")

    with caplog.at_level(logging.DEBUG, logger="datastore.orders"):
        assert logger.info("hidden") is False
        assert logger.warn("shown") is True

    assert "shown" in caplog.text
    assert "hidden" not in caplog.text


def test_lines_carry_level_datastore_and_query_name(caplog):
    logger = DataStoreLogger("orders", level="DEBUG")

    with caplog.at_level(logging.DEBUG, logger="datastore.orders"):
        logger.error("boom", query=_Query())

    assert "[ERROR] [orders] [load users] boom" in caplog.text


def test_show_sql_and_vars_append_banners(caplog):
    logger = DataStoreLogger("orders", level="DEBUG", show_sql=True, show_vars=True)

    with caplog.at_level(logging.DEBUG, logger="datastore.orders"):
        logger.info("running", query=_Query())

    assert "SQL QUERY" in caplog.text
    assert "from users" in caplog.text
    assert "BIND VARIABLES" in caplog.text
    assert "[42]" in caplog.text


def test_show_vars_needs_show_sql(caplog):
    logger = DataStoreLogger("orders", level="DEBUG", show_vars=True)

    with caplog.at_level(logging.DEBUG, logger="datastore.orders"):
        logger.info("running", query=_Query())

    assert "BIND VARIABLES" not in caplog.text


def test_trace_appends_stack(caplog):
    logger = DataStoreLogger("orders", level="DEBUG", trace=True)

    with caplog.at_level(logging.DEBUG, logger="datastore.orders"):
        logger.debug("where am I")

    assert "STACK TRACE" in caplog.text
    assert "test_trace_appends_stack" in caplog.text


def test_blank_messages_are_dropped():
    logger = DataStoreLogger("orders", level="DEBUG")

    assert logger.info("   ", None) is False


def test_critical_raises_after_logging(caplog):
    logger = DataStoreLogger("orders", level="ERROR")

    with caplog.at_level(logging.DEBUG, logger="datastore.orders"):
        with pytest.raises(CriticalError):
            logger.critical("database on fire")

    assert "database on fire" in caplog.text


def test_invalid_level_raises_value_error():
    logger = DataStoreLogger("orders")

    with pytest.raises(ValueError):
        logger.log("LOUD", "message")


def test_level_setter_ignores_invalid_names():
    logger = DataStoreLogger("orders", level="info")

    logger.level = "nonsense"
    assert logger.level == "INFO"

    logger.level = "warning"
    assert logger.level == "WARN"
    assert logger.severity() == 2
    assert logger.severity("critical") == 0
    assert logger.severity("DEBUG") == 4


def test_flag_accessors():
    logger = DataStoreLogger("orders")

    assert logger.show_sql() is False
    assert logger.show_sql(True) is True
    assert logger.trace(True) is True
    assert logger.show_vars() is False


def test_fail_logs_and_raises(caplog):
    logger = DataStoreLogger("orders", level="ERROR")
    error = ConfigurationError("bad server")

    with caplog.at_level(logging.DEBUG, logger="datastore.orders"):
        with pytest.raises(ConfigurationError) as exc:
            logger.fail(error)

    assert exc.value is error
    assert "[ERROR] [orders]" in caplog.text


def test_query_context_names_unlabelled_lines(caplog):
    logger = DataStoreLogger("orders", level="DEBUG")

    with caplog.at_level(logging.DEBUG, logger="datastore.orders"):
        with query_context("nightly-report"):
            logger.info("step")

    assert "[nightly-report] step" in caplog.text


def test_generated_query_names():
    assert re.fullmatch(r"DS\d+-[0-9a-f]{6}", random_query_name())


def test_condense_name():
    assert condense_name("  load\n   all\tusers ") == "load all users"


def test_json_formatter_includes_query_name():
    record = logging.LogRecord("datastore.orders", logging.INFO, __file__, 1, "hello", None, None)
    with query_context("q1"):
        QueryContextFilter().filter(record)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "hello"
    assert payload["query_name"] == "q1"


def test_configure_logging_installs_one_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging("DEBUG", json_format=True)

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.DEBUG
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_instances_sharing_a_logger_keep_their_own_levels(caplog):
    chatty = DataStoreLogger("shared", level="DEBUG")
    quiet = DataStoreLogger("shared", level="CRITICAL")

    with caplog.at_level(logging.NOTSET):
        assert chatty.debug("hello") is True
        assert quiet.debug("muted") is False

    assert "[DEBUG] [shared]" in caplog.text
    assert "hello" in caplog.text
    assert "muted" not in caplog.text
    assert quiet.level == "CRITICAL"
    assert chatty.level == "DEBUG"
