import random

import pytest

from datastore.common.errors import ConfigurationError, ErrorCode
from datastore.configs.manager import normalize_store
from datastore.configs.models import RANDOM_READER
from datastore.execution.contracts import QueryOptions
from datastore.execution.router import ServerRouter
from datastore.query.statements import StatementKind


def _store(default_reader=None, readers=True):
    raw = {"primary": {"driver": "sqlite", "database": "primary.db"}}
    if readers:
        raw["readers"] = {"r1": {"database": "r1.db"}, "r2": {"database": "r2.db"}}
    if default_reader:
        raw["default_reader"] = default_reader
    return normalize_store("routing", raw)


@pytest.mark.parametrize("kind", [StatementKind.INSERT, StatementKind.UPDATE, StatementKind.DELETE, StatementKind.OTHER])
def test_writes_always_go_to_primary(kind):
    router = ServerRouter(_store(default_reader="r1"))

    name, _ = router.select(QueryOptions(server="r2"), kind)

    assert name == "primary"


def test_reads_in_transaction_go_to_primary():
    router = ServerRouter(_store(default_reader="r1"))

    name, _ = router.select(QueryOptions(), StatementKind.SELECT, in_transaction=True)

    assert name == "primary"


def test_requested_server_wins_for_reads():
    router = ServerRouter(_store(default_reader="r1"))

    name, endpoint = router.select(QueryOptions(server="r2"), StatementKind.SELECT)

    assert name == "r2"
    assert endpoint.database == "r2.db"


def test_primary_can_be_requested_for_reads():
    router = ServerRouter(_store(default_reader="r1"))

    name, _ = router.select(QueryOptions(server="primary"), StatementKind.SELECT)

    assert name == "primary"


def test_default_reader_used_when_no_server_requested():
    router = ServerRouter(_store(default_reader="r2"))

    name, _ = router.select(QueryOptions(), StatementKind.SELECT)

    assert name == "r2"


def test_random_reader_is_drawn_from_readers():
    """Verifies that '__random__' picks among the readers using the injected random source."""
    rng = random.Random(7)
    expected = random.Random(7).choice(["r1", "r2"])
    router = ServerRouter(_store(default_reader=RANDOM_READER), rng=rng)

    name, _ = router.select(QueryOptions(), StatementKind.SELECT)

    assert name == expected


def test_reads_without_readers_go_to_primary():
    router = ServerRouter(_store(readers=False))

    name, _ = router.select(QueryOptions(), StatementKind.SELECT)

    assert name == "primary"


def test_unknown_server_rejected_even_for_writes():
    router = ServerRouter(_store())

    with pytest.raises(ConfigurationError) as exc:
        router.select(QueryOptions(server="nope"), StatementKind.INSERT)

    assert exc.value.error_code == ErrorCode.UNKNOWN_SERVER


def test_random_reader_choice_is_uniform():
    router = ServerRouter(_store(), rng=random.Random(2024))

    picks = [router.select(QueryOptions(), StatementKind.SELECT)[0] for _ in range(2000)]

    assert set(picks) == {"r1", "r2"}
    assert 0.45 <= picks.count("r1") / len(picks) <= 0.55
