import pytest

from datastore import DataStore, PlaceholderError, TransactionError
from datastore.configs.manager import ConfigManager


@pytest.fixture()
def db(sqlite_store):
    store = DataStore(sqlite_store, config_manager=ConfigManager(search_paths=[]))
    created = store.do("create table users (id integer primary key, name text, age integer)")
    assert created, created.error()
    yield store
    store.close()


@pytest.fixture()
def seeded(db):
    rows = [{"name": f"user{i:03d}", "age": 20 + (i % 50)} for i in range(1, 121)]
    res = db.do("insert into users ???", rows)
    assert res.count() == 120
    return db


def test_insert_rows_and_select_by_list(db):
    # Validates the three expansion forms against a real driver.
    # Arrange
    db.do("insert into users ???", [{"name": "Ada", "age": 36}, {"name": "Linus", "age": 45}, {"name": "Grace", "age": 50}])

    # Act
    res = db.do("select name from users where name in ??? order by name", ["Ada", "Grace"])

    # Assert
    assert [row["name"] for row in res.all()] == ["Ada", "Grace"]


def test_update_through_set_clause(db):
    db.do("insert into users ???", [{"name": "Ada", "age": 36}])

    updated = db.do("update users set ??? where name = ?", {"name": "Ada L.", "age": 37}, "Ada")

    assert updated.count() == 1
    res = db.do("select name, age from users")
    assert res.next_hashref() == {"name": "Ada L.", "age": 37}
    assert res.next_hashref() is None


def test_pagination_and_pager(seeded):
    res = seeded.do("select id, name from users order by id", page=2, per_page=25)

    rows = res.all()
    pager = res.pager()

    assert [r["id"] for r in rows] == list(range(26, 51))
    assert pager.total_entries == 120
    assert pager.last_page == 5
    assert pager.next_page == 3


def test_count_fast_path_and_fallback(seeded):
    fast = seeded.do("select count(*) from users where age > ?", 60)
    fallback = seeded.do("select id from users where age > ?", 60)

    assert fast.count() == fallback.count() == 18
    assert len(fallback.all()) == 18


def test_driver_error_gives_falsy_result(db):
    res = db.do("select * from no_such_table")

    assert not res
    assert "no_such_table" in res.error()
    # the connection stays usable
    assert db.do("select 1")


def test_placeholder_mismatch_raises(db):
    with pytest.raises(PlaceholderError):
        db.do("select * from users where id = ?")


def test_transaction_rollback(db):
    with pytest.raises(RuntimeError):
        with db.transaction():
            db.do("insert into users ???", [{"name": "ghost", "age": 1}])
            assert db.in_transaction
            raise RuntimeError("abort")

    assert not db.in_transaction
    assert db.do("select count(*) from users").count() == 0


def test_transaction_commit(db):
    db.begin()
    db.do("insert into users (name, age) values (?, ?)", "Ada", 36)
    db.commit()

    assert db.do("select count(*) from users").count() == 1
    with pytest.raises(TransactionError):
        db.commit()


def test_non_cached_connections(sqlite_store):
    store = DataStore({**sqlite_store, "cache_connection": False}, config_manager=ConfigManager(search_paths=[]))
    try:
        with store.do("create table t (id integer)"):
            pass
        with store.do("insert into t ???", [{"id": 1}, {"id": 2}]) as inserted:
            assert inserted.count() == 2

        with store.do("select id from t order by id") as res:
            assert [row.id for row in res] == [1, 2]

        store.begin()
        store.do("insert into t (id) values (?)", 3)
        store.rollback()

        assert store.do("select count(*) from t").count() == 2
    finally:
        store.close()


def test_reader_routing_on_same_file(sqlite_store):
    config = {**sqlite_store, "readers": {"replica": {}}, "default_reader": "replica"}
    with DataStore(config, config_manager=ConfigManager(search_paths=[])) as store:
        store.do("create table t (id integer)")
        store.do("insert into t values (?)", 1)

        res = store.do("select id from t")

        assert res.server == "replica"
        assert res.next() and res["id"] == 1


def test_count_with_trailing_line_comment(seeded):
    res = seeded.do("select id from users -- every user")

    assert res, res.error()
    assert res.count() == 120


def test_pagination_over_bound_limit(seeded):
    res = seeded.do("select id from users order by id limit ?", 3, page=1, per_page=2)

    assert res, res.error()
    assert [r["id"] for r in res.all()] == [1, 2]
    assert res.count() == 3


def test_close_releases_uncached_handles(sqlite_store):
    store = DataStore({**sqlite_store, "cache_connection": False}, config_manager=ConfigManager(search_paths=[]))
    res = store.do("select 1 as one")
    handle = res._handle

    store.close()

    assert handle.closed


def test_reads_do_not_hold_a_transaction_open(sqlite_store):
    config = {**sqlite_store, "readers": {"replica": {}}, "default_reader": "replica"}
    with DataStore(config, config_manager=ConfigManager(search_paths=[])) as store:
        store.do("create table t (id integer)")
        store.do("insert into t values (?)", 1)

        drained = store.do("select id from t")
        assert [r["id"] for r in drained.all()] == [1]
        assert not drained._handle.connection.in_transaction()

        partial = store.do("select id from t")
        assert partial.next()
        partial.close()
        assert not partial._handle.connection.in_transaction()
