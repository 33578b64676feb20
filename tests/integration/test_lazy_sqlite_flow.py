import sqlite3

import pytest

from adapters.context import Context
from adapters.factory import get_adapter
from adapters.sqlite import SQLiteAdapter
from statement import LazyStatement


class UnpreparableSQLiteAdapter(SQLiteAdapter):
    def prepare(self, query):
        raise sqlite3.OperationalError("prepare disabled")


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "orders.db"
    conn = sqlite3.connect(str(path))
    try:
        conn.execute("CREATE TABLE orders (id INTEGER PRIMARY KEY, country TEXT, amount REAL)")
        conn.executemany(
            "INSERT INTO orders(country, amount) VALUES (?, ?)",
            [("A", 10.0), ("B", 20.0), ("A", 5.5), ("C", 1.0)],
        )
        conn.commit()
    finally:
        conn.close()
    return str(path)


@pytest.fixture
def handles(db_path):
    prepared_db = get_adapter("sqlite", {"db_path": db_path})
    fallback_db = UnpreparableSQLiteAdapter(source_config={"db_path": db_path})
    yield prepared_db, fallback_db
    prepared_db.close()
    fallback_db.close()


def test_prepared_and_fallback_paths_return_the_same_rows(handles):
    prepared_db, fallback_db = handles
    sql = "SELECT country, SUM(amount) AS total FROM orders WHERE amount >= ? GROUP BY country ORDER BY country"

    prepared = LazyStatement(prepared_db, sql)
    fallback = LazyStatement(fallback_db, sql)
    assert prepared.prepared is True
    assert fallback.prepared is False

    for threshold in (0, 5.5, 50):
        assert prepared.query(threshold).all() == fallback.query(threshold).all()
        ctx = Context.with_timeout(5000)
        assert prepared.query_context(ctx, threshold).values() == fallback.query_context(ctx, threshold).values()


def test_prepared_and_fallback_paths_report_the_same_counts(handles):
    prepared_db, fallback_db = handles
    sql = "UPDATE orders SET amount = amount + :delta WHERE country = :country"

    prepared = LazyStatement(prepared_db, sql).execute({"delta": 1, "country": "A"})
    fallback = LazyStatement(fallback_db, sql).execute({"delta": -1, "country": "A"})

    assert prepared.rows_affected == fallback.rows_affected == 2
    totals = LazyStatement(prepared_db, "SELECT SUM(amount) FROM orders WHERE country = ?")
    assert totals.query_row("A").scan() == (15.5,)


def test_query_row_matches_on_both_paths(handles):
    sql = "SELECT country, amount FROM orders WHERE id = ?"

    for db in handles:
        stmt = LazyStatement(db, sql)
        assert stmt.query_row(2).as_dict() == {"country": "B", "amount": 20.0}
        assert stmt.query_row_context(Context.background(), 99).found is False
        assert stmt.raw() == sql
