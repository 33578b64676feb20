import threading
import time

import psycopg
import pytest

from adapters.context import Context
from adapters.errors import Cancelled
from adapters.postgres import PostgresAdapter
from statement import prepare


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.description = None
        self.rowcount = -1
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, sql, params=None, prepare=None):
        self.conn.executed.append((sql, params, prepare))
        if self.conn.reject_prepare and sql.startswith("PREPARE"):
            raise psycopg.errors.SyntaxError("syntax error at or near \"$1\"")
        hook = self.conn.on_execute.get(sql)
        if hook is not None:
            hook()
        if sql.startswith("SELECT"):
            self.description = [("total",)]
            self._rows = [(3,)]
            self.rowcount = 1
        elif sql.startswith("UPDATE"):
            self.description = None
            self.rowcount = 4

    def fetchall(self):
        return list(self._rows)


class FakeConn:
    def __init__(self):
        self.executed = []
        self.on_execute = {}
        self.reject_prepare = False
        self.closed = False
        self.cancels = 0

    def cursor(self):
        return FakeCursor(self)

    def cancel_safe(self):
        self.cancels += 1

    def close(self):
        self.closed = True


@pytest.fixture
def fake_conn(monkeypatch):
    conn = FakeConn()
    monkeypatch.setattr(PostgresAdapter, "_connect", lambda self: conn)
    return conn


def test_prepare_validates_with_server_side_prepare(fake_conn):
    adapter = PostgresAdapter()
    adapter.prepare("SELECT %s::int + %(b)s::int, '100%%'")

    assert fake_conn.executed == [
        ("PREPARE lazy_stmt_1 AS SELECT $1::int + $2::int, '100%'", None, None),
        ("DEALLOCATE lazy_stmt_1", None, None),
    ]


def test_prepared_path_uses_server_side_prepared_statements(fake_conn):
    stmt = prepare(PostgresAdapter(), "SELECT %s::int + %s::int AS total")
    assert stmt.prepared is True
    fake_conn.executed.clear()

    row = stmt.query_row(1, 2)

    assert row["total"] == 3
    assert fake_conn.executed == [("SELECT %s::int + %s::int AS total", (1, 2), True)]


def test_failed_prepare_runs_unprepared(fake_conn):
    fake_conn.reject_prepare = True
    stmt = prepare(PostgresAdapter(), "UPDATE items SET name = %(name)s")
    assert stmt.prepared is False
    fake_conn.executed.clear()

    result = stmt.execute({"name": "x"})

    assert result.rows_affected == 4
    assert result.last_insert_id is None
    assert fake_conn.executed[0] == ("PREPARE lazy_stmt_2 AS UPDATE items SET name = $1", None, None)
    assert fake_conn.executed[-1] == ("UPDATE items SET name = %(name)s", {"name": "x"}, False)


def test_deadline_sets_and_resets_statement_timeout(fake_conn):
    adapter = PostgresAdapter()

    adapter.query_context(Context.with_timeout(2000), "SELECT 1")

    sqls = [entry[0] for entry in fake_conn.executed]
    assert sqls[0].startswith("SET statement_timeout = '")
    timeout_ms = int(sqls[0].split("'")[1].rstrip("ms"))
    assert 0 < timeout_ms <= 2000
    assert sqls[1:] == ["SELECT 1", "RESET statement_timeout"]


def test_background_context_leaves_timeout_alone(fake_conn):
    PostgresAdapter().query("SELECT 1")

    assert [entry[0] for entry in fake_conn.executed] == ["SELECT 1"]


def test_cancel_during_query_reports_cancelled(fake_conn):
    ctx = Context()

    def cancel_midway():
        ctx.cancel()
        raise psycopg.errors.QueryCanceled("canceling statement due to user request")

    fake_conn.on_execute["SELECT pg_sleep(10)"] = cancel_midway

    with pytest.raises(Cancelled) as excinfo:
        PostgresAdapter().query_context(ctx, "SELECT pg_sleep(10)")

    assert isinstance(excinfo.value.__cause__, psycopg.errors.QueryCanceled)
    assert fake_conn.cancels == 1


def test_query_canceled_without_context_error_propagates(fake_conn):
    def server_side_cancel():
        raise psycopg.errors.QueryCanceled("canceling statement due to statement timeout")

    fake_conn.on_execute["SELECT pg_sleep(10)"] = server_side_cancel

    with pytest.raises(psycopg.errors.QueryCanceled):
        PostgresAdapter().query("SELECT pg_sleep(10)")


def test_close_closes_connection(fake_conn):
    adapter = PostgresAdapter()
    adapter._conn = fake_conn

    adapter.close()

    assert fake_conn.closed is True


def test_cancel_while_waiting_for_connection_skips_statement(fake_conn):
    adapter = PostgresAdapter()
    ctx = Context()
    errors = []

    def update():
        try:
            adapter.execute_context(ctx, "UPDATE items SET name = %s", "x")
        except Cancelled as exc:
            errors.append(exc)

    with adapter._lock:
        worker = threading.Thread(target=update)
        worker.start()
        time.sleep(0.05)
        ctx.cancel()
    worker.join(timeout=5)

    assert len(errors) == 1
    assert fake_conn.executed == []


def test_cancel_during_connect_skips_statement(monkeypatch, fake_conn):
    ctx = Context()

    def connect_then_cancel(self):
        ctx.cancel()
        return fake_conn

    monkeypatch.setattr(PostgresAdapter, "_connect", connect_then_cancel)

    with pytest.raises(Cancelled):
        PostgresAdapter().execute_context(ctx, "UPDATE items SET name = %s", "x")

    assert fake_conn.executed == []
    assert fake_conn.cancels == 1
