from __future__ import annotations

import itertools
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

import pymysql
import pymysql.connections
import pymysql.cursors

from adapters.base import DatabaseAdapter, PreparedStatement, Result, Rows, bind_params, column_names
from adapters.context import Context
from adapters.settings import ServerSettings
from adapters.sql_renderer import get_sql_dialect


class MySQLPreparedStatement(PreparedStatement):
    """Validated by the server at prepare time; PyMySQL still binds client-side."""

    def __init__(self, adapter: "MySQLAdapter", sql: str):
        super().__init__(sql)
        self._adapter = adapter

    def execute_context(self, ctx: Context, *args: Any) -> Result:
        self._ensure_open()
        return self._adapter._run_execute(ctx, self.sql, args)

    def query_context(self, ctx: Context, *args: Any) -> Rows:
        self._ensure_open()
        return self._adapter._run_query(ctx, self.sql, args)


class MySQLAdapter(DatabaseAdapter):
    engine = "mysql"

    def __init__(self, source_config=None):
        super().__init__(source_config)
        self._lock = threading.RLock()
        self._conn: Optional[pymysql.connections.Connection] = None
        self._dialect = get_sql_dialect(self.engine)
        self._names = itertools.count(1)

    def _open(self) -> pymysql.connections.Connection:
        settings = ServerSettings.resolve(self.source_config, default_port=3306)
        return pymysql.connect(
            host=settings.host,
            port=settings.port,
            user=settings.user,
            password=settings.password,
            database=settings.dbname,
            connect_timeout=settings.connect_timeout,
            autocommit=True,
        )

    def _connect(self) -> pymysql.connections.Connection:
        if self._conn is None or not self._conn.open:
            self._conn = self._open()
        return self._conn

    def _kill_query(self, thread_id: int) -> None:
        killer = self._open()
        try:
            with killer.cursor() as cur:
                cur.execute("KILL QUERY %s", (thread_id,))
        finally:
            killer.close()

    @contextmanager
    def _session(self, ctx: Context) -> Iterator[pymysql.cursors.Cursor]:
        with self._lock:
            ctx.check()
            conn = self._connect()
            remaining = ctx.remaining_ms()
            thread_id = conn.thread_id()
            unregister = ctx.on_cancel(lambda: self._kill_query(thread_id))
            try:
                ctx.check()
                with conn.cursor() as cur:
                    if remaining is not None:
                        cur.execute(f"SET SESSION MAX_EXECUTION_TIME={max(remaining, 1)}")
                    try:
                        yield cur
                    finally:
                        if remaining is not None and conn.open:
                            cur.execute("SET SESSION MAX_EXECUTION_TIME=0")
            except pymysql.err.OperationalError as exc:
                error = ctx.err()
                if error is not None:
                    raise error from exc
                raise
            finally:
                unregister()

    def _run_execute(self, ctx: Context, sql: str, args: Sequence[Any]) -> Result:
        with self._session(ctx) as cur:
            cur.execute(sql, bind_params(args) or None)
            return Result(rows_affected=max(cur.rowcount, 0), last_insert_id=cur.lastrowid)

    def _run_query(self, ctx: Context, sql: str, args: Sequence[Any]) -> Rows:
        with self._session(ctx) as cur:
            cur.execute(sql, bind_params(args) or None)
            rows = cur.fetchall() if cur.description else []
            return Rows(column_names(cur.description), rows)

    def prepare(self, query: str) -> MySQLPreparedStatement:
        name = f"lazy_stmt_{next(self._names)}"
        server_sql = self._dialect.to_server_placeholders(query)
        with self._lock:
            conn = self._connect()
            with conn.cursor() as cur:
                cur.execute(f"PREPARE {name} FROM %s", (server_sql,))
                cur.execute(f"DEALLOCATE PREPARE {name}")
        return MySQLPreparedStatement(self, query)

    def execute_context(self, ctx: Context, query: str, *args: Any) -> Result:
        return self._run_execute(ctx, query, args)

    def query_context(self, ctx: Context, query: str, *args: Any) -> Rows:
        return self._run_query(ctx, query, args)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
