from __future__ import annotations

import itertools
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

import psycopg

from adapters.base import DatabaseAdapter, PreparedStatement, Result, Rows, bind_params, column_names
from adapters.context import Context
from adapters.settings import ServerSettings
from adapters.sql_renderer import get_sql_dialect


class PostgresPreparedStatement(PreparedStatement):
    """Runs through psycopg's server-side prepared statements."""

    def __init__(self, adapter: "PostgresAdapter", sql: str):
        super().__init__(sql)
        self._adapter = adapter

    def execute_context(self, ctx: Context, *args: Any) -> Result:
        self._ensure_open()
        return self._adapter._run_execute(ctx, self.sql, args, prepare=True)

    def query_context(self, ctx: Context, *args: Any) -> Rows:
        self._ensure_open()
        return self._adapter._run_query(ctx, self.sql, args, prepare=True)


class PostgresAdapter(DatabaseAdapter):
    engine = "postgres"

    def __init__(self, source_config=None):
        super().__init__(source_config)
        self._lock = threading.RLock()
        self._conn: Optional[psycopg.Connection] = None
        self._dialect = get_sql_dialect(self.engine)
        self._names = itertools.count(1)

    def _connect(self) -> psycopg.Connection:
        if self._conn is None or self._conn.closed:
            settings = ServerSettings.resolve(self.source_config, default_port=5432)
            self._conn = psycopg.connect(
                host=settings.host,
                port=settings.port,
                dbname=settings.dbname,
                user=settings.user,
                password=settings.password,
                connect_timeout=settings.connect_timeout,
                autocommit=True,
            )
        return self._conn

    @contextmanager
    def _session(self, ctx: Context) -> Iterator[psycopg.Cursor]:
        with self._lock:
            ctx.check()
            conn = self._connect()
            remaining = ctx.remaining_ms()
            unregister = ctx.on_cancel(conn.cancel_safe)
            try:
                ctx.check()
                with conn.cursor() as cur:
                    if remaining is not None:
                        cur.execute(f"SET statement_timeout = '{max(remaining, 1)}ms'")
                    try:
                        yield cur
                    finally:
                        if remaining is not None and not conn.closed:
                            cur.execute("RESET statement_timeout")
            except psycopg.errors.QueryCanceled as exc:
                error = ctx.err()
                if error is not None:
                    raise error from exc
                raise
            finally:
                unregister()

    def _run_execute(self, ctx: Context, sql: str, args: Sequence[Any], prepare: bool = False) -> Result:
        with self._session(ctx) as cur:
            cur.execute(sql, bind_params(args) or None, prepare=prepare)
            return Result(rows_affected=max(cur.rowcount, 0))

    def _run_query(self, ctx: Context, sql: str, args: Sequence[Any], prepare: bool = False) -> Rows:
        with self._session(ctx) as cur:
            cur.execute(sql, bind_params(args) or None, prepare=prepare)
            rows = cur.fetchall() if cur.description else []
            return Rows(column_names(cur.description), rows)

    def prepare(self, query: str) -> PostgresPreparedStatement:
        name = f"lazy_stmt_{next(self._names)}"
        server_sql = self._dialect.to_server_placeholders(query)
        with self._lock:
            conn = self._connect()
            with conn.cursor() as cur:
                cur.execute(f"PREPARE {name} AS {server_sql}")
                cur.execute(f"DEALLOCATE {name}")
        return PostgresPreparedStatement(self, query)

    def execute_context(self, ctx: Context, query: str, *args: Any) -> Result:
        return self._run_execute(ctx, query, args)

    def query_context(self, ctx: Context, query: str, *args: Any) -> Rows:
        return self._run_query(ctx, query, args)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
