from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

from adapters.base import DatabaseAdapter, PreparedStatement, Result, Rows, bind_params, column_names
from adapters.context import Context
from adapters.settings import SQLiteSettings

# VM instructions between context checks while a statement runs.
PROGRESS_INTERVAL = 1000


def _compile(conn: sqlite3.Connection, sql: str) -> None:
    try:
        conn.execute(f"EXPLAIN {sql}").close()
    except sqlite3.ProgrammingError as exc:
        # EXPLAIN runs without bindings: a binding mismatch means the statement compiled.
        if "binding" not in str(exc).lower():
            raise


class SQLitePreparedStatement(PreparedStatement):
    """Compiled once by ``prepare``; reruns hit the connection's statement cache."""

    def __init__(self, adapter: "SQLiteAdapter", sql: str):
        super().__init__(sql)
        self._adapter = adapter

    def execute_context(self, ctx: Context, *args: Any) -> Result:
        self._ensure_open()
        return self._adapter._run_execute(ctx, self.sql, args)

    def query_context(self, ctx: Context, *args: Any) -> Rows:
        self._ensure_open()
        return self._adapter._run_query(ctx, self.sql, args)


class SQLiteAdapter(DatabaseAdapter):
    engine = "sqlite"

    def __init__(self, source_config=None):
        super().__init__(source_config)
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            settings = SQLiteSettings.resolve(self.source_config)
            self._conn = sqlite3.connect(
                settings.db_path,
                timeout=settings.busy_timeout_s,
                isolation_level=None,
                check_same_thread=False,
            )
        return self._conn

    @contextmanager
    def _session(self, ctx: Context) -> Iterator[sqlite3.Connection]:
        with self._lock:
            ctx.check()
            conn = self._connect()
            conn.set_progress_handler(lambda: 1 if ctx.done else 0, PROGRESS_INTERVAL)
            try:
                yield conn
            except sqlite3.OperationalError as exc:
                error = ctx.err()
                if error is not None:
                    raise error from exc
                raise
            finally:
                conn.set_progress_handler(None, 0)

    def _run_execute(self, ctx: Context, sql: str, args: Sequence[Any]) -> Result:
        with self._session(ctx) as conn:
            cur = conn.execute(sql, bind_params(args))
            try:
                return Result(rows_affected=max(cur.rowcount, 0), last_insert_id=cur.lastrowid)
            finally:
                cur.close()

    def _run_query(self, ctx: Context, sql: str, args: Sequence[Any]) -> Rows:
        with self._session(ctx) as conn:
            cur = conn.execute(sql, bind_params(args))
            try:
                rows = cur.fetchall()
                return Rows(column_names(cur.description), rows)
            finally:
                cur.close()

    def prepare(self, query: str) -> SQLitePreparedStatement:
        with self._lock:
            _compile(self._connect(), query)
        return SQLitePreparedStatement(self, query)

    def execute_context(self, ctx: Context, query: str, *args: Any) -> Result:
        return self._run_execute(ctx, query, args)

    def query_context(self, ctx: Context, query: str, *args: Any) -> Rows:
        return self._run_query(ctx, query, args)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
