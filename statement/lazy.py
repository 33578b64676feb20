from __future__ import annotations

import threading
from typing import Any, Optional

from adapters.base import DatabaseAdapter, PreparedStatement, Result, Row, Rows
from adapters.context import Context
from utils.logging import get_logger

logger = get_logger(__name__)


class LazyStatement:
    """A prepared statement that prepares itself when it can.

    Preparation is attempted at construction and, while it keeps failing,
    again on every call. Until it succeeds, calls run unprepared on the
    database handle with the raw query text. Preparation errors never reach
    the caller; execution errors always do, unchanged.

    The database handle is borrowed: ``close()`` only releases the prepared
    statement this object holds.
    """

    def __init__(self, db: DatabaseAdapter, query: str):
        self._db = db
        self._query = query
        self._stmt: Optional[PreparedStatement] = None
        self._lock = threading.Lock()
        self.statement()

    @property
    def db(self) -> DatabaseAdapter:
        return self._db

    @property
    def query_text(self) -> str:
        return self._query

    @property
    def prepared(self) -> bool:
        return self._stmt is not None

    def raw(self) -> str:
        return self._query

    def _try_prepare(self) -> Optional[PreparedStatement]:
        try:
            stmt = self._db.prepare(self._query)
        except Exception as exc:
            logger.debug("statement_prepare_failed", engine=self._db.engine, query=self._query, error=str(exc))
            return None
        logger.debug("statement_prepared", engine=self._db.engine, query=self._query)
        return stmt

    def statement(self) -> Optional[PreparedStatement]:
        """Return the prepared statement, preparing it first if needed.

        Returns ``None`` when preparation fails; the next call tries again.
        """
        with self._lock:
            if self._stmt is None:
                self._stmt = self._try_prepare()
            return self._stmt

    def _dispatch(self, method: str, leading: tuple, args: tuple) -> Any:
        stmt = self.statement()
        if stmt is not None:
            return getattr(stmt, method)(*leading, *args)
        logger.debug("statement_unprepared_fallback", engine=self._db.engine, method=method)
        return getattr(self._db, method)(*leading, self._query, *args)

    def execute(self, *args: Any) -> Result:
        return self._dispatch("execute", (), args)

    def execute_context(self, ctx: Context, *args: Any) -> Result:
        return self._dispatch("execute_context", (ctx,), args)

    def query(self, *args: Any) -> Rows:
        return self._dispatch("query", (), args)

    def query_context(self, ctx: Context, *args: Any) -> Rows:
        return self._dispatch("query_context", (ctx,), args)

    def query_row(self, *args: Any) -> Row:
        return self._dispatch("query_row", (), args)

    def query_row_context(self, ctx: Context, *args: Any) -> Row:
        return self._dispatch("query_row_context", (ctx,), args)

    def close(self) -> None:
        with self._lock:
            stmt, self._stmt = self._stmt, None
        if stmt is not None:
            stmt.close()

    def __enter__(self) -> "LazyStatement":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "prepared" if self.prepared else "unprepared"
        return f"LazyStatement({self._query!r}, engine={self._db.engine!r}, {state})"


def prepare(db: DatabaseAdapter, query: str) -> LazyStatement:
    return LazyStatement(db, query)
