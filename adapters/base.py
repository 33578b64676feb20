from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from adapters.context import Context
from adapters.errors import AdapterError, NoRowsError

Params = Union[Tuple[Any, ...], Dict[str, Any]]


def bind_params(args: Sequence[Any]) -> Params:
    """A single mapping argument binds by name, anything else binds by position."""
    if len(args) == 1 and isinstance(args[0], Mapping):
        return dict(args[0])
    return tuple(args)


def column_names(description: Optional[Sequence[Sequence[Any]]]) -> List[str]:
    if not description:
        return []
    return [desc[0] for desc in description]


@dataclass(frozen=True)
class Result:
    rows_affected: int
    last_insert_id: Optional[int] = None


class Rows:
    def __init__(self, columns: Sequence[str], rows: Sequence[Sequence[Any]]):
        self.columns = list(columns)
        self._rows = [tuple(row) for row in rows]

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        for row in self._rows:
            yield {self.columns[i]: row[i] for i in range(len(self.columns))}

    def __len__(self) -> int:
        return len(self._rows)

    def all(self) -> List[Dict[str, Any]]:
        return list(self)

    def values(self) -> List[Tuple[Any, ...]]:
        return list(self._rows)


class Row:
    def __init__(self, columns: Sequence[str], values: Optional[Sequence[Any]]):
        self.columns = list(columns)
        self._values = tuple(values) if values is not None else None

    @classmethod
    def first_of(cls, rows: Rows) -> "Row":
        values = rows.values()
        return cls(rows.columns, values[0] if values else None)

    @property
    def found(self) -> bool:
        return self._values is not None

    def scan(self) -> Tuple[Any, ...]:
        if self._values is None:
            raise NoRowsError("no rows in result set")
        return self._values

    def as_dict(self) -> Dict[str, Any]:
        values = self.scan()
        return {self.columns[i]: values[i] for i in range(len(self.columns))}

    def __getitem__(self, key: Union[int, str]) -> Any:
        values = self.scan()
        if isinstance(key, str):
            try:
                return values[self.columns.index(key)]
            except ValueError:
                raise KeyError(key) from None
        return values[key]


class PreparedStatement(ABC):
    """A statement realized on its database handle.

    Mirrors the execute/query surface of ``DatabaseAdapter`` minus the SQL text.
    """

    def __init__(self, sql: str):
        self.sql = sql
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise AdapterError("statement is closed")

    @abstractmethod
    def execute_context(self, ctx: Context, *args: Any) -> Result:
        raise NotImplementedError

    @abstractmethod
    def query_context(self, ctx: Context, *args: Any) -> Rows:
        raise NotImplementedError

    def query_row_context(self, ctx: Context, *args: Any) -> Row:
        return Row.first_of(self.query_context(ctx, *args))

    def execute(self, *args: Any) -> Result:
        return self.execute_context(Context.background(), *args)

    def query(self, *args: Any) -> Rows:
        return self.query_context(Context.background(), *args)

    def query_row(self, *args: Any) -> Row:
        return self.query_row_context(Context.background(), *args)


class DatabaseAdapter(ABC):
    engine: str = "unknown"

    def __init__(self, source_config: Optional[Dict[str, Any]] = None):
        self.source_config = source_config or {}

    @abstractmethod
    def prepare(self, query: str) -> PreparedStatement:
        raise NotImplementedError

    @abstractmethod
    def execute_context(self, ctx: Context, query: str, *args: Any) -> Result:
        raise NotImplementedError

    @abstractmethod
    def query_context(self, ctx: Context, query: str, *args: Any) -> Rows:
        raise NotImplementedError

    def query_row_context(self, ctx: Context, query: str, *args: Any) -> Row:
        return Row.first_of(self.query_context(ctx, query, *args))

    def execute(self, query: str, *args: Any) -> Result:
        return self.execute_context(Context.background(), query, *args)

    def query(self, query: str, *args: Any) -> Rows:
        return self.query_context(Context.background(), query, *args)

    def query_row(self, query: str, *args: Any) -> Row:
        return self.query_row_context(Context.background(), query, *args)

    def close(self) -> None:
        return None

    def __enter__(self) -> "DatabaseAdapter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "AdapterError",
    "DatabaseAdapter",
    "NoRowsError",
    "Params",
    "PreparedStatement",
    "Result",
    "Row",
    "Rows",
    "bind_params",
    "column_names",
]
