"""Database handles that lazy statements prepare against and fall back to."""

from adapters.base import DatabaseAdapter, PreparedStatement, Result, Row, Rows
from adapters.context import Context
from adapters.errors import AdapterError, Cancelled, ContextError, DeadlineExceeded, NoRowsError
from adapters.factory import get_adapter

__all__ = [
    "AdapterError",
    "Cancelled",
    "Context",
    "ContextError",
    "DatabaseAdapter",
    "DeadlineExceeded",
    "NoRowsError",
    "PreparedStatement",
    "Result",
    "Row",
    "Rows",
    "get_adapter",
]
