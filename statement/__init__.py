"""Lazily prepared statements with an unprepared fallback."""

from statement.lazy import LazyStatement, prepare

__all__ = ["LazyStatement", "prepare"]
