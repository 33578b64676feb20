from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Type

from adapters.base import AdapterError, DatabaseAdapter
from adapters.mysql import MySQLAdapter
from adapters.postgres import PostgresAdapter
from adapters.sqlite import SQLiteAdapter
from utils.env_loader import load_environments

_ENGINE_ALIASES = {"postgresql": "postgres"}

_ADAPTERS: Dict[str, Type[DatabaseAdapter]] = {
    PostgresAdapter.engine: PostgresAdapter,
    SQLiteAdapter.engine: SQLiteAdapter,
    MySQLAdapter.engine: MySQLAdapter,
}


def supported_engines() -> List[str]:
    return sorted(_ADAPTERS)


def resolve_engine(db_engine: Optional[str] = None) -> str:
    load_environments()
    engine = (db_engine or os.getenv("DB_ENGINE", "postgres")).strip().lower()
    engine = _ENGINE_ALIASES.get(engine, engine)
    if engine not in _ADAPTERS:
        raise AdapterError(f"Unsupported db_engine: {engine}")
    return engine


def get_adapter(db_engine: Optional[str] = None, source_config: Optional[Dict[str, Any]] = None) -> DatabaseAdapter:
    adapter_cls = _ADAPTERS[resolve_engine(db_engine)]
    return adapter_cls(source_config=source_config)
