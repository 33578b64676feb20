from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel, Field

from utils.env_loader import load_environments

MEMORY_DB = ":memory:"


class ServerSettings(BaseModel):
    host: str = Field(..., min_length=1)
    port: int = Field(..., ge=1, le=65535)
    dbname: str = Field(..., min_length=1)
    user: str = Field(..., min_length=1)
    password: str
    connect_timeout: int = Field(default=10, ge=1)

    @classmethod
    def resolve(cls, source_config: Dict[str, Any], default_port: int) -> "ServerSettings":
        load_environments()
        host = source_config.get("host") or os.getenv("DB_HOST")
        dbname = source_config.get("dbname") or os.getenv("DB_NAME")
        user = source_config.get("user") or os.getenv("DB_USER")
        password = source_config.get("password") or os.getenv("DB_PASSWORD")
        port_raw = source_config.get("port") or os.getenv("DB_PORT", str(default_port))
        if not host:
            raise ValueError("DB_HOST is required")
        if not dbname:
            raise ValueError("DB_NAME is required")
        if not user:
            raise ValueError("DB_USER is required")
        if not password:
            raise ValueError("DB_PASSWORD is required")
        return cls(
            host=host,
            port=int(port_raw),
            dbname=dbname,
            user=user,
            password=password,
            connect_timeout=int(source_config.get("connect_timeout") or 10),
        )


class SQLiteSettings(BaseModel):
    db_path: str = Field(..., min_length=1)
    busy_timeout_s: float = Field(default=5.0, gt=0)

    @property
    def in_memory(self) -> bool:
        return self.db_path == MEMORY_DB

    @classmethod
    def resolve(cls, source_config: Dict[str, Any]) -> "SQLiteSettings":
        load_environments()
        raw = source_config.get("db_path") or os.getenv("SQLITE_DB_PATH")
        if not raw:
            raise ValueError("SQLITE_DB_PATH is required for sqlite adapter")
        db_path = str(raw)
        if db_path != MEMORY_DB and not Path(db_path).exists():
            raise ValueError(f"SQLite database file does not exist: {db_path}")
        return cls(db_path=db_path, busy_timeout_s=float(source_config.get("busy_timeout_s") or 5.0))
