from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict

_PYFORMAT_RE = re.compile(r"%%|%\((?P<name>[A-Za-z_][A-Za-z0-9_]*)\)s|%s")


@dataclass(frozen=True)
class SQLDialect:
    engine: str
    param_style: str
    server_placeholder: str

    def to_server_placeholders(self, sql: str) -> str:
        """Rewrite client placeholders into the form the server's PREPARE accepts.

        Only pyformat drivers need this; qmark SQL is returned unchanged.
        Named parameters reuse the number of their first occurrence.
        """
        if self.param_style != "pyformat":
            return sql

        positions: Dict[str, int] = {}
        counter = 0

        def _replace(match: "re.Match[str]") -> str:
            nonlocal counter
            token = match.group(0)
            if token == "%%":
                return "%"
            name = match.group("name")
            if name is not None and name in positions:
                index = positions[name]
            else:
                counter += 1
                index = counter
                if name is not None:
                    positions[name] = index
            if self.server_placeholder == "$":
                return f"${index}"
            return self.server_placeholder

        return _PYFORMAT_RE.sub(_replace, sql)


def get_sql_dialect(db_engine: str) -> SQLDialect:
    engine = (db_engine or "postgres").strip().lower()
    if engine in {"postgres", "postgresql"}:
        return SQLDialect(engine="postgres", param_style="pyformat", server_placeholder="$")
    if engine == "sqlite":
        return SQLDialect(engine="sqlite", param_style="qmark", server_placeholder="?")
    if engine == "mysql":
        return SQLDialect(engine="mysql", param_style="pyformat", server_placeholder="?")
    return SQLDialect(engine=engine, param_style="pyformat", server_placeholder="?")
