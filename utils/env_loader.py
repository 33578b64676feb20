import os
from pathlib import Path
from typing import Dict, Set

_LOADED: Set[str] = set()


def parse_env_file(env_file: Path) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export "):].strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("'").strip('"')
        if key:
            values[key] = value
    return values


def load_environments(env_path: str = ".env", reload: bool = False) -> None:
    """Copy ``.env`` entries into ``os.environ`` without overriding what is already set."""
    env_file = Path(env_path)
    cache_key = str(env_file.resolve())
    if cache_key in _LOADED and not reload:
        return
    _LOADED.add(cache_key)
    if not env_file.exists():
        return

    for key, value in parse_env_file(env_file).items():
        if key not in os.environ:
            os.environ[key] = value
