import os
from pathlib import Path
from typing import Dict, Optional


def read_env_file(env_path: str) -> Dict[str, str]:
    env_file = Path(env_path)
    if not env_file.exists():
        return {}

    values: Dict[str, str] = {}
    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("'").strip('"')
        if key:
            values[key] = value
    return values


def load_environments(env_path: Optional[str] = None) -> Dict[str, str]:
    # Variables already present in the process environment win over the file.
    path = env_path or os.getenv("DB_ENV_FILE", ".env")
    applied: Dict[str, str] = {}
    for key, value in read_env_file(path).items():
        if key not in os.environ:
            os.environ[key] = value
            applied[key] = value
    return applied
