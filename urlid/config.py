"""
urlid settings.

Everything lives under ~/.urlid/ (override with URLID_HOME).
Each value can be overridden by its environment variable; constructors and
the CLI take explicit arguments that win over both.
"""

import os
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


URLID_HOME = Path(os.environ.get("URLID_HOME", Path.home() / ".urlid"))
DB_PATH = Path(os.environ.get("URLID_DB", URLID_HOME / "urls.db"))

# Retries after a lost insert race (3 -> 4 attempts in total)
MAX_RETRY = _env_int("URLID_MAX_RETRY", 3)

# SQLite busy timeout, seconds
DB_TIMEOUT = _env_int("URLID_TIMEOUT", 10)

LOG_LEVEL = os.environ.get("URLID_LOG_LEVEL", "WARNING").upper()
LOG_JSON = os.environ.get("URLID_LOG_JSON", "").lower() in ("1", "true", "yes")
