"""Read workspace defaults from .env.defaults.

The bootstrap runs both from a checkout and from CI images where only a
subset of variables is exported. `.env.defaults` at the repository root is
the lowest-priority configuration layer: process environment always wins.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict

REPO_ROOT = Path(__file__).resolve().parents[1]


def parse_env_file(text: str) -> Dict[str, str]:
    defaults: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        value = value.strip()
        if len(value) >= 2 and value[0] in ('"', "'") and value[-1] == value[0]:
            value = value[1:-1]
        defaults[key.strip()] = value
    return defaults


@lru_cache(maxsize=1)
def _load_env_defaults() -> Dict[str, str]:
    env_defaults = REPO_ROOT / ".env.defaults"
    if not env_defaults.exists():
        return {}
    return parse_env_file(env_defaults.read_text(encoding="utf-8"))


def get_env_default(key: str) -> str | None:
    return _load_env_defaults().get(key)
