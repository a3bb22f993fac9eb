"""Typed readers for ``WST_*`` environment knobs.

Every reader accepts an optional mapping so settings can be hydrated from a
plain dict (tests, ``.env`` snapshots) as well as ``os.environ``. Malformed
numbers fall back to the default; flags use the truthy set
{"1","true","yes","on"} (case-insensitive).
"""
from __future__ import annotations

import os
from collections.abc import Mapping

TRUTHY_SET: frozenset[str] = frozenset({"1", "true", "yes", "on"})


def _source(env: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if env is None else env


def is_truthy(value: str | None) -> bool:
    if not value:
        return False
    return value.strip().lower() in TRUTHY_SET


def env_flag(name: str, default: bool = False, env: Mapping[str, str] | None = None) -> bool:
    raw = _source(env).get(name)
    if raw is None or not raw.strip():
        return default
    return is_truthy(raw)


def env_str(name: str, default: str = "", env: Mapping[str, str] | None = None) -> str:
    return _source(env).get(name, default)


def env_int(name: str, default: int = 0, env: Mapping[str, str] | None = None) -> int:
    try:
        return int(_source(env).get(name, default))
    except (TypeError, ValueError):
        return default


def env_float(name: str, default: float = 0.0, env: Mapping[str, str] | None = None) -> float:
    raw = _source(env).get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


__all__ = ["TRUTHY_SET", "env_flag", "env_float", "env_int", "env_str", "is_truthy"]
