"""
Configuration helpers for the schema bootstrap CLI.

Configs are JSON documents deep-merged over ``DEFAULT_CONFIG``. String values
may reference ``@variables`` which are resolved from the config's
``variables`` section and ``--set VAR=VALUE`` overrides.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable

REPO_ROOT = Path(__file__).resolve().parents[1]
SQL_DIR = REPO_ROOT / "sql"

DEFAULT_SOURCES = (
    str(SQL_DIR / "create_tables.sql"),
    str(SQL_DIR / "create_views.sql"),
    str(SQL_DIR / "init_tables.sql"),
)

DEFAULT_CONFIG: Dict[str, Any] = {
    "variables": {},
    "duckdb": {
        "database": "data/schema.duckdb",
        "threads": None,
        "memory_limit": None,
        "temp_directory": None,
        "max_expression_depth": None,
    },
    "sources": [],
    "batch_updates": True,
}


def load_json(path: str) -> Dict[str, Any]:
    if not path:
        return {}
    file_path = Path(path)
    return json.loads(file_path.read_text(encoding="utf-8")) if file_path.exists() else {}


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = merge_config(base[key], value)
        else:
            merged[key] = value
    return merged


def substitute_variables(text: str, variables: Dict[str, str]) -> str:
    # Longest names first so @foo_large is not clobbered by @foo.
    ordered = sorted(variables.items(), key=lambda item: len(item[0]), reverse=True)
    for _ in range(len(ordered) + 1):
        previous = text
        for var, val in ordered:
            text = text.replace(var, str(val))
        if text == previous:
            break
    return text


def apply_variables(obj: Any, variables: Dict[str, str]) -> Any:
    if isinstance(obj, str):
        return substitute_variables(obj, variables)
    if isinstance(obj, list):
        return [apply_variables(item, variables) for item in obj]
    if isinstance(obj, dict):
        return {k: apply_variables(v, variables) for k, v in obj.items()}
    return obj


def apply_overrides(config: Dict[str, Any], overrides: Iterable[str]) -> Dict[str, Any]:
    variables = dict(config.get("variables", {}) or {})
    for raw in overrides:
        if "=" not in raw:
            raise ValueError(f"Invalid --set value (expected VAR=VALUE): {raw}")
        key, value = raw.split("=", 1)
        variables[key.strip()] = value
    return {**config, "variables": variables}


def resolve_config(config: Dict[str, Any]) -> Dict[str, Any]:
    merged = merge_config(DEFAULT_CONFIG, config)
    variables = merged.get("variables", {}) or {}
    resolved = apply_variables({k: v for k, v in merged.items() if k != "variables"}, variables)
    resolved["variables"] = variables
    if not resolved.get("sources"):
        resolved["sources"] = list(DEFAULT_SOURCES)
    return resolved
