# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Defines the config unit so this responsibility stays isolated, testable, and easy to evolve.

"""
Configuration loading utilities for novelforge.

Conventions:
- Gateway tunables: resources/config/gateway.json
- Environment variables override JSON values.
- JSON values can reference environment variables using ${VAR_NAME} placeholders.

Only generic JSON dicts are returned to keep things simple.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

BASE_DIR = Path(__file__).resolve().parent.parent.parent.parent
CONFIG_DIR = BASE_DIR / "resources" / "config"
DATA_DIR = BASE_DIR / "data"
LOGS_DIR = DATA_DIR / "logs"
PACKAGE_DIR = Path(__file__).resolve().parent.parent
SCHEMAS_DIR = PACKAGE_DIR / "resources" / "schemas"

GATEWAY_DEFAULTS: Dict[str, Any] = {
    "max_tokens": 16000,
    "test_max_tokens": 16,
    "timeout_s": 120,
    "max_retries": 2,
    "retry_backoff_s": 1.0,
    "stream_deadline_s": 900,
    "anthropic_version": "2023-06-01",
    "outline_budget": 4000,
    "summary_budget": 8000,
    "cors_origin_regex": r"http://(localhost|127\.0\.0\.1)(:\d+)?",
}

# Providers that may fall back to a process-level secret when the caller has none.
PROVIDER_ENV_KEYS: Dict[str, str] = {
    "grok": "XAI_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
}

_ENV_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

_ENV_OVERRIDES = {
    "NOVELFORGE_MAX_TOKENS": ("max_tokens", int),
    "NOVELFORGE_TIMEOUT_S": ("timeout_s", float),
    "NOVELFORGE_MAX_RETRIES": ("max_retries", int),
    "NOVELFORGE_RETRY_BACKOFF_S": ("retry_backoff_s", float),
    "NOVELFORGE_STREAM_DEADLINE_S": ("stream_deadline_s", float),
    "NOVELFORGE_CORS_ORIGIN_REGEX": ("cors_origin_regex", str),
}


def _interpolate_env(value: Any) -> Any:
    """Interpolate ${VAR} placeholders within strings using environment variables.

    Non-string types are returned unchanged.
    """
    if isinstance(value, str):

        def replace(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, match.group(0))  # leave placeholder if unset

        return _ENV_PATTERN.sub(replace, value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(v) for v in value]
    return value


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Deeply merge mapping 'override' into dict 'base'. Returns new dict.

    - For dict values, merges recursively.
    - For lists and scalars, override replaces base.
    """
    result: Dict[str, Any] = dict(base)
    for k, v in override.items():
        if isinstance(v, Mapping) and isinstance(result.get(k), Mapping):
            result[k] = _deep_merge(dict(result[k]), v)  # type: ignore[index]
        else:
            result[k] = v
    return result


def load_json_file(path: os.PathLike[str] | str | None) -> Dict[str, Any]:
    """Load JSON from path if it exists; return empty dict if missing.

    Raises ValueError for malformed JSON.
    """
    if path is None:
        return {}
    p = Path(path)
    if not p.exists():
        return {}
    try:
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON at {p}: {e}") from e


def _env_overrides_for_gateway() -> Dict[str, Any]:
    """Collect NOVELFORGE_* environment variables into a flat dict.

    Values that cannot be converted to the expected type are ignored so a typo
    in the environment never takes the server down.
    """
    result: Dict[str, Any] = {}
    for var, (key, cast) in _ENV_OVERRIDES.items():
        raw = os.getenv(var)
        if raw is None or raw == "":
            continue
        try:
            result[key] = cast(raw)
        except ValueError:
            continue
    return result


def load_gateway_config(
    path: os.PathLike[str] | str | None = None,
    defaults: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Load gateway configuration applying precedence and interpolation.

    Precedence: env overrides > JSON file > defaults
    """
    if path is None:
        path = os.getenv("NOVELFORGE_GATEWAY_CONFIG") or CONFIG_DIR / "gateway.json"
    merged = _deep_merge(GATEWAY_DEFAULTS, defaults or {})
    json_config = _interpolate_env(load_json_file(path))
    merged = _deep_merge(merged, json_config)
    merged = _deep_merge(merged, _env_overrides_for_gateway())
    return merged


def get_data_dir() -> Path:
    """Return the directory holding the JSON-backed user/novel store.

    Defaults to <repo>/data. Can be overridden by NOVELFORGE_DATA_DIR env var.
    """
    return Path(os.getenv("NOVELFORGE_DATA_DIR", str(DATA_DIR)))


def get_env_fallback_key(
    provider_key: str, environ: Mapping[str, str] | None = None
) -> str | None:
    """Return the process-level secret for providers that support one."""
    var = PROVIDER_ENV_KEYS.get(provider_key)
    if not var:
        return None
    env = os.environ if environ is None else environ
    value = (env.get(var) or "").strip()
    return value or None
