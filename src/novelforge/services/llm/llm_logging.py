# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Defines the llm logging unit so this responsibility stays isolated, testable, and easy to evolve."""

from __future__ import annotations

import datetime
import json
import os
import uuid
from typing import Any, Dict, List

MAX_LOG_ENTRIES = 100
_SECRET_HEADERS = ("authorization", "x-api-key")
_SECRET_BODY_KEYS = ("api_key", "apiKey", "secret", "password")

# Global list to store upstream communication logs for the current process
llm_logs: List[Dict[str, Any]] = []


def _dump_enabled() -> bool:
    return os.getenv("NOVELFORGE_LLM_DUMP") == "1"


def _dump_log(log_entry: Dict[str, Any]) -> None:
    default_path = os.path.join("data", "logs", "llm_raw.log")
    log_path = os.getenv("NOVELFORGE_LLM_DUMP_PATH") or default_path
    os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)
    try:
        with open(log_path, "a", encoding="utf-8") as f:
            f.write("=" * 80 + "\n")
            f.write(f"TIMESTAMP: {datetime.datetime.now().isoformat()}\n")
            f.write("-" * 80 + "\n")
            f.write(json.dumps(log_entry, indent=2, default=str, ensure_ascii=False))
            f.write("\n" + "=" * 80 + "\n\n")
    except OSError:
        # The dump is a dev-only aid; an unwritable path must not fail a request.
        pass


def add_llm_log(log_entry: Dict[str, Any]):
    """Add a log entry to the global list, keeping only the last 100 entries."""
    if log_entry not in llm_logs:
        llm_logs.append(log_entry)
        if len(llm_logs) > MAX_LOG_ENTRIES:
            llm_logs.pop(0)


def finish_log_entry(
    log_entry: Dict[str, Any],
    *,
    status_code: int | None = None,
    error: str | None = None,
) -> None:
    """Stamp the end time and outcome, then write the entry to the dump file."""
    log_entry["timestamp_end"] = datetime.datetime.now().isoformat()
    if status_code is not None:
        log_entry["response"]["status_code"] = status_code
    if error is not None:
        log_entry["response"]["error"] = error
    if _dump_enabled():
        _dump_log(log_entry)


def create_log_entry(
    url: str, method: str, headers: Dict[str, str], body: Any, streaming: bool = False
) -> Dict[str, Any]:
    """Create a new log entry structure with secrets masked."""
    safe_body = body
    if isinstance(body, dict):
        safe_body = body.copy()
        for key in _SECRET_BODY_KEYS:
            if key in safe_body:
                safe_body[key] = "REDACTED"

    return {
        "id": str(uuid.uuid4()),
        "timestamp_start": datetime.datetime.now().isoformat(),
        "timestamp_end": None,
        "request": {
            "url": url,
            "method": method,
            "headers": {
                k: ("***" if k.lower() in _SECRET_HEADERS else v)
                for k, v in headers.items()
            },
            "body": safe_body,
        },
        "response": {
            "status_code": None,
            "streaming": streaming,
            "attempts": 0,
            "bytes_relayed": 0 if streaming else None,
            "error": None,
        },
    }
