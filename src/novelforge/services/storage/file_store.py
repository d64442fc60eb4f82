# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Defines the file store unit so this responsibility stays isolated, testable, and easy to evolve.

"""JSON-file backed store for sessions, provider rows and novels.

Layout below the data directory::

    sessions.json        {"sessions": {"<token>": "<user id>"}}
    providers.json       {"providers": [{"user_id": ..., "provider_type": ...}]}
    novels/<id>.json     {"user_id": ..., "outline": ..., "chapters": [...], "characters": [...]}

Every file is validated against its schema on read. The gateway only reads
from this store; writing chapters is the caller's job.
"""

from __future__ import annotations

import json
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import jsonschema

from novelforge.core.config import SCHEMAS_DIR, get_data_dir, load_json_file
from novelforge.services.exceptions import PersistenceError

_NOVEL_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


@lru_cache(maxsize=None)
def _get_schema(name: str) -> Dict[str, Any]:
    with open(SCHEMAS_DIR / f"{name}.schema.json", "r", encoding="utf-8") as f:
        return json.load(f)


def _load_validated(path: Path, schema_name: str) -> Dict[str, Any]:
    try:
        data = load_json_file(path)
        jsonschema.validate(data, _get_schema(schema_name))
    except ValueError as exc:
        raise PersistenceError(str(exc)) from exc
    except jsonschema.ValidationError as exc:
        raise PersistenceError(f"Invalid store file at {path}: {exc.message}") from exc
    return data


class FileStore:
    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def novels_dir(self) -> Path:
        return self.root / "novels"

    def verify_token(self, token: str) -> str | None:
        """Return the user id owning token, or None when the token is unknown."""
        if not token:
            return None
        sessions = _load_validated(self.root / "sessions.json", "sessions")
        user_id = (sessions.get("sessions") or {}).get(token)
        return user_id or None

    def list_provider_configs(self, user_id: str) -> List[Dict[str, Any]]:
        """Return the user's enabled provider rows, default-flagged rows first."""
        data = _load_validated(self.root / "providers.json", "providers")
        rows = [
            row
            for row in data.get("providers") or []
            if row.get("user_id") == user_id and row.get("enabled") is not False
        ]
        rows.sort(key=lambda row: not row.get("is_default"))
        return rows

    def load_novel(self, user_id: str, novel_id: str) -> Dict[str, Any] | None:
        """Return the novel record, or None if it is missing or not owned by user_id."""
        if not novel_id or not _NOVEL_ID_PATTERN.match(novel_id):
            return None
        path = self.novels_dir / f"{novel_id}.json"
        if not path.exists():
            return None
        novel = _load_validated(path, "novel")
        if novel.get("user_id") != user_id:
            return None
        chapters = sorted(
            novel.get("chapters") or [], key=lambda ch: ch["chapter_number"]
        )
        return {
            "outline": novel.get("outline") or "",
            "chapters": chapters,
            "characters": novel.get("characters") or [],
        }


def get_store() -> FileStore:
    return FileStore(get_data_dir())
