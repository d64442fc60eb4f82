# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Defines the llm parsing unit so this responsibility stays isolated, testable, and easy to evolve."""

from __future__ import annotations

import json
import re
from typing import Any

MAX_RAW_ERROR_CHARS = 300

_MESSAGE_PATTERN = re.compile(r"""["']?message["']?\s*[:=]\s*["']?([^"'\n,}]+)""", re.IGNORECASE)


def _message_from_json(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, str) and error.strip():
        return error.strip()
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    message = data.get("message")
    if isinstance(message, str) and message.strip():
        return message.strip()
    return None


def extract_upstream_error_message(raw: bytes | str | None) -> str:
    """Return a short human-readable message from an upstream error body.

    Tries the JSON ``error`` / ``error.message`` / ``message`` fields, then a
    ``message: ...`` token anywhere in the text, then the truncated raw body.
    """
    if raw is None:
        return ""
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    text = text.strip()
    if not text:
        return ""

    try:
        message = _message_from_json(json.loads(text))
    except ValueError:
        message = None
    if message:
        return message

    match = _MESSAGE_PATTERN.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()

    if len(text) > MAX_RAW_ERROR_CHARS:
        return text[:MAX_RAW_ERROR_CHARS] + "..."
    return text
