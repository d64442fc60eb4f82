# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Defines the llm request helpers unit so this responsibility stays isolated, testable, and easy to evolve."""

from __future__ import annotations

from typing import Any, Dict

import httpx


def build_headers(api_key: str | None) -> Dict[str, str]:
    headers: Dict[str, str] = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def build_anthropic_headers(api_key: str | None, version: str) -> Dict[str, str]:
    headers: Dict[str, str] = {
        "Content-Type": "application/json",
        "anthropic-version": version,
    }
    if api_key:
        headers["x-api-key"] = api_key
    return headers


def build_timeout(timeout_s: Any) -> httpx.Timeout:
    try:
        return httpx.Timeout(float(timeout_s or 60))
    except (TypeError, ValueError):
        return httpx.Timeout(60.0)


def build_client(
    timeout_s: Any, transport: httpx.AsyncBaseTransport | None = None
) -> httpx.AsyncClient:
    """Create the client for one upstream call; tests pass a MockTransport."""
    return httpx.AsyncClient(timeout=build_timeout(timeout_s), transport=transport)

