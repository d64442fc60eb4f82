# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Defines the llm completion ops unit so this responsibility stays isolated, testable, and easy to evolve."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Dict

import httpx

from novelforge.core.config import load_gateway_config
from novelforge.core.prompts import get_system_message, get_user_prompt
from novelforge.services.exceptions import UpstreamError
from novelforge.services.llm.llm_logging import (
    add_llm_log,
    create_log_entry,
    finish_log_entry,
)
from novelforge.services.llm.llm_request_helpers import build_client
from novelforge.services.llm.llm_stream_ops import get_adapter, open_upstream
from novelforge.services.llm.retry_policy import RetryPolicy
from novelforge.services.providers.provider_resolver import ResolvedConnection


@dataclass(frozen=True)
class ConnectivityResult:
    ok: bool
    status: int | None
    message: str
    latency_ms: int


async def check_connection(
    connection: ResolvedConnection,
    *,
    config: Dict[str, Any] | None = None,
    policy: RetryPolicy | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ConnectivityResult:
    """Send a minimal non-streaming request to check endpoint, model and key.

    Upstream failures are reported in the result rather than raised.
    """
    config = config or load_gateway_config()
    policy = policy or RetryPolicy.from_config(config)
    adapter = get_adapter(connection.protocol)
    headers, body = adapter.build_request(
        connection,
        get_system_message("connectivity_test"),
        get_user_prompt("connectivity_test"),
        temperature=0.0,
        max_tokens=int(config["test_max_tokens"]),
        stream=False,
        anthropic_version=config["anthropic_version"],
    )
    url = connection.endpoint
    log_entry = create_log_entry(url, "POST", headers, body)
    add_llm_log(log_entry)

    started = time.monotonic()
    async with build_client(config["timeout_s"], transport) as client:
        try:
            response = await open_upstream(
                client, url, headers, body, policy, log_entry
            )
        except UpstreamError as exc:
            finish_log_entry(
                log_entry, status_code=exc.upstream_status, error=exc.detail
            )
            return ConnectivityResult(
                ok=False,
                status=exc.upstream_status,
                message=exc.detail,
                latency_ms=int((time.monotonic() - started) * 1000),
            )
        try:
            raw = await response.aread()
        finally:
            await response.aclose()

    latency_ms = int((time.monotonic() - started) * 1000)
    try:
        reply = adapter.extract_text(json.loads(raw))
    except ValueError:
        finish_log_entry(
            log_entry,
            status_code=response.status_code,
            error="response is not valid JSON",
        )
        return ConnectivityResult(
            ok=False,
            status=response.status_code,
            message="Upstream answered with a body that is not valid JSON",
            latency_ms=latency_ms,
        )

    finish_log_entry(log_entry, status_code=response.status_code)
    return ConnectivityResult(
        ok=True,
        status=response.status_code,
        message=reply.strip() or "ok",
        latency_ms=latency_ms,
    )
