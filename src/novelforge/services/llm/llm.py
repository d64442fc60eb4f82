# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Defines the llm unit so this responsibility stays isolated, testable, and easy to evolve.

"""LLM adapter facade.

Public API is kept stable while implementations are split into:
- llm_stream_ops: protocol adapters, retrying upstream open, streaming relay
- llm_completion_ops: non-streaming connectivity check
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict

import httpx

from novelforge.services.llm import llm_logging as _llm_logging
from novelforge.services.llm import llm_stream_ops as _llm_stream_ops
from novelforge.services.llm import llm_completion_ops as _llm_completion_ops
from novelforge.services.llm.retry_policy import RetryPolicy
from novelforge.services.providers.provider_resolver import ResolvedConnection

# Exported for the debug endpoint and tests.
llm_logs = _llm_logging.llm_logs
add_llm_log = _llm_logging.add_llm_log
create_log_entry = _llm_logging.create_log_entry
ConnectivityResult = _llm_completion_ops.ConnectivityResult

# Tests set this to an httpx.MockTransport to keep every upstream call in-process.
UPSTREAM_TRANSPORT: httpx.AsyncBaseTransport | None = None


async def open_generation_stream(
    connection: ResolvedConnection,
    system_prompt: str,
    user_prompt: str,
    temperature: float,
    *,
    config: Dict[str, Any] | None = None,
    policy: RetryPolicy | None = None,
) -> AsyncIterator[bytes]:
    return await _llm_stream_ops.open_generation_stream(
        connection,
        system_prompt,
        user_prompt,
        temperature,
        config=config,
        policy=policy,
        transport=UPSTREAM_TRANSPORT,
    )


async def check_connection(
    connection: ResolvedConnection,
    *,
    config: Dict[str, Any] | None = None,
    policy: RetryPolicy | None = None,
) -> ConnectivityResult:
    return await _llm_completion_ops.check_connection(
        connection,
        config=config,
        policy=policy,
        transport=UPSTREAM_TRANSPORT,
    )
