# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Defines the llm stream ops unit so this responsibility stays isolated, testable, and easy to evolve.

One adapter per wire protocol turns a resolved connection plus a prompt pair
into an upstream request, and turns the upstream body into the normalized
event stream (``data: {"choices":[{"delta":{"content": ...}}]}`` lines ended
by ``data: [DONE]``). Providers sharing a protocol share the adapter.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncIterator, Dict, Tuple

import httpx

from novelforge.core.config import load_gateway_config
from novelforge.services.exceptions import UpstreamError
from novelforge.services.llm.llm_logging import (
    add_llm_log,
    create_log_entry,
    finish_log_entry,
)
from novelforge.services.llm.llm_request_helpers import (
    build_anthropic_headers,
    build_client,
    build_headers,
)
from novelforge.services.llm.retry_policy import RetryPolicy
from novelforge.services.providers.provider_registry import ProviderProtocol
from novelforge.services.providers.provider_resolver import ResolvedConnection
from novelforge.utils.llm_parsing import extract_upstream_error_message
from novelforge.utils.stream_helpers import (
    DONE_EVENT,
    SSELineDecoder,
    content_delta_event,
    is_done_line,
    parse_sse_data,
)

DEFAULT_ANTHROPIC_VERSION = "2023-06-01"


class StreamAdapter:
    """Shared contract of the per-protocol adapters."""

    protocol: ProviderProtocol

    def build_request(
        self,
        connection: ResolvedConnection,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        stream: bool = True,
        anthropic_version: str = DEFAULT_ANTHROPIC_VERSION,
    ) -> Tuple[Dict[str, str], Dict[str, Any]]:
        raise NotImplementedError

    def translate(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        raise NotImplementedError

    def extract_text(self, data: Dict[str, Any]) -> str:
        """Return the reply text of a non-streaming response body."""
        raise NotImplementedError


class OpenAICompatibleAdapter(StreamAdapter):
    protocol = ProviderProtocol.OPENAI_COMPATIBLE

    def build_request(
        self,
        connection,
        system_prompt,
        user_prompt,
        *,
        temperature,
        max_tokens,
        stream=True,
        anthropic_version=DEFAULT_ANTHROPIC_VERSION,
    ):
        body: Dict[str, Any] = {
            "model": connection.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "stream": stream,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        return build_headers(connection.api_key), body

    async def translate(self, chunks):
        # Upstream already speaks the normalized shape; relay it byte for byte.
        async for chunk in chunks:
            if chunk:
                yield chunk

    def extract_text(self, data):
        try:
            return data["choices"][0]["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError):
            return ""


class AnthropicAdapter(StreamAdapter):
    protocol = ProviderProtocol.ANTHROPIC

    def build_request(
        self,
        connection,
        system_prompt,
        user_prompt,
        *,
        temperature,
        max_tokens,
        stream=True,
        anthropic_version=DEFAULT_ANTHROPIC_VERSION,
    ):
        body: Dict[str, Any] = {
            "model": connection.model,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
            "stream": stream,
            # The messages API rejects temperatures above 1.
            "temperature": min(max(temperature, 0.0), 1.0),
            "max_tokens": max_tokens,
        }
        return build_anthropic_headers(connection.api_key, anthropic_version), body

    @staticmethod
    def _translate_line(line: str) -> Tuple[bytes | None, bool]:
        if is_done_line(line):
            return None, True
        event = parse_sse_data(line)
        if not isinstance(event, dict):
            return None, False
        event_type = event.get("type")
        if event_type == "content_block_delta":
            delta = event.get("delta") or {}
            text = delta.get("text") if isinstance(delta, dict) else None
            if text:
                return content_delta_event(text), False
        elif event_type == "message_stop":
            return None, True
        return None, False

    async def translate(self, chunks):
        decoder = SSELineDecoder()
        async for chunk in chunks:
            for line in decoder.feed(chunk):
                out, done = self._translate_line(line)
                if out:
                    yield out
                if done:
                    yield DONE_EVENT
                    return
        for line in decoder.flush():
            out, done = self._translate_line(line)
            if out:
                yield out
            if done:
                break
        yield DONE_EVENT

    def extract_text(self, data):
        blocks = data.get("content") if isinstance(data, dict) else None
        if not isinstance(blocks, list):
            return ""
        return "".join(
            b.get("text") or ""
            for b in blocks
            if isinstance(b, dict) and b.get("type") == "text"
        )


_ADAPTERS: Dict[ProviderProtocol, StreamAdapter] = {
    ProviderProtocol.OPENAI_COMPATIBLE: OpenAICompatibleAdapter(),
    ProviderProtocol.ANTHROPIC: AnthropicAdapter(),
}


def get_adapter(protocol: ProviderProtocol) -> StreamAdapter:
    return _ADAPTERS[ProviderProtocol(protocol)]


async def open_upstream(
    client: httpx.AsyncClient,
    url: str,
    headers: Dict[str, str],
    body: Dict[str, Any],
    policy: RetryPolicy,
    log_entry: Dict[str, Any] | None = None,
) -> httpx.Response:
    """POST to the provider, retrying transient failures.

    Returns the open (unread) response on success. Raises UpstreamError with
    the last observed status and a normalized message otherwise.
    """
    last_status: int | None = None
    last_message = ""
    for attempt in range(1, policy.max_attempts + 1):
        if log_entry:
            log_entry["response"]["attempts"] = attempt
        request = client.build_request("POST", url, headers=headers, json=body)
        try:
            response = await client.send(request, stream=True)
        except httpx.TransportError as exc:
            last_status = None
            last_message = f"network error: {str(exc) or exc.__class__.__name__}"
        else:
            if response.status_code < 400:
                if log_entry:
                    log_entry["response"]["status_code"] = response.status_code
                return response
            last_status = response.status_code
            try:
                error_content = await response.aread()
            except httpx.TransportError as exc:
                last_status = None
                last_message = f"network error: {str(exc) or exc.__class__.__name__}"
            else:
                last_message = (
                    extract_upstream_error_message(error_content)
                    or response.reason_phrase
                )
            finally:
                await response.aclose()

        if attempt >= policy.max_attempts or not policy.is_retryable(last_status):
            break
        await policy.wait(attempt)

    label = last_status if last_status is not None else "network"
    raise UpstreamError(
        f"LLM API error [{label}]: {last_message}", upstream_status=last_status
    )


async def _release(response: httpx.Response, client: httpx.AsyncClient) -> None:
    await response.aclose()
    await client.aclose()


async def _relay(
    adapter: StreamAdapter,
    response: httpx.Response,
    client: httpx.AsyncClient,
    log_entry: Dict[str, Any],
    deadline_s: float,
) -> AsyncIterator[bytes]:
    started = time.monotonic()
    error: str | None = None
    try:
        async for chunk in adapter.translate(response.aiter_bytes()):
            if deadline_s and time.monotonic() - started > deadline_s:
                error = f"stream exceeded the {deadline_s:g}s deadline"
                raise UpstreamError(f"LLM API error: {error}", upstream_status=None)
            log_entry["response"]["bytes_relayed"] += len(chunk)
            yield chunk
    except httpx.HTTPError as exc:
        error = f"stream interrupted: {str(exc) or exc.__class__.__name__}"
        raise
    except asyncio.CancelledError:
        error = "cancelled by caller"
        raise
    finally:
        finish_log_entry(log_entry, error=error)
        # Shielded so a cancelled caller still releases the upstream connection.
        await asyncio.shield(_release(response, client))


async def open_generation_stream(
    connection: ResolvedConnection,
    system_prompt: str,
    user_prompt: str,
    temperature: float,
    *,
    config: Dict[str, Any] | None = None,
    policy: RetryPolicy | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[bytes]:
    """Open the upstream call and return the normalized byte stream.

    Upstream failures are raised here, before the first byte is relayed, so
    the caller can still answer with a structured error.
    """
    config = config or load_gateway_config()
    policy = policy or RetryPolicy.from_config(config)
    adapter = get_adapter(connection.protocol)
    headers, body = adapter.build_request(
        connection,
        system_prompt,
        user_prompt,
        temperature=temperature,
        max_tokens=int(config["max_tokens"]),
        anthropic_version=config["anthropic_version"],
    )
    url = connection.endpoint

    log_entry = create_log_entry(url, "POST", headers, body, streaming=True)
    add_llm_log(log_entry)

    client = build_client(config["timeout_s"], transport)
    try:
        response = await open_upstream(client, url, headers, body, policy, log_entry)
    except BaseException as exc:
        finish_log_entry(
            log_entry,
            status_code=getattr(exc, "upstream_status", None),
            error=str(exc),
        )
        await client.aclose()
        raise

    return _relay(
        adapter,
        response,
        client,
        log_entry,
        float(config.get("stream_deadline_s") or 0),
    )
