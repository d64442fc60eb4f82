# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import asyncio
import json
from unittest import TestCase

import httpx

from novelforge.core.config import GATEWAY_DEFAULTS
from novelforge.services.exceptions import UpstreamError
from novelforge.services.llm import llm_completion_ops, llm_stream_ops
from novelforge.services.llm.llm_logging import llm_logs
from novelforge.services.llm.retry_policy import RetryPolicy
from novelforge.services.providers.provider_registry import ProviderProtocol
from novelforge.services.providers.provider_resolver import ResolvedConnection
from novelforge.utils.stream_helpers import DONE_EVENT, content_delta_event

DEEPSEEK = ResolvedConnection(
    provider_key="deepseek",
    protocol=ProviderProtocol.OPENAI_COMPATIBLE,
    base_url="https://api.deepseek.com/v1",
    model="deepseek-chat",
    api_key="sk-ds",
)
CLAUDE = ResolvedConnection(
    provider_key="claude",
    protocol=ProviderProtocol.ANTHROPIC,
    base_url="https://api.anthropic.com/v1",
    model="claude-3-5-sonnet-20241022",
    api_key="sk-ant",
)


class ChunkedStream(httpx.AsyncByteStream):
    """Upstream body delivered in the given chunks; remembers being closed."""

    def __init__(self, chunks, hang_after=False, delay=0.0):
        self.chunks = list(chunks)
        self.hang_after = hang_after
        self.delay = delay
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield chunk
        if self.hang_after:
            await asyncio.Event().wait()

    async def aclose(self):
        self.closed = True


def _config(**overrides):
    config = dict(GATEWAY_DEFAULTS)
    config.update(overrides)
    return config


def _anthropic_event(payload):
    return f"event: {payload['type']}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _text_delta(text):
    return _anthropic_event(
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}
    )


async def _collect(stream):
    return [chunk async for chunk in stream]


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class StreamTranslationTest(TestCase):
    def setUp(self):
        self.requests = []

    def _run(self, connection, handler, temperature=0.7, config=None, policy=None):
        def recording_handler(request):
            self.requests.append(request)
            return handler(request)

        async def run():
            stream = await llm_stream_ops.open_generation_stream(
                connection,
                "system text",
                "user text",
                temperature,
                config=config or _config(),
                policy=policy or RetryPolicy(backoff_s=0),
                transport=httpx.MockTransport(recording_handler),
            )
            return await _collect(stream)

        return asyncio.run(run())

    def test_openai_compatible_stream_is_relayed_verbatim(self):
        body = (
            b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
            b'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n'
            b"data: [DONE]\n\n"
        )
        upstream = ChunkedStream([body[:20], body[20:]])
        chunks = self._run(DEEPSEEK, lambda r: httpx.Response(200, stream=upstream))

        self.assertEqual(b"".join(chunks), body)
        self.assertTrue(upstream.closed)

        request = self.requests[0]
        self.assertEqual(str(request.url), "https://api.deepseek.com/v1/chat/completions")
        self.assertEqual(request.headers["authorization"], "Bearer sk-ds")
        sent = json.loads(request.content)
        self.assertEqual(sent["model"], "deepseek-chat")
        self.assertTrue(sent["stream"])
        self.assertEqual(sent["max_tokens"], 16000)
        self.assertEqual(
            sent["messages"],
            [
                {"role": "system", "content": "system text"},
                {"role": "user", "content": "user text"},
            ],
        )

    def test_anthropic_events_are_normalized(self):
        raw = (
            _anthropic_event({"type": "message_start", "message": {"id": "m1"}})
            + _anthropic_event({"type": "content_block_start", "index": 0})
            + _text_delta("你")
            + _text_delta("好")
            + _anthropic_event({"type": "content_block_stop", "index": 0})
            + _anthropic_event({"type": "message_stop"})
        ).encode("utf-8")
        # Split in odd places, including inside a multi-byte character.
        pieces = [raw[i : i + 7] for i in range(0, len(raw), 7)]
        upstream = ChunkedStream(pieces)

        chunks = self._run(CLAUDE, lambda r: httpx.Response(200, stream=upstream))

        self.assertEqual(
            b"".join(chunks),
            content_delta_event("你") + content_delta_event("好") + DONE_EVENT,
        )
        self.assertEqual(sum(chunk.count(b"[DONE]") for chunk in chunks), 1)
        self.assertTrue(upstream.closed)

    def test_anthropic_stream_without_stop_event_still_ends_once(self):
        raw = (_text_delta("a") + _text_delta("b")).encode("utf-8")
        chunks = self._run(
            CLAUDE, lambda r: httpx.Response(200, stream=ChunkedStream([raw]))
        )
        self.assertEqual(
            b"".join(chunks),
            content_delta_event("a") + content_delta_event("b") + DONE_EVENT,
        )

    def test_anthropic_request_shape(self):
        stop = _anthropic_event({"type": "message_stop"}).encode("utf-8")
        self._run(
            CLAUDE,
            lambda r: httpx.Response(200, stream=ChunkedStream([stop])),
            temperature=1.6,
        )
        request = self.requests[0]
        self.assertEqual(str(request.url), "https://api.anthropic.com/v1/messages")
        self.assertEqual(request.headers["x-api-key"], "sk-ant")
        self.assertEqual(request.headers["anthropic-version"], "2023-06-01")
        self.assertNotIn("authorization", request.headers)
        sent = json.loads(request.content)
        self.assertEqual(sent["system"], "system text")
        self.assertEqual(sent["messages"], [{"role": "user", "content": "user text"}])
        self.assertEqual(sent["temperature"], 1.0)

    def test_log_entry_masks_credentials(self):
        body = b"data: [DONE]\n\n"
        self._run(DEEPSEEK, lambda r: httpx.Response(200, content=body))
        entry = llm_logs[-1]
        self.assertEqual(entry["request"]["headers"]["Authorization"], "***")
        self.assertEqual(entry["response"]["status_code"], 200)
        self.assertEqual(entry["response"]["bytes_relayed"], len(body))
        self.assertIsNotNone(entry["timestamp_end"])


class RetryTest(TestCase):
    def _open(self, handler, sleep, max_retries=2):
        async def run():
            stream = await llm_stream_ops.open_generation_stream(
                DEEPSEEK,
                "s",
                "u",
                0.7,
                config=_config(),
                policy=RetryPolicy(max_retries=max_retries, backoff_s=1.0, sleep=sleep),
                transport=httpx.MockTransport(handler),
            )
            return await _collect(stream)

        return asyncio.run(run())

    def test_server_error_then_success_retries_once(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(500, json={"error": {"message": "busy"}})
            return httpx.Response(200, content=b"data: [DONE]\n\n")

        sleep = RecordingSleep()
        chunks = self._open(handler, sleep)
        self.assertEqual(len(calls), 2)
        self.assertEqual(sleep.delays, [1.0])
        self.assertEqual(b"".join(chunks), b"data: [DONE]\n\n")
        self.assertEqual(llm_logs[-1]["response"]["attempts"], 2)

    def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(
                401, json={"error": {"message": "Incorrect API key provided"}}
            )

        sleep = RecordingSleep()
        with self.assertRaises(UpstreamError) as ctx:
            self._open(handler, sleep)
        self.assertEqual(len(calls), 1)
        self.assertEqual(sleep.delays, [])
        self.assertEqual(ctx.exception.upstream_status, 401)
        self.assertEqual(ctx.exception.status_code, 502)
        self.assertEqual(
            ctx.exception.detail, "LLM API error [401]: Incorrect API key provided"
        )

    def test_persistent_server_error_exhausts_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, text="Service Unavailable")

        sleep = RecordingSleep()
        with self.assertRaises(UpstreamError) as ctx:
            self._open(handler, sleep)
        self.assertEqual(len(calls), 3)
        self.assertEqual(sleep.delays, [1.0, 2.0])
        self.assertEqual(ctx.exception.upstream_status, 503)
        self.assertIn("Service Unavailable", ctx.exception.detail)

    def test_network_error_is_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, content=b"data: [DONE]\n\n")

        sleep = RecordingSleep()
        self._open(handler, sleep)
        self.assertEqual(len(calls), 2)

    def test_error_body_cut_off_is_retried(self):
        calls = []

        class BrokenBody(httpx.AsyncByteStream):
            async def __aiter__(self):
                yield b'{"error": '
                raise httpx.ReadError("connection reset")

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503, stream=BrokenBody())
            return httpx.Response(200, content=b"data: [DONE]\n\n")

        chunks = self._open(handler, RecordingSleep())
        self.assertEqual(len(calls), 2)
        self.assertEqual(b"".join(chunks), b"data: [DONE]\n\n")

    def test_error_body_cut_off_on_last_attempt(self):
        class BrokenBody(httpx.AsyncByteStream):
            async def __aiter__(self):
                yield b'{"error": '
                raise httpx.ReadError("connection reset")

        def handler(request):
            return httpx.Response(503, stream=BrokenBody())

        with self.assertRaises(UpstreamError) as ctx:
            self._open(handler, RecordingSleep(), max_retries=0)
        self.assertEqual(ctx.exception.status_code, 502)
        self.assertIn("network error", ctx.exception.detail)
        self.assertIn("connection reset", ctx.exception.detail)

    def test_network_error_without_recovery(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(UpstreamError) as ctx:
            self._open(handler, RecordingSleep(), max_retries=0)
        self.assertIsNone(ctx.exception.upstream_status)
        self.assertIn("[network]", ctx.exception.detail)
        self.assertIn("connection refused", ctx.exception.detail)


class RelayLifecycleTest(TestCase):
    def test_cancelled_consumer_releases_upstream(self):
        upstream = ChunkedStream(
            [b'data: {"choices":[{"delta":{"content":"x"}}]}\n\n'], hang_after=True
        )

        async def run():
            stream = await llm_stream_ops.open_generation_stream(
                DEEPSEEK,
                "s",
                "u",
                0.7,
                config=_config(),
                policy=RetryPolicy(backoff_s=0),
                transport=httpx.MockTransport(
                    lambda r: httpx.Response(200, stream=upstream)
                ),
            )
            received = []
            first = asyncio.Event()

            async def consume():
                async for chunk in stream:
                    received.append(chunk)
                    first.set()

            task = asyncio.create_task(consume())
            await first.wait()
            task.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await task
            return received

        received = asyncio.run(run())
        self.assertEqual(len(received), 1)
        self.assertTrue(upstream.closed)
        self.assertEqual(llm_logs[-1]["response"]["error"], "cancelled by caller")

    def test_stream_deadline_aborts_relay(self):
        upstream = ChunkedStream([b"data: [DONE]\n\n"], delay=0.01)

        async def run():
            stream = await llm_stream_ops.open_generation_stream(
                DEEPSEEK,
                "s",
                "u",
                0.7,
                config=_config(stream_deadline_s=0.001),
                policy=RetryPolicy(backoff_s=0),
                transport=httpx.MockTransport(
                    lambda r: httpx.Response(200, stream=upstream)
                ),
            )
            return await _collect(stream)

        with self.assertRaises(UpstreamError):
            asyncio.run(run())
        self.assertTrue(upstream.closed)
        self.assertIn("deadline", llm_logs[-1]["response"]["error"])


class ConnectionCheckTest(TestCase):
    def _check(self, connection, handler):
        self.requests = []

        def recording_handler(request):
            self.requests.append(request)
            return handler(request)

        return asyncio.run(
            llm_completion_ops.check_connection(
                connection,
                config=_config(),
                policy=RetryPolicy(backoff_s=0),
                transport=httpx.MockTransport(recording_handler),
            )
        )

    def test_reachable_openai_compatible_endpoint(self):
        result = self._check(
            DEEPSEEK,
            lambda r: httpx.Response(
                200, json={"choices": [{"message": {"role": "assistant", "content": " pong "}}]}
            ),
        )
        self.assertTrue(result.ok)
        self.assertEqual(result.status, 200)
        self.assertEqual(result.message, "pong")
        self.assertGreaterEqual(result.latency_ms, 0)
        sent = json.loads(self.requests[0].content)
        self.assertFalse(sent["stream"])
        self.assertEqual(sent["max_tokens"], 16)
        self.assertEqual(sent["messages"][-1]["content"], "ping")

    def test_reachable_anthropic_endpoint(self):
        result = self._check(
            CLAUDE,
            lambda r: httpx.Response(
                200, json={"content": [{"type": "text", "text": "pong"}]}
            ),
        )
        self.assertTrue(result.ok)
        self.assertEqual(result.message, "pong")

    def test_rejected_key_is_reported_not_raised(self):
        result = self._check(
            DEEPSEEK,
            lambda r: httpx.Response(401, json={"error": {"message": "bad key"}}),
        )
        self.assertFalse(result.ok)
        self.assertEqual(result.status, 401)
        self.assertIn("bad key", result.message)

    def test_non_json_reply(self):
        result = self._check(DEEPSEEK, lambda r: httpx.Response(200, text="<html>"))
        self.assertFalse(result.ok)
        self.assertEqual(result.status, 200)
