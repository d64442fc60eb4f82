# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import json
from unittest import TestCase

from novelforge.utils.llm_parsing import extract_upstream_error_message
from novelforge.utils.stream_helpers import (
    SSELineDecoder,
    content_delta_event,
    is_done_line,
    parse_sse_data,
)


class SSELineDecoderTest(TestCase):
    def test_lines_split_across_chunks(self):
        decoder = SSELineDecoder()
        self.assertEqual(decoder.feed(b"data: {\"a\""), [])
        self.assertEqual(decoder.feed(b": 1}\n\ndata: [DO"), ['data: {"a": 1}', ""])
        self.assertEqual(decoder.feed(b"NE]\n"), ["data: [DONE]"])
        self.assertEqual(decoder.flush(), [])

    def test_crlf_is_stripped(self):
        decoder = SSELineDecoder()
        self.assertEqual(decoder.feed(b"event: x\r\ndata: y\r\n"), ["event: x", "data: y"])

    def test_multibyte_character_split_between_chunks(self):
        encoded = "data: 你好\n".encode("utf-8")
        decoder = SSELineDecoder()
        # Cut inside the first character's three-byte sequence.
        self.assertEqual(decoder.feed(encoded[:7]), [])
        self.assertEqual(decoder.feed(encoded[7:]), ["data: 你好"])

    def test_flush_returns_trailing_partial_line(self):
        decoder = SSELineDecoder()
        decoder.feed(b"data: tail")
        self.assertEqual(decoder.flush(), ["data: tail"])
        self.assertEqual(decoder.flush(), [])


class SSEDataTest(TestCase):
    def test_parse_data_line(self):
        self.assertEqual(parse_sse_data('data: {"type": "ping"}'), {"type": "ping"})
        self.assertEqual(parse_sse_data('data:{"x":1}'), {"x": 1})

    def test_parse_ignores_non_data(self):
        self.assertIsNone(parse_sse_data("event: message_start"))
        self.assertIsNone(parse_sse_data(": keep-alive"))
        self.assertIsNone(parse_sse_data("data: [DONE]"))
        self.assertIsNone(parse_sse_data("data: not json"))

    def test_done_line(self):
        self.assertTrue(is_done_line("data: [DONE]"))
        self.assertTrue(is_done_line("data:[DONE]"))
        self.assertFalse(is_done_line("data: {}"))

    def test_content_delta_keeps_unicode(self):
        event = content_delta_event("第一章")
        self.assertTrue(event.startswith(b"data: "))
        self.assertTrue(event.endswith(b"\n\n"))
        self.assertIn("第一章".encode("utf-8"), event)
        payload = json.loads(event[len(b"data: ") :].decode("utf-8"))
        self.assertEqual(payload, {"choices": [{"delta": {"content": "第一章"}}]})


class UpstreamErrorMessageTest(TestCase):
    def test_nested_error_message(self):
        raw = b'{"error": {"message": "Incorrect API key", "type": "auth"}}'
        self.assertEqual(extract_upstream_error_message(raw), "Incorrect API key")

    def test_error_string(self):
        self.assertEqual(extract_upstream_error_message('{"error": "quota"}'), "quota")

    def test_top_level_message(self):
        self.assertEqual(extract_upstream_error_message('{"message": "overloaded"}'), "overloaded")

    def test_message_token_in_plain_text(self):
        self.assertEqual(
            extract_upstream_error_message("upstream failed, message: rate limited"),
            "rate limited",
        )
        self.assertEqual(
            extract_upstream_error_message("<html>message='quota exceeded'</html>"),
            "quota exceeded",
        )

    def test_plain_text_is_truncated(self):
        raw = "x" * 400
        self.assertEqual(extract_upstream_error_message(raw), "x" * 300 + "...")
        self.assertEqual(extract_upstream_error_message("Bad Gateway"), "Bad Gateway")
