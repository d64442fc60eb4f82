# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Defines the stream helpers unit so this responsibility stays isolated, testable, and easy to evolve.

Utility functions for handling server-sent events (SSE) and data streaming.
Includes an incremental line decoder shared by every protocol adapter and the
encoders for the normalized event shape relayed to clients.
"""

import codecs
import json
from typing import Any, List

DONE_EVENT = b"data: [DONE]\n\n"


class SSELineDecoder:
    """Stateful decoder turning arbitrary byte chunks into complete text lines.

    Partial lines (and UTF-8 sequences split across reads) are carried over
    until the rest arrives.
    """

    def __init__(self):
        """Init  ."""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.buffer = ""

    def feed(self, chunk: bytes) -> List[str]:
        """Process a chunk and return the lines it completed, without terminators."""
        self.buffer += self._decoder.decode(chunk)
        lines = []
        while True:
            newline = self.buffer.find("\n")
            if newline == -1:
                break
            line = self.buffer[:newline]
            self.buffer = self.buffer[newline + 1 :]
            if line.endswith("\r"):
                line = line[:-1]
            lines.append(line)
        return lines

    def flush(self) -> List[str]:
        """Flush the buffer and return any remaining partial line."""
        self.buffer += self._decoder.decode(b"", final=True)
        results = []
        if self.buffer:
            results.append(self.buffer.rstrip("\r"))
            self.buffer = ""
        return results


def parse_sse_data(line: str) -> Any:
    """Return the decoded JSON payload of a ``data:`` line.

    Returns None for comments, other fields, ``[DONE]`` and undecodable data.
    """
    if not line.startswith("data:"):
        return None
    data = line[len("data:") :].strip()
    if not data or data == "[DONE]":
        return None
    try:
        return json.loads(data)
    except ValueError:
        return None


def is_done_line(line: str) -> bool:
    return line.startswith("data:") and line[len("data:") :].strip() == "[DONE]"


def content_delta_event(text: str) -> bytes:
    payload = {"choices": [{"delta": {"content": text}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")
