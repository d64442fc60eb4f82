# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Defines the retry policy unit so this responsibility stays isolated, testable, and easy to evolve.

"""Retry policy for upstream provider calls.

Only failures that might succeed on a second try are retried: 5xx answers and
network errors where no status was received at all. The delay grows linearly
with the attempt number.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    backoff_s: float = 1.0
    sleep: Callable[[float], Awaitable[None]] = field(
        default=asyncio.sleep, compare=False, repr=False
    )

    @property
    def max_attempts(self) -> int:
        return max(0, self.max_retries) + 1

    def delay_for(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        return self.backoff_s * attempt

    def is_retryable(self, status_code: int | None) -> bool:
        if status_code is None:
            return True
        return status_code >= 500

    async def wait(self, attempt: int) -> None:
        delay = self.delay_for(attempt)
        if delay > 0:
            await self.sleep(delay)

    @classmethod
    def from_config(cls, config: dict) -> "RetryPolicy":
        return cls(
            max_retries=int(config.get("max_retries", 2)),
            backoff_s=float(config.get("retry_backoff_s", 1.0)),
        )
