# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Debug routes exposing the upstream request log ring.

`GET /debug/llm_logs` returns the most recent upstream calls (credentials
masked, attempt count, relayed bytes, error) and `DELETE` empties the ring.
"""

from typing import Optional

from fastapi import APIRouter, Query
from novelforge.services.llm.llm import llm_logs

router = APIRouter(prefix="/debug", tags=["debug"])


@router.get("/llm_logs")
async def list_llm_logs(limit: Optional[int] = Query(default=None, ge=0)):
    """Return the logged upstream calls, oldest first; `limit` keeps the newest ones."""
    if limit is None:
        return llm_logs
    return llm_logs[max(0, len(llm_logs) - limit) :] if limit else []


@router.delete("/llm_logs")
async def clear_llm_logs():
    """Clear the upstream communication logs."""
    llm_logs.clear()
    return {"status": "ok"}
