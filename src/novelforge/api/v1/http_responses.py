# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Defines the http responses unit so this responsibility stays isolated, testable, and easy to evolve."""

from fastapi import Request
from fastapi.responses import JSONResponse

from novelforge.services.exceptions import (
    MethodNotAllowedError,
    ServiceError,
    UpstreamError,
    ValidationError,
)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def error_json(
    detail: str, code: str, status_code: int = 400, **extra: object
) -> JSONResponse:
    body: dict[str, object] = {"error": detail, "code": code}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


def service_error_json(exc: ServiceError) -> JSONResponse:
    extra: dict[str, object] = {}
    headers = None
    if isinstance(exc, UpstreamError) and exc.upstream_status is not None:
        extra["upstream_status"] = exc.upstream_status
    if isinstance(exc, MethodNotAllowedError):
        headers = {"Allow": "POST"}
    response = error_json(exc.detail, exc.code, exc.status_code, **extra)
    if headers:
        response.headers.update(headers)
    return response


async def parse_json_body(request: Request) -> object:
    try:
        return await request.json()
    except ValueError as exc:
        raise ValidationError("Invalid JSON body", code="INVALID_JSON") from exc
