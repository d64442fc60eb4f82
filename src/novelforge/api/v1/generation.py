# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Defines the generation unit so this responsibility stays isolated, testable, and easy to evolve.

"""Single streaming endpoint that turns novel settings into generated text."""

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from novelforge.api.v1.http_responses import (
    SSE_HEADERS,
    parse_json_body,
    service_error_json,
)
from novelforge.core.config import load_gateway_config
from novelforge.models.generation import ConnectivityTestResponse
from novelforge.services.exceptions import MethodNotAllowedError, map_exception
from novelforge.services.llm import llm
from novelforge.services.storage.file_store import get_store
from novelforge.services.story.generation_request_ops import (
    authenticate,
    parse_generation_request,
    prepare_generation,
    start_generation_stream,
)

router = APIRouter(tags=["Generation"])


async def _handle(request: Request):
    if request.method != "POST":
        raise MethodNotAllowedError(f"Method {request.method} is not allowed")

    store = get_store()
    user_id = authenticate(request.headers.get("authorization"), store)
    generation_request = parse_generation_request(await parse_json_body(request))

    config = load_gateway_config()
    prepared = prepare_generation(generation_request, user_id, store, config)

    if generation_request.mode == "test":
        result = await llm.check_connection(prepared.connection, config=config)
        body = ConnectivityTestResponse(
            ok=result.ok,
            provider=prepared.connection.provider_key,
            model=prepared.connection.model,
            status=result.status,
            message=result.message,
            latency_ms=result.latency_ms,
        )
        return JSONResponse(content=body.model_dump())

    stream = await start_generation_stream(prepared, config)
    return StreamingResponse(
        stream, media_type="text/event-stream", headers=SSE_HEADERS
    )


@router.api_route(
    "/generate-novel",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
)
async def api_generate_novel(request: Request):
    if request.method == "OPTIONS":
        return Response(status_code=204)
    try:
        return await _handle(request)
    except Exception as exc:
        return service_error_json(map_exception(exc))
