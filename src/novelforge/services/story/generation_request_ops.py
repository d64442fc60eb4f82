# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Defines the generation request ops unit so this responsibility stays isolated, testable, and easy to evolve.

"""Authentication, payload validation and orchestration of one generation call.

The route module only deals with HTTP; everything between "we have a parsed
body" and "we have an open upstream stream" lives here.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict

from novelforge.core.config import load_gateway_config
from novelforge.models.generation import GENERATION_MODES, GenerationRequest
from novelforge.services.exceptions import AuthError, ValidationError
from novelforge.services.llm import llm
from novelforge.services.providers.provider_resolver import (
    ResolvedConnection,
    resolve_connection,
)
from novelforge.services.storage.file_store import FileStore
from novelforge.services.story.prompt_builder import PromptPair, build_prompts
from novelforge.services.story.story_context_ops import fetch_generation_context

DEFAULT_TEMPERATURE = 0.7
MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0


@dataclass
class PreparedGeneration:
    request: GenerationRequest
    connection: ResolvedConnection
    prompts: PromptPair


def authenticate(authorization: str | None, store: FileStore) -> str:
    """Return the caller's user id from a ``Bearer <token>`` header value."""
    if not authorization or not authorization.strip():
        raise AuthError("Authorization header is required", code="AUTH_REQUIRED")
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthError(
            "Authorization header must use the form 'Bearer <token>'",
            code="AUTH_HEADER_INVALID",
        )
    user_id = store.verify_token(token)
    if not user_id:
        raise AuthError("Session is invalid or expired; sign in again")
    return user_id


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _parse_temperature(value: Any) -> float:
    if value is None:
        return DEFAULT_TEMPERATURE
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("temperature must be a number", code="INVALID_TEMPERATURE")
    try:
        temperature = float(value)
    except OverflowError as exc:
        raise ValidationError(
            "temperature is out of range", code="INVALID_TEMPERATURE"
        ) from exc
    if math.isnan(temperature):
        raise ValidationError("temperature must be a number", code="INVALID_TEMPERATURE")
    return min(max(temperature, MIN_TEMPERATURE), MAX_TEMPERATURE)


def _parse_chapter_number(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    return int(value) if value >= 1 else None


def parse_generation_request(payload: Any) -> GenerationRequest:
    """Validate a decoded JSON body; raise ValidationError with a specific code."""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", code="INVALID_BODY")

    mode = payload.get("mode")
    if mode not in GENERATION_MODES:
        raise ValidationError(
            f"mode must be one of: {', '.join(GENERATION_MODES)}",
            code="INVALID_MODE",
        )

    settings = payload.get("settings")
    if settings is None and mode == "test":
        settings = {}
    if not isinstance(settings, dict):
        raise ValidationError("settings must be an object", code="SETTINGS_REQUIRED")

    novel_id = payload.get("novelId")
    if isinstance(novel_id, int) and not isinstance(novel_id, bool):
        novel_id = str(novel_id)
    novel_id = novel_id.strip() if isinstance(novel_id, str) else None
    if mode == "continue" and not novel_id:
        raise ValidationError(
            "novelId is required to continue a novel", code="NOVEL_ID_REQUIRED"
        )

    rewrite_content = _optional_str(payload.get("rewriteContent"))
    if mode == "rewrite" and not (rewrite_content or "").strip():
        raise ValidationError(
            "rewriteContent must not be empty", code="REWRITE_CONTENT_REQUIRED"
        )

    return GenerationRequest(
        mode=mode,
        settings=settings,
        provider_hint=_optional_str(payload.get("model")),
        api_key=_optional_str(payload.get("apiKey")),
        api_base_url=_optional_str(payload.get("apiBaseUrl")),
        model_override=_optional_str(payload.get("actualModel")),
        temperature=_parse_temperature(payload.get("temperature")),
        novel_id=novel_id or None,
        chapter_number=_parse_chapter_number(payload.get("chapterNumber")),
        rewrite_content=rewrite_content,
    )


def prepare_generation(
    request: GenerationRequest,
    user_id: str,
    store: FileStore,
    config: Dict[str, Any],
) -> PreparedGeneration:
    """Fetch context, build prompts and resolve the provider for one request."""
    context = None
    if request.mode == "continue":
        context = fetch_generation_context(
            store,
            user_id,
            request.novel_id or "",
            outline_budget=int(config["outline_budget"]),
            summary_budget=int(config["summary_budget"]),
        )

    prompts = build_prompts(
        request.mode,
        request.settings,
        context,
        chapter_number=request.chapter_number,
        rewrite_content=request.rewrite_content,
    )

    connection = resolve_connection(
        request.provider_hint,
        store.list_provider_configs(user_id),
        api_key=request.api_key,
        base_url=request.api_base_url,
        model_override=request.model_override,
    )
    return PreparedGeneration(request=request, connection=connection, prompts=prompts)


async def start_generation_stream(
    prepared: PreparedGeneration, config: Dict[str, Any] | None = None
) -> AsyncIterator[bytes]:
    config = config or load_gateway_config()
    return await llm.open_generation_stream(
        prepared.connection,
        prepared.prompts.system_prompt,
        prepared.prompts.user_prompt,
        prepared.request.temperature,
        config=config,
    )
