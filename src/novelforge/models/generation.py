# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Defines the generation unit so this responsibility stays isolated, testable, and easy to evolve.

"""
Pydantic models for the generation gateway requests and responses.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

GenerationMode = Literal["generate", "outline", "characters", "rewrite", "continue", "test"]

GENERATION_MODES: tuple[str, ...] = (
    "generate",
    "outline",
    "characters",
    "rewrite",
    "continue",
    "test",
)


class GenerationRequest(BaseModel):
    """Validated body of ``POST /api/v1/generate-novel``.

    Field names follow the camelCase wire format through aliases so the
    existing web client keeps working unchanged.
    """

    model_config = ConfigDict(
        populate_by_name=True, frozen=True, protected_namespaces=()
    )

    mode: GenerationMode
    settings: dict[str, Any] = Field(default_factory=dict)
    provider_hint: Optional[str] = Field(default=None, alias="model")
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    api_base_url: Optional[str] = Field(default=None, alias="apiBaseUrl")
    model_override: Optional[str] = Field(default=None, alias="actualModel")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    novel_id: Optional[str] = Field(default=None, alias="novelId")
    chapter_number: Optional[int] = Field(default=None, alias="chapterNumber")
    rewrite_content: Optional[str] = Field(default=None, alias="rewriteContent")


class ConnectivityTestResponse(BaseModel):
    """Response body for ``mode: "test"`` requests."""

    ok: bool
    provider: str
    model: str
    status: Optional[int] = None
    message: str = ""
    latency_ms: int = 0


class ProviderInfo(BaseModel):
    """Describes one registry entry returned by ``GET /api/v1/providers``."""

    value: str
    label: str
    protocol: str
    default_base_url: str
    default_model: str
    models: list[str]
    requires_api_key: bool


class ProviderListResponse(BaseModel):
    providers: list[ProviderInfo]
