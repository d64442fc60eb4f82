# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Defines the providers unit so this responsibility stays isolated, testable, and easy to evolve."""

from fastapi import APIRouter

from novelforge.models.generation import ProviderInfo, ProviderListResponse
from novelforge.services.providers.provider_registry import (
    list_providers,
    requires_api_key,
)

router = APIRouter(tags=["Providers"])


@router.get("/providers", response_model=ProviderListResponse)
async def api_list_providers() -> ProviderListResponse:
    """List the known upstream providers and their connection defaults."""
    return ProviderListResponse(
        providers=[
            ProviderInfo(
                value=d.provider_key,
                label=d.label,
                protocol=d.protocol.value,
                default_base_url=d.default_base_url,
                default_model=d.default_model,
                models=list(d.models),
                requires_api_key=requires_api_key(d),
            )
            for d in list_providers()
        ]
    )
