# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Defines the provider resolver unit so this responsibility stays isolated, testable, and easy to evolve.

"""Compute the effective upstream connection for one generation request.

Precedence for every field is: explicit request value, then the caller's stored
provider row, then registry defaults (and, for the API key of a few providers,
a process-level environment secret). The result is never cached because the
stored configuration can change between two calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping

from novelforge.core.config import get_env_fallback_key
from novelforge.services.exceptions import ConfigurationError, InternalError
from novelforge.services.providers.provider_registry import (
    ProviderProtocol,
    is_provider_key,
    lookup,
    requires_api_key,
)

# Checked in order; first hit wins.
_INFERENCE_MARKERS: tuple[tuple[str, str], ...] = (
    ("claude", "claude"),
    ("anthropic", "claude"),
    ("gpt", "openai"),
    ("openai", "openai"),
    ("deepseek", "deepseek"),
    ("grok", "grok"),
    ("xai", "grok"),
    ("qwen", "qwen"),
    ("dashscope", "qwen"),
    ("siliconflow", "siliconflow"),
    ("ollama", "ollama"),
)

FALLBACK_PROVIDER = "deepseek"

_ENDPOINT_SUFFIX = {
    ProviderProtocol.OPENAI_COMPATIBLE: "/chat/completions",
    ProviderProtocol.ANTHROPIC: "/messages",
}


@dataclass(frozen=True)
class ResolvedConnection:
    provider_key: str
    protocol: ProviderProtocol
    base_url: str
    model: str
    api_key: str | None

    @property
    def endpoint(self) -> str:
        return build_endpoint(self.protocol, self.base_url)


def build_endpoint(protocol: ProviderProtocol, base_url: str) -> str:
    suffix = _ENDPOINT_SUFFIX[protocol]
    base = base_url.rstrip("/")
    if base.endswith(suffix):
        return base
    return base + suffix


def infer_provider_key(hint: str | None) -> str:
    """Map a provider key or a free-text model name onto a known provider."""
    text = (hint or "").strip().lower()
    if is_provider_key(text):
        return text
    for marker, provider_key in _INFERENCE_MARKERS:
        if marker in text:
            return provider_key
    return "custom"


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _normalize_base_url(value: Any) -> str:
    return _clean(value).rstrip("/")


def select_stored_config(
    stored_configs: Iterable[Mapping[str, Any]] | None, provider_key: str
) -> Dict[str, Any]:
    """Return the enabled stored row for provider_key, preferring the default one."""
    candidates = [
        dict(row)
        for row in stored_configs or []
        if isinstance(row, Mapping)
        and row.get("enabled", True) is not False
        and _clean(row.get("provider_type")).lower() == provider_key
    ]
    for row in candidates:
        if row.get("is_default"):
            return row
    return candidates[0] if candidates else {}


def _default_provider_from_store(
    stored_configs: Iterable[Mapping[str, Any]] | None,
) -> str | None:
    for row in stored_configs or []:
        if (
            isinstance(row, Mapping)
            and row.get("is_default")
            and row.get("enabled", True) is not False
        ):
            return infer_provider_key(_clean(row.get("provider_type")))
    return None


def resolve_connection(
    provider_hint: str | None,
    stored_configs: Iterable[Mapping[str, Any]] | None = None,
    *,
    api_key: str | None = None,
    base_url: str | None = None,
    model_override: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> ResolvedConnection:
    """Resolve (provider, protocol, base_url, model, api_key) for one request.

    Raises ConfigurationError with a field-specific code when the base URL,
    the model or a required API key cannot be determined from any source.
    """
    stored_configs = list(stored_configs or [])
    hint = _clean(provider_hint)
    if hint:
        provider_key = infer_provider_key(hint)
    else:
        provider_key = _default_provider_from_store(stored_configs) or FALLBACK_PROVIDER

    descriptor = lookup(provider_key)
    if descriptor is None:
        raise InternalError(f"Provider '{provider_key}' is not registered")
    stored = select_stored_config(stored_configs, provider_key)

    resolved_base_url = (
        _normalize_base_url(base_url)
        or _normalize_base_url(stored.get("api_base_url"))
        or descriptor.default_base_url
    )
    if not resolved_base_url:
        raise ConfigurationError(
            f"Provider '{provider_key}' has no default endpoint; "
            "configure an API base URL for it",
            code="API_BASE_URL_REQUIRED",
        )

    # A hint that is only a provider key is not a model name.
    hint_as_model = "" if is_provider_key(hint) else hint
    resolved_model = (
        _clean(model_override)
        or _clean(stored.get("default_model"))
        or hint_as_model
        or descriptor.default_model
    )
    if not resolved_model:
        raise ConfigurationError(
            f"No model configured for provider '{provider_key}'",
            code="MODEL_REQUIRED",
        )

    resolved_key = (
        _clean(api_key)
        or _clean(stored.get("api_key"))
        or get_env_fallback_key(provider_key, environ)
    )
    if not resolved_key and requires_api_key(descriptor):
        raise ConfigurationError(
            f"No API key configured for provider '{provider_key}'; "
            "add one in the provider settings",
            code=f"API_KEY_REQUIRED_{provider_key.upper()}",
        )

    return ResolvedConnection(
        provider_key=provider_key,
        protocol=descriptor.protocol,
        base_url=resolved_base_url,
        model=resolved_model,
        api_key=resolved_key or None,
    )
