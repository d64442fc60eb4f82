# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Defines the provider registry unit so this responsibility stays isolated, testable, and easy to evolve.

"""Static table of the upstream LLM providers the gateway knows how to reach."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


class ProviderProtocol(str, enum.Enum):
    OPENAI_COMPATIBLE = "openai-compatible"
    ANTHROPIC = "anthropic"


@dataclass(frozen=True)
class ProviderDescriptor:
    provider_key: str
    protocol: ProviderProtocol
    default_base_url: str
    default_model: str
    label: str = ""
    models: tuple[str, ...] = field(default_factory=tuple)


_DESCRIPTORS = (
    ProviderDescriptor(
        provider_key="openai",
        protocol=ProviderProtocol.OPENAI_COMPATIBLE,
        default_base_url="https://api.openai.com/v1",
        default_model="gpt-4o",
        label="OpenAI",
        models=("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"),
    ),
    ProviderDescriptor(
        provider_key="deepseek",
        protocol=ProviderProtocol.OPENAI_COMPATIBLE,
        default_base_url="https://api.deepseek.com/v1",
        default_model="deepseek-chat",
        label="DeepSeek",
        models=("deepseek-chat", "deepseek-reasoner"),
    ),
    ProviderDescriptor(
        provider_key="claude",
        protocol=ProviderProtocol.ANTHROPIC,
        default_base_url="https://api.anthropic.com/v1",
        default_model="claude-3-5-sonnet-20241022",
        label="Claude (Anthropic)",
        models=(
            "claude-3-5-sonnet-20241022",
            "claude-3-haiku-20240307",
            "claude-3-opus-20240229",
        ),
    ),
    ProviderDescriptor(
        provider_key="grok",
        protocol=ProviderProtocol.OPENAI_COMPATIBLE,
        default_base_url="https://api.x.ai/v1",
        default_model="grok-3",
        label="Grok (xAI)",
        models=("grok-3", "grok-2", "grok-2-mini"),
    ),
    ProviderDescriptor(
        provider_key="qwen",
        protocol=ProviderProtocol.OPENAI_COMPATIBLE,
        default_base_url="https://dashscope.aliyuncs.com/compatible-mode/v1",
        default_model="qwen-plus",
        label="Qwen (通义千问)",
        models=("qwen-max", "qwen-plus", "qwen-turbo", "qwen2.5-72b-instruct"),
    ),
    ProviderDescriptor(
        provider_key="siliconflow",
        protocol=ProviderProtocol.OPENAI_COMPATIBLE,
        default_base_url="https://api.siliconflow.cn/v1",
        default_model="deepseek-ai/DeepSeek-V3",
        label="SiliconFlow",
        models=("deepseek-ai/DeepSeek-V3", "Qwen/Qwen2.5-72B-Instruct"),
    ),
    ProviderDescriptor(
        provider_key="ollama",
        protocol=ProviderProtocol.OPENAI_COMPATIBLE,
        default_base_url="http://localhost:11434/v1",
        default_model="llama3",
        label="Ollama (本地)",
        models=("llama3", "qwen2.5", "deepseek-r1"),
    ),
    ProviderDescriptor(
        provider_key="custom",
        protocol=ProviderProtocol.OPENAI_COMPATIBLE,
        default_base_url="",
        default_model="",
        label="自定义 (OpenAI 兼容)",
    ),
)

PROVIDERS: Mapping[str, ProviderDescriptor] = MappingProxyType(
    {d.provider_key: d for d in _DESCRIPTORS}
)

# Self-hosted deployments may run without credentials.
KEYLESS_PROVIDERS = frozenset({"ollama", "custom"})


def lookup(provider_key: str | None) -> ProviderDescriptor | None:
    if not provider_key:
        return None
    return PROVIDERS.get(provider_key.strip().lower())


def provider_keys() -> tuple[str, ...]:
    return tuple(PROVIDERS.keys())


def is_provider_key(value: str | None) -> bool:
    return lookup(value) is not None


def requires_api_key(descriptor: ProviderDescriptor) -> bool:
    if descriptor.protocol is ProviderProtocol.ANTHROPIC:
        return True
    return descriptor.provider_key not in KEYLESS_PROVIDERS


def list_providers() -> list[ProviderDescriptor]:
    return list(PROVIDERS.values())
