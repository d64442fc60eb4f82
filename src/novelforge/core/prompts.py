# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Defines the prompts unit so this responsibility stays isolated, testable, and easy to evolve.

Centralized prompts configuration for LLM interactions.

This module contains all system messages and user prompt templates used by the
generation gateway. Deployments can override any of them through
resources/config/prompts.json.
"""

import json
from pathlib import Path
from typing import Dict, Any

from novelforge.core.config import CONFIG_DIR

DEFAULTS_JSON_PATH = Path(__file__).resolve().parent / "prompts_defaults.json"
USER_PROMPTS_JSON_PATH = CONFIG_DIR / "prompts.json"


def _overlay(prompts: Dict[str, Any], raw: Dict[str, Any]) -> None:
    for section in ["system_messages", "user_prompts"]:
        if section in raw:
            for k, v in raw[section].items():
                prompts[section][k] = ensure_string(v)


def _load_prompts() -> Dict[str, Any]:
    """Load Prompts."""
    # 1. Load internal defaults
    prompts: Dict[str, Any] = {"system_messages": {}, "user_prompts": {}}
    with open(DEFAULTS_JSON_PATH, "r", encoding="utf-8") as f:
        _overlay(prompts, json.load(f))

    # 2. Overlay deployment overrides from config/prompts.json
    if USER_PROMPTS_JSON_PATH.exists():
        with open(USER_PROMPTS_JSON_PATH, "r", encoding="utf-8") as f:
            try:
                _overlay(prompts, json.load(f))
            except json.JSONDecodeError as e:
                raise ValueError(
                    f"Invalid JSON at {USER_PROMPTS_JSON_PATH}: {e}"
                ) from e

    return prompts


def ensure_string(v: Any) -> str:
    if isinstance(v, list):
        return "\n".join(v)
    return str(v) if v is not None else ""


_PROMPTS = _load_prompts()
DEFAULT_SYSTEM_MESSAGES: Dict[str, str] = _PROMPTS["system_messages"]
DEFAULT_USER_PROMPTS: Dict[str, str] = _PROMPTS["user_prompts"]


def get_system_message(message_type: str) -> str:
    """
    Get a system message by type.

    Args:
        message_type: The type of system message (e.g., 'novel_writer', 'outline_writer')

    Returns:
        The system message string
    """
    return DEFAULT_SYSTEM_MESSAGES.get(message_type, "")


def get_user_prompt(prompt_type: str, **kwargs) -> str:
    """
    Get a formatted user prompt template.

    Args:
        prompt_type: The type of user prompt
        **kwargs: Variables to format into the prompt

    Returns:
        The formatted user prompt string
    """
    template = DEFAULT_USER_PROMPTS.get(prompt_type, "")
    if not template:
        return ""

    try:
        return template.format(**kwargs)
    except KeyError as e:
        raise ValueError(f"Missing required parameter for prompt {prompt_type}: {e}")
