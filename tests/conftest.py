# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Defines the conftest unit so this responsibility stays isolated, testable, and easy to evolve."""

import os
import tempfile
import pytest
from pathlib import Path

# Global temporary directory for the whole test session
# This acts as a safety net to prevent tests from reading the real data folder
# if an individual test forgets to redirect.
_SESSION_TEMP_DIR = None

_SESSION_ENV = (
    "NOVELFORGE_DATA_DIR",
    "NOVELFORGE_GATEWAY_CONFIG",
    "NOVELFORGE_RETRY_BACKOFF_S",
    "NOVELFORGE_LLM_DUMP",
    "XAI_API_KEY",
    "ANTHROPIC_API_KEY",
)


@pytest.fixture(scope="session", autouse=True)
def session_temp_env():
    global _SESSION_TEMP_DIR
    _SESSION_TEMP_DIR = tempfile.TemporaryDirectory(prefix="novelforge_test_session_")

    temp_data = Path(_SESSION_TEMP_DIR.name) / "data"
    temp_data.mkdir(parents=True, exist_ok=True)

    # Store originals
    originals = {name: os.environ.get(name) for name in _SESSION_ENV}

    # Set session-wide defaults
    os.environ["NOVELFORGE_DATA_DIR"] = str(temp_data)
    os.environ["NOVELFORGE_GATEWAY_CONFIG"] = str(
        Path(_SESSION_TEMP_DIR.name) / "gateway.json"
    )
    os.environ["NOVELFORGE_RETRY_BACKOFF_S"] = "0"
    os.environ.pop("NOVELFORGE_LLM_DUMP", None)
    os.environ.pop("XAI_API_KEY", None)
    os.environ.pop("ANTHROPIC_API_KEY", None)

    yield

    # Clean up
    if _SESSION_TEMP_DIR:
        _SESSION_TEMP_DIR.cleanup()

    # Restore originals if they were there
    for name, value in originals.items():
        if value is not None:
            os.environ[name] = value
        else:
            os.environ.pop(name, None)
