# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Defines the story context ops unit so this responsibility stays isolated, testable, and easy to evolve."""

from __future__ import annotations

from novelforge.services.storage.file_store import FileStore
from novelforge.services.story.prompt_builder import (
    OUTLINE_BUDGET,
    SUMMARY_BUDGET,
    GenerationContext,
    build_previous_summary,
    truncate_context,
)


def fetch_generation_context(
    store: FileStore,
    user_id: str,
    novel_id: str,
    *,
    outline_budget: int = OUTLINE_BUDGET,
    summary_budget: int = SUMMARY_BUDGET,
) -> GenerationContext:
    """Build the continue-mode context from the persisted novel.

    A novel that does not exist (or belongs to someone else) behaves like an
    empty one, so the next chapter is chapter 1.
    """
    novel = store.load_novel(user_id, novel_id) or {}
    chapters = novel.get("chapters") or []
    return GenerationContext(
        outline=truncate_context(novel.get("outline") or "", outline_budget),
        character_cards=list(novel.get("characters") or []),
        previous_chapters_summary=truncate_context(
            build_previous_summary(chapters), summary_budget
        ),
        next_chapter_number=len(chapters) + 1,
    )
