# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Defines the prompt builder unit so this responsibility stays isolated, testable, and easy to evolve.

"""Assemble the system/user prompt pair for each generation mode."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from novelforge.core.prompts import get_system_message, get_user_prompt

OUTLINE_BUDGET = 4000
SUMMARY_BUDGET = 8000
RECENT_CHAPTERS = 3
CHAPTER_EXCERPT_CHARS = 500
DEFAULT_TOTAL_WORDS = 100000

_SYSTEM_MESSAGE_BY_MODE = {
    "generate": "novel_writer",
    "continue": "novel_writer",
    "outline": "outline_writer",
    "characters": "character_designer",
    "rewrite": "chapter_rewriter",
    "test": "connectivity_test",
}


@dataclass(frozen=True)
class PromptPair:
    system_prompt: str
    user_prompt: str


@dataclass
class GenerationContext:
    """Prior-chapter context injected into ``continue`` prompts."""

    outline: str = ""
    character_cards: List[Dict[str, Any]] = field(default_factory=list)
    previous_chapters_summary: str = ""
    next_chapter_number: int = 1


def truncate_context(text: str, max_chars: int) -> str:
    """Keep the trailing ``max_chars`` characters; recent content matters most."""
    if len(text) <= max_chars:
        return text
    return text[len(text) - max_chars :]


def build_previous_summary(chapters: List[Mapping[str, Any]]) -> str:
    if not chapters:
        return ""
    parts = []
    for chapter in chapters[-RECENT_CHAPTERS:]:
        content = chapter.get("content") or ""
        if len(content) > CHAPTER_EXCERPT_CHARS:
            content = content[:CHAPTER_EXCERPT_CHARS] + "..."
        parts.append(
            f"第{chapter.get('chapter_number')}章 {chapter.get('title') or ''}：{content}"
        )
    return "\n\n".join(parts)


def _protagonist_line(protagonist: Any) -> str | None:
    if not isinstance(protagonist, Mapping) or not protagonist.get("name"):
        return None
    return (
        f"主角：{protagonist['name']}，{protagonist.get('gender') or '未知'}，"
        f"{protagonist.get('age') or '未知'}岁，"
        f"性格：{protagonist.get('personality') or '未设定'}"
    )


def build_settings_block(settings: Mapping[str, Any] | None) -> str:
    """Render the non-empty settings fields as labeled lines in a fixed order."""
    settings = settings or {}
    lines: List[str] = []

    genres = settings.get("genres")
    if isinstance(genres, list) and genres:
        lines.append("类型：" + "、".join(str(g) for g in genres))
    protagonist = _protagonist_line(settings.get("protagonist"))
    if protagonist:
        lines.append(protagonist)
    if settings.get("worldSetting"):
        lines.append(f"世界观：{settings['worldSetting']}")
    if settings.get("conflict"):
        lines.append(f"核心冲突：{settings['conflict']}")
    if settings.get("synopsis"):
        lines.append(f"简介：{settings['synopsis']}")
    if settings.get("style"):
        lines.append(f"风格：{settings['style']}")
    if settings.get("narration"):
        lines.append(f"视角：{settings['narration']}")
    if settings.get("chapterWords"):
        lines.append(f"本章字数要求：约{settings['chapterWords']}字")
    if settings.get("nsfw"):
        lines.append("允许成人内容")
    if settings.get("systemNovel"):
        lines.append("这是一本系统文，主角拥有系统")
    if settings.get("harem"):
        lines.append("后宫元素")
    return "\n".join(lines)


def _context_sections(context: GenerationContext) -> List[str]:
    sections = []
    if context.outline:
        sections.append(f"\n【大纲】\n{context.outline}")
    if context.character_cards:
        cards = json.dumps(context.character_cards, ensure_ascii=False, indent=2)
        sections.append(f"\n【人物卡】\n{cards}")
    if context.previous_chapters_summary:
        sections.append(f"\n【前文摘要（最近3章）】\n{context.previous_chapters_summary}")
    return sections


def _join(*parts: str) -> str:
    return "\n".join(p for p in parts if p)


def build_prompts(
    mode: str,
    settings: Mapping[str, Any] | None,
    context: GenerationContext | None = None,
    *,
    chapter_number: int | None = None,
    rewrite_content: str | None = None,
) -> PromptPair:
    if mode not in _SYSTEM_MESSAGE_BY_MODE:
        raise ValueError(f"Unknown generation mode: {mode}")

    system_prompt = get_system_message(_SYSTEM_MESSAGE_BY_MODE[mode])
    settings = settings or {}
    block = build_settings_block(settings)

    if mode == "generate":
        request = get_user_prompt(
            "chapter_request", chapter_number=chapter_number or 1
        )
        user_prompt = _join(block, "\n" + request)
    elif mode == "continue":
        context = context or GenerationContext()
        request = get_user_prompt(
            "chapter_request", chapter_number=context.next_chapter_number
        )
        user_prompt = _join(block, *_context_sections(context), "\n" + request)
    elif mode == "outline":
        total_words = settings.get("totalWords") or DEFAULT_TOTAL_WORDS
        user_prompt = (
            block
            + "\n\n"
            + get_user_prompt("outline_request", total_words=total_words)
        )
    elif mode == "characters":
        user_prompt = block + "\n\n" + get_user_prompt("characters_request")
    elif mode == "rewrite":
        user_prompt = get_user_prompt(
            "rewrite_request",
            rewrite_content=rewrite_content or "",
            settings_block=block,
        )
    else:
        user_prompt = get_user_prompt("connectivity_test")

    return PromptPair(system_prompt=system_prompt, user_prompt=user_prompt)
