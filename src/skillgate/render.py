"""Prompt Composer: renders the active set into the injected text block.

Block template, one per skill, joined by a blank line::

    <skill id="{id}">
    # {title}
    {description}

    {body}
    </skill>

``content_hash`` is the SHA-256 hex digest of the rendered text, so it is
stable across processes. An empty active set renders to ``""`` and hashes to
``EMPTY_HASH``.

Skill text is untrusted: a literal ``<skill`` or ``</skill`` inside a title,
description or body is rendered as ``&lt;skill`` so each skill stays one block.
"""

from __future__ import annotations

import hashlib
import re
from typing import Iterable
from xml.sax.saxutils import escape

from .schema import PromptFragment, SkillDefinition

SEPARATOR = "\n\n"
TRUNCATION_MARKER = "\n[truncated]"
EMPTY_HASH = hashlib.sha256(b"").hexdigest()

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}
_BLOCK_TAG_RE = re.compile(r"<(/?skill\b)", re.IGNORECASE)


def _normalize(text: str) -> str:
    lines = str(text or "").replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return "\n".join(line.rstrip() for line in lines).strip("\n")


def _neutralize(text: str) -> str:
    return _BLOCK_TAG_RE.sub(r"&lt;\1", text)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    keep = max(0, int(limit) - len(TRUNCATION_MARKER))
    return text[:keep].rstrip() + TRUNCATION_MARKER


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def render_skill(skill: SkillDefinition, body: str | None = None) -> str:
    body = _neutralize(_normalize(skill.body_content if body is None else body))
    parts = [
        f'<skill id="{escape(skill.id, _XML_ENTITIES)}">',
        f"# {_neutralize(_normalize(skill.title))}",
        _neutralize(_normalize(skill.description)),
    ]
    if body:
        parts.extend(["", body])
    parts.append("</skill>")
    return "\n".join(parts)


def compose(
    active_set: Iterable[SkillDefinition],
    *,
    max_body_chars_per_skill: int | None = None,
    max_body_chars_total: int | None = None,
) -> PromptFragment:
    blocks: list[str] = []
    consumed = 0
    for skill in active_set:
        body = _neutralize(_normalize(skill.body_content))
        if max_body_chars_total is not None:
            remaining = int(max_body_chars_total) - consumed
            if remaining <= 0:
                body = ""
            else:
                body = _truncate(body, remaining)
        if max_body_chars_per_skill is not None:
            body = _truncate(body, int(max_body_chars_per_skill))
        consumed += len(body)
        blocks.append(render_skill(skill, body))

    text = SEPARATOR.join(blocks)
    return PromptFragment(text=text, content_hash=content_hash(text))


def format_skill_index(skills: Iterable[SkillDefinition]) -> str:
    rows = [
        "  <skill>\n"
        f"    <name>{escape(skill.id, _XML_ENTITIES)}</name>\n"
        f"    <description>{escape(skill.description, _XML_ENTITIES)}</description>\n"
        f"    <location>{escape(skill.source_path, _XML_ENTITIES)}</location>\n"
        "  </skill>"
        for skill in skills
    ]
    if not rows:
        return ""
    return "<skills>\n" + "\n".join(rows) + "\n</skills>"
