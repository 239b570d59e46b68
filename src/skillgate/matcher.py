from __future__ import annotations

import re
from dataclasses import dataclass

from .schema import (
    INVOKE_AMBIGUOUS,
    INVOKE_NONE,
    INVOKE_SINGLE,
    Invocation,
    SkillCatalog,
    SkillDefinition,
    normalize_phrase,
)

_SLASH_RE = re.compile(r"^/([a-z0-9][a-z0-9-]{0,63})(?:\s+(.*))?$", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class SlashCommand:
    name: str
    command_name: str
    raw_args: str


def parse_slash_command(raw_text: str) -> SlashCommand | None:
    match = _SLASH_RE.match(str(raw_text or "").strip())
    if not match:
        return None
    name = match.group(1).lower()
    return SlashCommand(name=name, command_name=f"/{name}", raw_args=(match.group(2) or "").strip())


def _phrase_matches(phrase: str, spoken: str) -> tuple[bool, bool]:
    """Return (exact, prefix) for one trigger phrase against the spoken command.

    ``spoken`` is the command name plus its arguments. A prefix hit is either
    side being a word-aligned prefix of the other.
    """
    wanted = normalize_phrase(phrase).lstrip("/")
    if not wanted:
        return False, False
    if wanted == spoken:
        return True, False
    return False, spoken.startswith(wanted + " ") or wanted.startswith(spoken + " ")


def _resolved(raw: str, command: SlashCommand, ids: list[str]) -> Invocation:
    if len(ids) == 1:
        kind = INVOKE_SINGLE
    else:
        kind = INVOKE_AMBIGUOUS
    return Invocation(
        raw=raw,
        kind=kind,
        skill_id=ids[0] if kind == INVOKE_SINGLE else None,
        candidates=tuple(ids),
        command_name=command.command_name,
        raw_args=command.raw_args,
    )


def match(raw_text: str, catalog: SkillCatalog) -> Invocation:
    """Resolve a leading ``/name args`` command against the catalog.

    Tiers, highest first: slash name, exact trigger phrase, trigger-phrase
    prefix. The first tier with any hit decides; several hits in that tier
    give an ambiguous invocation listing candidates in catalog order.

    Trigger phrases compare against the whole command text (name plus
    arguments, lowercased, whitespace collapsed, leading ``/`` ignored).
    Prefixes are whole words only: ``/deploy`` matches the trigger
    ``deploy prod`` and ``/deploy prod now`` matches ``deploy prod``, but
    ``/dep`` does not match ``deploy``.
    """
    raw = str(raw_text or "")
    command = parse_slash_command(raw)
    if command is None:
        return Invocation(raw=raw)

    spoken = normalize_phrase(f"{command.name} {command.raw_args}")
    invocable: list[SkillDefinition] = [s for s in catalog.ordered() if s.user_invocable]

    by_slash = [s.id for s in invocable if s.slash_name and s.slash_name.lower() == command.name]
    if by_slash:
        return _resolved(raw, command, by_slash)

    exact: list[str] = []
    prefix: list[str] = []
    for skill in invocable:
        hit_exact = hit_prefix = False
        for phrase in skill.trigger_phrases:
            is_exact, is_prefix = _phrase_matches(phrase, spoken)
            hit_exact = hit_exact or is_exact
            hit_prefix = hit_prefix or is_prefix
        if hit_exact:
            exact.append(skill.id)
        elif hit_prefix:
            prefix.append(skill.id)

    if exact:
        return _resolved(raw, command, exact)
    if prefix:
        return _resolved(raw, command, prefix)
    return Invocation(raw=raw, kind=INVOKE_NONE, command_name=command.command_name, raw_args=command.raw_args)
