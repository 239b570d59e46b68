from __future__ import annotations

from typing import Iterable

from .schema import EligibilityDecision, Invocation, SkillCatalog, SkillDefinition

ActiveSkillSet = tuple[SkillDefinition, ...]


def select(
    invocation: Invocation,
    decisions: Iterable[EligibilityDecision],
    catalog: SkillCatalog,
    *,
    max_active: int | None = None,
) -> ActiveSkillSet:
    """Build the ordered active set for one turn.

    A single explicit invocation goes first whatever its eligibility; the rest
    are eligible skills in catalog order. Ambiguous and unmatched invocations
    add nothing. ``max_active`` caps the total, but never drops the invoked
    skill.
    """
    selected: list[SkillDefinition] = []
    seen: set[str] = set()

    if invocation.is_single and invocation.skill_id:
        invoked = catalog.get(invocation.skill_id)
        if invoked is not None:
            selected.append(invoked)
            seen.add(invoked.id)

    eligible_ids = {d.skill_id for d in decisions if d.eligible}
    limit = None if max_active is None else max(1, int(max_active))
    for skill in catalog.ordered():
        if limit is not None and len(selected) >= limit:
            break
        if skill.id in seen or skill.id not in eligible_ids:
            continue
        selected.append(skill)
        seen.add(skill.id)

    return tuple(selected)
