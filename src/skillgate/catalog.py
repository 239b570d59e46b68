from __future__ import annotations

import hashlib
import time
from types import MappingProxyType
from typing import Iterable

from .logging import get_logger
from .parser import parse
from .schema import (
    DUPLICATE_ID,
    SKILL_FILENAME,
    DiscoveryWarning,
    ParseError,
    ParseOutcome,
    SkillCatalog,
    SkillDefinition,
    SkillSource,
)

logger = get_logger(__name__)


def compute_catalog_version(skills: Iterable[SkillDefinition]) -> str:
    payload = "\n".join(
        sorted(f"{s.id}|{s.source_path}|{s.root_kind}|{s.description}|{len(s.body_content)}" for s in skills)
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def build_catalog(outcomes: Iterable[ParseOutcome], warnings: Iterable[DiscoveryWarning] = ()) -> SkillCatalog:
    """Assemble parse outcomes, in discovery order, into an immutable catalog.

    When two packages yield the same id the later one wins; the earlier one is
    recorded as a ``duplicate_id`` error. The surviving skill keeps the
    position at which its id was first discovered.
    """
    skills: dict[str, SkillDefinition] = {}
    errors: list[ParseError] = []

    for outcome in outcomes:
        if outcome.error is not None:
            logger.warning("skipping %s: %s (%s)", outcome.error.path, outcome.error.reason, outcome.error.detail)
            errors.append(outcome.error)
            continue
        skill = outcome.ok
        if skill is None:
            continue
        previous = skills.get(skill.id)
        if previous is not None:
            logger.warning("skill %s from %s shadows %s", skill.id, skill.source_path, previous.source_path)
            errors.append(
                ParseError(
                    path=f"{previous.source_path}/{SKILL_FILENAME}",
                    reason=DUPLICATE_ID,
                    detail=f"{skill.id}:shadowed_by:{skill.source_path}",
                    skill_id=skill.id,
                )
            )
        skills[skill.id] = skill

    return SkillCatalog(
        skills=MappingProxyType(dict(skills)),
        errors=tuple(errors),
        warnings=tuple(warnings),
        built_at=time.time(),
        version=compute_catalog_version(skills.values()) if skills else "empty",
    )


def load_catalog(sources: Iterable[SkillSource], warnings: Iterable[DiscoveryWarning] = ()) -> SkillCatalog:
    return build_catalog((parse(source) for source in sources), warnings)
