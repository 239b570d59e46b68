from __future__ import annotations

import os
import re
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

SKILL_FILENAME = "SKILL.md"

ROOT_BUNDLED = "bundled"
ROOT_PLUGIN = "plugin"
ROOT_KINDS = (ROOT_BUNDLED, ROOT_PLUGIN)

MALFORMED_MANIFEST = "malformed_manifest"
MISSING_FIELD = "missing_field"
DUPLICATE_ID = "duplicate_id"

MATCHED_RULE = "matched_rule"
NO_RULE_MATCHED = "no_rule_matched"
EXPLICITLY_EXCLUDED = "explicitly_excluded"

INVOKE_NONE = "none"
INVOKE_SINGLE = "single"
INVOKE_AMBIGUOUS = "ambiguous"

INSTALL_INSTALLED = "installed"
INSTALL_PENDING = "pending"
INSTALL_FAILED = "failed"
INSTALL_STATUSES = (INSTALL_INSTALLED, INSTALL_PENDING, INSTALL_FAILED)

_SKILL_ID_RE = re.compile(r"^[a-z0-9][a-z0-9-]{0,63}$")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")

_MAX_TITLE_LEN = 96
_MAX_DESCRIPTION_LEN = 1024
_MAX_TRIGGERS = 64
_MAX_TRIGGER_LEN = 96


def slugify(value: object) -> str:
    """Canonical skill id: lowercase, runs of other characters collapsed to one hyphen."""
    raw = str(value or "").strip().lower()
    return _SLUG_STRIP_RE.sub("-", raw).strip("-")


def normalize_phrase(value: object) -> str:
    return " ".join(str(value or "").lower().split())


def _safe_str(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, (dict, list, tuple, set)):
        return None
    text = str(value).strip()
    return text or None


def validate_skill_id(skill_id: str) -> list[str]:
    sid = str(skill_id or "").strip()
    if not sid:
        return ["id_missing"]
    if not _SKILL_ID_RE.match(sid):
        return ["id_invalid"]
    return []


def validate_title(title: str) -> list[str]:
    if len(title) > _MAX_TITLE_LEN:
        return ["title_too_long"]
    return []


def validate_description(description: str) -> list[str]:
    if len(description) > _MAX_DESCRIPTION_LEN:
        return ["description_too_long"]
    return []


def coerce_trigger_phrases(value: Any) -> tuple[tuple[str, ...], list[str]]:
    if value is None:
        return (), []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return (), ["triggers_invalid"]
    errors: list[str] = []
    phrases: list[str] = []
    for item in value:
        if len(phrases) >= _MAX_TRIGGERS:
            errors.append("triggers_too_many")
            break
        text = _safe_str(item)
        if not text:
            errors.append("trigger_invalid")
            continue
        if len(text) > _MAX_TRIGGER_LEN:
            errors.append("trigger_too_long")
            continue
        if text not in phrases:
            phrases.append(text)
    return tuple(phrases), errors


@dataclass(frozen=True)
class SkillSource:
    root_kind: str
    absolute_path: str
    plugin_id: str | None = None

    @property
    def identity(self) -> str:
        return normalize_path(self.absolute_path)


def normalize_path(path: object) -> str:
    return os.path.normcase(os.path.realpath(os.path.expanduser(str(path))))


@dataclass(frozen=True)
class SkillDefinition:
    id: str
    title: str
    description: str
    trigger_phrases: tuple[str, ...]
    slash_name: str | None
    eligibility_rules: Any
    body_content: str
    source_path: str
    root_kind: str = ROOT_BUNDLED
    plugin_id: str | None = None
    user_invocable: bool = True
    disable_model_invocation: bool = False
    homepage: str | None = None
    version: str | None = None
    declared_name: str | None = None

    def to_public_dict(self, *, include_body: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "slash_name": self.slash_name,
            "trigger_phrases": list(self.trigger_phrases),
            "root_kind": self.root_kind,
            "source_path": self.source_path,
            "user_invocable": bool(self.user_invocable),
            "disable_model_invocation": bool(self.disable_model_invocation),
        }
        if self.plugin_id:
            data["plugin_id"] = self.plugin_id
        if self.version:
            data["version"] = self.version
        if include_body:
            data["body"] = self.body_content
        return data


@dataclass(frozen=True)
class ParseError:
    path: str
    reason: str
    detail: str
    skill_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "reason": self.reason, "detail": self.detail, "skill_id": self.skill_id}


@dataclass(frozen=True)
class ParseOutcome:
    ok: SkillDefinition | None = None
    error: ParseError | None = None

    @property
    def succeeded(self) -> bool:
        return self.ok is not None

    @staticmethod
    def success(skill: SkillDefinition) -> "ParseOutcome":
        return ParseOutcome(ok=skill)

    @staticmethod
    def failure(path: str, reason: str, detail: str, skill_id: str | None = None) -> "ParseOutcome":
        return ParseOutcome(error=ParseError(path=str(path), reason=reason, detail=detail, skill_id=skill_id))


@dataclass(frozen=True)
class DiscoveryWarning:
    location: str
    reason: str
    detail: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"location": self.location, "reason": self.reason, "detail": self.detail}


@dataclass(frozen=True)
class SkillCatalog:
    skills: Mapping[str, SkillDefinition]
    errors: tuple[ParseError, ...] = ()
    warnings: tuple[DiscoveryWarning, ...] = ()
    built_at: float = field(default_factory=time.time)
    version: str = "empty"

    def get(self, skill_id: str) -> SkillDefinition | None:
        return self.skills.get(str(skill_id))

    def ordered(self) -> list[SkillDefinition]:
        return list(self.skills.values())

    def __len__(self) -> int:
        return len(self.skills)


@dataclass(frozen=True)
class TurnContext:
    workspace_signals: Mapping[str, Any] = field(default_factory=dict)
    explicit_user_text: str = ""
    previously_active_skill_ids: frozenset[str] = frozenset()


@dataclass(frozen=True)
class EligibilityDecision:
    skill_id: str
    eligible: bool
    reason: str


@dataclass(frozen=True)
class Invocation:
    raw: str
    kind: str = INVOKE_NONE
    skill_id: str | None = None
    candidates: tuple[str, ...] = ()
    command_name: str | None = None
    raw_args: str = ""

    @property
    def is_single(self) -> bool:
        return self.kind == INVOKE_SINGLE

    @property
    def is_ambiguous(self) -> bool:
        return self.kind == INVOKE_AMBIGUOUS


@dataclass(frozen=True)
class PromptFragment:
    text: str
    content_hash: str
