from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from .eligibility import EligibilityRules, decode_rules, encode_rules
from .logging import get_logger
from .schema import (
    MALFORMED_MANIFEST,
    MISSING_FIELD,
    SKILL_FILENAME,
    ParseOutcome,
    SkillDefinition,
    SkillSource,
    _safe_str,
    coerce_trigger_phrases,
    slugify,
    validate_description,
    validate_skill_id,
    validate_title,
)

logger = get_logger(__name__)

ALLOWED_KEYS = frozenset(
    {
        "name",
        "title",
        "description",
        "slash-name",
        "triggers",
        "eligibility",
        "user-invocable",
        "disable-model-invocation",
        "homepage",
        "version",
    }
)
REQUIRED_KEYS = ("title", "description")

_FENCE = "---"


class _StrictLoader(yaml.SafeLoader):
    pass


def _construct_unique_mapping(loader: _StrictLoader, node: yaml.MappingNode) -> dict:
    loader.flatten_mapping(node)
    seen: set = set()
    for key_node, _ in node.value:
        key = loader.construct_object(key_node, deep=True)
        try:
            duplicate = key in seen
        except TypeError:
            continue
        if duplicate:
            raise yaml.constructor.ConstructorError(
                "while constructing a mapping", node.start_mark, f"found duplicate key {key!r}", key_node.start_mark
            )
        seen.add(key)
    return loader.construct_mapping(node, deep=True)


_StrictLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_unique_mapping)


def split_front_matter(text: str) -> tuple[str, str] | None:
    lines = text.replace("\r\n", "\n").split("\n")
    if not lines or lines[0].strip() != _FENCE:
        return None
    for index in range(1, len(lines)):
        if lines[index].strip() == _FENCE:
            return "\n".join(lines[1:index]), "\n".join(lines[index + 1 :]).strip()
    return None


def _bool_field(data: dict[str, Any], key: str, default: bool) -> tuple[bool, str | None]:
    if key not in data or data[key] is None:
        return default, None
    value = data[key]
    if isinstance(value, bool):
        return value, None
    return default, f"{key}_not_bool"


def parse_manifest_text(text: str, source: SkillSource) -> ParseOutcome:
    """Decode manifest text for ``source`` into a ParseOutcome; never raises."""
    path = str(Path(source.absolute_path) / SKILL_FILENAME)

    split = split_front_matter(text)
    if split is None:
        return ParseOutcome.failure(path, MALFORMED_MANIFEST, "front_matter_missing")
    raw_front, body = split

    try:
        data = yaml.load(raw_front, Loader=_StrictLoader)
    except yaml.YAMLError as exc:
        return ParseOutcome.failure(path, MALFORMED_MANIFEST, f"yaml_invalid:{exc}")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return ParseOutcome.failure(path, MALFORMED_MANIFEST, "front_matter_not_mapping")

    declared_name = _safe_str(data.get("name")) if data.get("name") is not None else None
    skill_id = slugify(declared_name or os.path.basename(os.path.normpath(source.absolute_path)))
    known_id = None if validate_skill_id(skill_id) else skill_id

    unknown = sorted(str(k) for k in data.keys() if k not in ALLOWED_KEYS)
    if unknown:
        return ParseOutcome.failure(path, MALFORMED_MANIFEST, f"unsupported_key:{unknown[0]}", known_id)

    for key in REQUIRED_KEYS:
        if _safe_str(data.get(key)) is None:
            return ParseOutcome.failure(path, MISSING_FIELD, key, known_id)

    errors: list[str] = []
    title = _safe_str(data.get("title")) or ""
    description = _safe_str(data.get("description")) or ""
    errors.extend(validate_title(title))
    errors.extend(validate_description(description))

    if data.get("name") is not None and declared_name is None:
        errors.append("name_invalid")
    errors.extend(validate_skill_id(skill_id))

    slash_name = None
    if data.get("slash-name") is not None:
        raw_slash = _safe_str(data.get("slash-name")) or ""
        slash_name = raw_slash.lstrip("/").strip().lower()
        if validate_skill_id(slash_name):
            errors.append("slash_name_invalid")

    triggers, trigger_errors = coerce_trigger_phrases(data.get("triggers"))
    errors.extend(trigger_errors)

    rules, rule_errors = decode_rules(data.get("eligibility"))
    errors.extend(rule_errors)

    user_invocable, err = _bool_field(data, "user-invocable", True)
    if err:
        errors.append(err)
    disable_model_invocation, err = _bool_field(data, "disable-model-invocation", False)
    if err:
        errors.append(err)

    if errors:
        return ParseOutcome.failure(path, MALFORMED_MANIFEST, ",".join(errors), known_id)

    if declared_name and slugify(os.path.basename(os.path.normpath(source.absolute_path))) != skill_id:
        logger.debug("skill %s declared in directory %s", skill_id, source.absolute_path)

    skill = SkillDefinition(
        id=skill_id,
        title=title,
        description=description,
        trigger_phrases=triggers,
        slash_name=slash_name,
        eligibility_rules=rules,
        body_content=body,
        source_path=str(source.absolute_path),
        root_kind=source.root_kind,
        plugin_id=source.plugin_id,
        user_invocable=bool(user_invocable),
        disable_model_invocation=bool(disable_model_invocation),
        homepage=_safe_str(data.get("homepage")),
        version=_safe_str(data.get("version")),
        declared_name=declared_name,
    )
    return ParseOutcome.success(skill)


def parse(source: SkillSource) -> ParseOutcome:
    manifest = Path(source.absolute_path) / SKILL_FILENAME
    try:
        text = manifest.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        return ParseOutcome.failure(str(manifest), MALFORMED_MANIFEST, f"utf8_required:{exc.reason}")
    except OSError as exc:
        return ParseOutcome.failure(str(manifest), MALFORMED_MANIFEST, f"read_failed:{exc}")
    return parse_manifest_text(text, source)


def _dump_scalar(key: str, value: Any) -> str:
    return yaml.safe_dump({key: value}, allow_unicode=True, default_flow_style=False, sort_keys=False, width=10**9).rstrip("\n")


def render_manifest(skill: SkillDefinition) -> str:
    """Render the deterministic front matter of ``skill`` followed by its body.

    Parsing the result with the same source gives back an equal skill.
    """
    lines = [_FENCE]
    if skill.declared_name:
        lines.append(_dump_scalar("name", skill.declared_name))
    lines.extend([_dump_scalar("title", skill.title), _dump_scalar("description", skill.description)])
    if skill.slash_name:
        lines.append(_dump_scalar("slash-name", skill.slash_name))
    if skill.trigger_phrases:
        lines.append(_dump_scalar("triggers", list(skill.trigger_phrases)))
    if isinstance(skill.eligibility_rules, EligibilityRules) and not skill.eligibility_rules.empty:
        lines.append(_dump_scalar("eligibility", encode_rules(skill.eligibility_rules)))
    if not skill.user_invocable:
        lines.append("user-invocable: false")
    if skill.disable_model_invocation:
        lines.append("disable-model-invocation: true")
    if skill.homepage:
        lines.append(_dump_scalar("homepage", skill.homepage))
    if skill.version:
        lines.append(_dump_scalar("version", skill.version))
    lines.append(_FENCE)
    lines.append(skill.body_content)
    return "\n".join(lines) + "\n"
