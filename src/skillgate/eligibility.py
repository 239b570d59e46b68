"""Eligibility rules: a closed, data-only predicate grammar over turn signals.

Manifest form (``eligibility:`` in the front matter)::

    eligibility:
      when:
        all:
          - signal: language
            equals: python
          - not: {signal: ci}
      exclude:
        any:
          - {signal: mode, equals: readonly}
          - {active: release-guard}

A bare list under ``when`` is shorthand for ``all``; a mapping without
``when``/``exclude`` keys is the ``when`` predicate itself.

Predicates:
  - ``{signal: key, equals: value}``  exact match on the resolved signal
  - ``{signal: key}``                 signal is present and truthy
  - ``{active: skill-id}``            skill was active on the previous turn
  - ``{not: predicate}``
  - ``{all: [predicates]}`` / ``{any: [predicates]}``

Signal keys are dotted paths into nested mappings (``git.branch``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union

from .schema import (
    EXPLICITLY_EXCLUDED,
    MATCHED_RULE,
    NO_RULE_MATCHED,
    EligibilityDecision,
    SkillDefinition,
    TurnContext,
)

MAX_RULE_DEPTH = 16
_MAX_RULE_NODES = 256
_SCALAR_TYPES = (str, int, float, bool)
_MISSING = object()


@dataclass(frozen=True)
class Equals:
    key: str
    value: Any


@dataclass(frozen=True)
class Present:
    key: str


@dataclass(frozen=True)
class WasActive:
    skill_id: str


@dataclass(frozen=True)
class Not:
    rule: "Rule"


@dataclass(frozen=True)
class AllOf:
    rules: tuple["Rule", ...]


@dataclass(frozen=True)
class AnyOf:
    rules: tuple["Rule", ...]


Rule = Union[Equals, Present, WasActive, Not, AllOf, AnyOf]


@dataclass(frozen=True)
class EligibilityRules:
    when: Rule | None = None
    exclude: Rule | None = None

    @property
    def empty(self) -> bool:
        return self.when is None and self.exclude is None


class _Budget:
    def __init__(self) -> None:
        self.nodes = 0


def decode_rules(data: Any) -> tuple[EligibilityRules | None, list[str]]:
    """Decode the ``eligibility`` front-matter value into rules, or error codes."""
    if data is None:
        return EligibilityRules(), []
    budget = _Budget()
    if isinstance(data, list):
        when, errors = _decode_rule({"all": data}, 1, budget)
        return (EligibilityRules(when=when), []) if not errors else (None, errors)
    if not isinstance(data, dict):
        return None, ["eligibility_not_mapping"]

    if not ({"when", "exclude"} & set(data.keys())):
        when, errors = _decode_rule(data, 1, budget)
        return (EligibilityRules(when=when), []) if not errors else (None, errors)

    unknown = sorted(str(k) for k in data.keys() if k not in {"when", "exclude"})
    if unknown:
        return None, [f"eligibility_unknown_key:{unknown[0]}"]

    errors: list[str] = []
    when = exclude = None
    if data.get("when") is not None:
        raw_when = data["when"]
        if isinstance(raw_when, list):
            raw_when = {"all": raw_when}
        when, when_errors = _decode_rule(raw_when, 1, budget)
        errors.extend(when_errors)
    if data.get("exclude") is not None:
        raw_exclude = data["exclude"]
        if isinstance(raw_exclude, list):
            raw_exclude = {"any": raw_exclude}
        exclude, exclude_errors = _decode_rule(raw_exclude, 1, budget)
        errors.extend(exclude_errors)
    if errors:
        return None, errors
    return EligibilityRules(when=when, exclude=exclude), []


def _decode_rule(data: Any, depth: int, budget: _Budget) -> tuple[Rule | None, list[str]]:
    if depth > MAX_RULE_DEPTH:
        return None, ["rule_too_deep"]
    budget.nodes += 1
    if budget.nodes > _MAX_RULE_NODES:
        return None, ["rule_too_large"]
    if not isinstance(data, dict) or not data:
        return None, ["rule_not_mapping"]

    keys = set(data.keys())
    if keys == {"signal"} or keys == {"signal", "equals"}:
        key = data.get("signal")
        if not isinstance(key, str) or not key.strip():
            return None, ["rule_signal_invalid"]
        if "equals" not in data:
            return Present(key=key.strip()), []
        value = data.get("equals")
        if value is not None and not isinstance(value, _SCALAR_TYPES):
            return None, ["rule_equals_not_scalar"]
        return Equals(key=key.strip(), value=value), []

    if keys == {"active"}:
        sid = data.get("active")
        if not isinstance(sid, str) or not sid.strip():
            return None, ["rule_active_invalid"]
        return WasActive(skill_id=sid.strip().lower()), []

    if keys == {"not"}:
        inner, errors = _decode_rule(data.get("not"), depth + 1, budget)
        if errors or inner is None:
            return None, errors or ["rule_not_invalid"]
        return Not(rule=inner), []

    if keys == {"all"} or keys == {"any"}:
        op = "all" if "all" in keys else "any"
        items = data.get(op)
        if not isinstance(items, list) or not items:
            return None, [f"rule_{op}_not_list"]
        rules: list[Rule] = []
        for item in items:
            rule, errors = _decode_rule(item, depth + 1, budget)
            if errors or rule is None:
                return None, errors or [f"rule_{op}_invalid"]
            rules.append(rule)
        if op == "all":
            return AllOf(rules=tuple(rules)), []
        return AnyOf(rules=tuple(rules)), []

    return None, [f"rule_unknown:{','.join(sorted(str(k) for k in keys))}"]


def encode_rule(rule: Rule) -> dict[str, Any]:
    if isinstance(rule, Equals):
        return {"signal": rule.key, "equals": rule.value}
    if isinstance(rule, Present):
        return {"signal": rule.key}
    if isinstance(rule, WasActive):
        return {"active": rule.skill_id}
    if isinstance(rule, Not):
        return {"not": encode_rule(rule.rule)}
    if isinstance(rule, AllOf):
        return {"all": [encode_rule(item) for item in rule.rules]}
    return {"any": [encode_rule(item) for item in rule.rules]}


def encode_rules(rules: EligibilityRules) -> dict[str, Any]:
    """Inverse of ``decode_rules``; empty rules encode to ``{}``."""
    data: dict[str, Any] = {}
    if rules.when is not None:
        data["when"] = encode_rule(rules.when)
    if rules.exclude is not None:
        data["exclude"] = encode_rule(rules.exclude)
    return data


def resolve_signal(signals: Mapping[str, Any], dotted_key: str) -> Any:
    if dotted_key in signals:
        return signals[dotted_key]
    current: Any = signals
    for segment in [part.strip() for part in dotted_key.split(".") if part.strip()]:
        if not isinstance(current, Mapping) or segment not in current:
            return _MISSING
        current = current[segment]
    return current


def _values_equal(actual: Any, expected: Any) -> bool:
    # bool is an int subclass; keep true/1 distinct
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    if isinstance(actual, (int, float)) and isinstance(expected, (int, float)):
        return actual == expected
    if isinstance(actual, str) and isinstance(expected, str):
        return actual == expected
    return actual is None and expected is None


def evaluate_rule(rule: Rule, context: TurnContext, depth: int = 1) -> bool:
    if depth > MAX_RULE_DEPTH:
        return False
    if isinstance(rule, Equals):
        actual = resolve_signal(context.workspace_signals, rule.key)
        if actual is _MISSING:
            return False
        return _values_equal(actual, rule.value)
    if isinstance(rule, Present):
        actual = resolve_signal(context.workspace_signals, rule.key)
        return actual is not _MISSING and bool(actual)
    if isinstance(rule, WasActive):
        return rule.skill_id in context.previously_active_skill_ids
    if isinstance(rule, Not):
        return not evaluate_rule(rule.rule, context, depth + 1)
    if isinstance(rule, AllOf):
        return all(evaluate_rule(item, context, depth + 1) for item in rule.rules)
    if isinstance(rule, AnyOf):
        return any(evaluate_rule(item, context, depth + 1) for item in rule.rules)
    return False


def evaluate(skill: SkillDefinition, context: TurnContext) -> EligibilityDecision:
    """Decide whether ``skill`` is automatically eligible for this turn.

    Pure: reads only ``skill`` and ``context``. Skills without rules are
    eligible; ``disable_model_invocation`` and a matching ``exclude`` rule
    exclude the skill outright.
    """
    if skill.disable_model_invocation:
        return EligibilityDecision(skill_id=skill.id, eligible=False, reason=EXPLICITLY_EXCLUDED)

    rules = skill.eligibility_rules
    if not isinstance(rules, EligibilityRules) or rules.empty:
        return EligibilityDecision(skill_id=skill.id, eligible=True, reason=MATCHED_RULE)

    if rules.exclude is not None and evaluate_rule(rules.exclude, context):
        return EligibilityDecision(skill_id=skill.id, eligible=False, reason=EXPLICITLY_EXCLUDED)
    if rules.when is None or evaluate_rule(rules.when, context):
        return EligibilityDecision(skill_id=skill.id, eligible=True, reason=MATCHED_RULE)
    return EligibilityDecision(skill_id=skill.id, eligible=False, reason=NO_RULE_MATCHED)


def excluded(skill: SkillDefinition) -> EligibilityDecision:
    return EligibilityDecision(skill_id=skill.id, eligible=False, reason=EXPLICITLY_EXCLUDED)


def evaluate_all(skills: list[SkillDefinition], context: TurnContext, *, disabled: frozenset[str] = frozenset()) -> list[EligibilityDecision]:
    return [excluded(skill) if skill.id in disabled else evaluate(skill, context) for skill in skills]
