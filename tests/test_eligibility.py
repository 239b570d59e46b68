from __future__ import annotations

import pytest


def _skill(skill_id: str = "s", eligibility=None, *, disable_model_invocation: bool = False):
    from skillgate.eligibility import decode_rules
    from skillgate.schema import SkillDefinition

    rules, errors = decode_rules(eligibility)
    assert errors == []
    return SkillDefinition(
        id=skill_id,
        title=skill_id,
        description="d",
        trigger_phrases=(),
        slash_name=None,
        eligibility_rules=rules,
        body_content="",
        source_path=f"/skills/{skill_id}",
        disable_model_invocation=disable_model_invocation,
    )


def _ctx(signals=None, active=()):
    from skillgate.schema import TurnContext

    return TurnContext(workspace_signals=signals or {}, previously_active_skill_ids=frozenset(active))


def test_no_rules_is_eligible() -> None:
    from skillgate.eligibility import evaluate

    decision = evaluate(_skill(), _ctx())
    assert decision.eligible is True
    assert decision.reason == "matched_rule"


def test_equals_and_missing_signal() -> None:
    from skillgate.eligibility import evaluate

    skill = _skill(eligibility={"signal": "language", "equals": "python"})
    assert evaluate(skill, _ctx({"language": "python"})).eligible is True
    miss = evaluate(skill, _ctx({"language": "go"}))
    assert miss.eligible is False
    assert miss.reason == "no_rule_matched"
    assert evaluate(skill, _ctx({})).reason == "no_rule_matched"


def test_bool_and_int_stay_distinct() -> None:
    from skillgate.eligibility import evaluate

    skill = _skill(eligibility={"signal": "ci", "equals": True})
    assert evaluate(skill, _ctx({"ci": True})).eligible is True
    assert evaluate(skill, _ctx({"ci": 1})).eligible is False


def test_presence_means_truthy() -> None:
    from skillgate.eligibility import evaluate

    skill = _skill(eligibility={"signal": "git.branch"})
    assert evaluate(skill, _ctx({"git": {"branch": "main"}})).eligible is True
    assert evaluate(skill, _ctx({"git.branch": "main"})).eligible is True
    assert evaluate(skill, _ctx({"git": {"branch": ""}})).eligible is False
    assert evaluate(skill, _ctx({"git": "main"})).eligible is False


def test_combinators() -> None:
    from skillgate.eligibility import evaluate

    skill = _skill(
        eligibility={
            "all": [
                {"any": [{"signal": "lang", "equals": "py"}, {"signal": "lang", "equals": "rs"}]},
                {"not": {"signal": "readonly"}},
            ]
        }
    )
    assert evaluate(skill, _ctx({"lang": "rs"})).eligible is True
    assert evaluate(skill, _ctx({"lang": "rs", "readonly": True})).eligible is False
    assert evaluate(skill, _ctx({"lang": "js"})).eligible is False


def test_list_is_shorthand_for_all() -> None:
    from skillgate.eligibility import AllOf, decode_rules

    rules, errors = decode_rules([{"signal": "a"}, {"signal": "b"}])
    assert errors == []
    assert isinstance(rules.when, AllOf)


def test_exclude_wins_over_when() -> None:
    from skillgate.eligibility import evaluate

    skill = _skill(
        eligibility={
            "when": {"signal": "lang", "equals": "py"},
            "exclude": [{"signal": "mode", "equals": "readonly"}],
        }
    )
    assert evaluate(skill, _ctx({"lang": "py"})).eligible is True
    decision = evaluate(skill, _ctx({"lang": "py", "mode": "readonly"}))
    assert decision.eligible is False
    assert decision.reason == "explicitly_excluded"


def test_previously_active_predicate() -> None:
    from skillgate.eligibility import evaluate

    skill = _skill(eligibility={"active": "planner"})
    assert evaluate(skill, _ctx(active=["planner"])).eligible is True
    assert evaluate(skill, _ctx(active=["other"])).eligible is False


def test_disable_model_invocation_excludes() -> None:
    from skillgate.eligibility import evaluate

    decision = evaluate(_skill(disable_model_invocation=True), _ctx())
    assert decision.eligible is False
    assert decision.reason == "explicitly_excluded"


def test_evaluate_all_honours_disabled_set() -> None:
    from skillgate.eligibility import evaluate_all

    decisions = evaluate_all([_skill("a"), _skill("b")], _ctx(), disabled=frozenset({"b"}))
    assert [(d.skill_id, d.eligible, d.reason) for d in decisions] == [
        ("a", True, "matched_rule"),
        ("b", False, "explicitly_excluded"),
    ]


def test_evaluation_is_pure() -> None:
    from skillgate.eligibility import evaluate

    signals = {"lang": "py", "nested": {"x": 1}}
    skill = _skill(eligibility={"all": [{"signal": "lang", "equals": "py"}, {"signal": "nested.x", "equals": 1}]})
    ctx = _ctx(signals)
    first = evaluate(skill, ctx)
    assert all(evaluate(skill, ctx) == first for _ in range(5))
    assert signals == {"lang": "py", "nested": {"x": 1}}


@pytest.mark.parametrize(
    "data, code",
    [
        ("yes", "eligibility_not_mapping"),
        ({"signal": ""}, "rule_signal_invalid"),
        ({"signal": "a", "equals": [1, 2]}, "rule_equals_not_scalar"),
        ({"all": []}, "rule_all_not_list"),
        ({"when": {"signal": "a"}, "also": 1}, "eligibility_unknown_key:also"),
        ({"import": "os"}, "rule_unknown:import"),
    ],
)
def test_decode_rejects_bad_rules(data, code) -> None:
    from skillgate.eligibility import decode_rules

    rules, errors = decode_rules(data)
    assert rules is None
    assert errors == [code]


def test_decode_depth_limit() -> None:
    from skillgate.eligibility import MAX_RULE_DEPTH, decode_rules

    rule: dict = {"signal": "a"}
    for _ in range(MAX_RULE_DEPTH):
        rule = {"not": rule}
    rules, errors = decode_rules(rule)
    assert rules is None
    assert errors == ["rule_too_deep"]


def test_encode_rules_inverts_decode() -> None:
    from skillgate.eligibility import decode_rules, encode_rules

    rules, _ = decode_rules(
        {"when": {"any": [{"signal": "a", "equals": 1}, {"active": "x"}]}, "exclude": {"not": {"signal": "b"}}}
    )
    again, errors = decode_rules(encode_rules(rules))
    assert errors == []
    assert again == rules
