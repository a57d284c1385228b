import os
import sys

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from quote_pricing.engine import CalculationRule, FormulaError, RuleSet, validate_rule


def rule(rule_id, output_field, formula, trigger_fields=(), active=True):
    return CalculationRule(
        rule_id=rule_id,
        name=rule_id.title(),
        formula=formula,
        output_field=output_field,
        trigger_fields=tuple(trigger_fields),
        active=active,
    )


@pytest.fixture
def moving_rules():
    # Declared out of dependency order on purpose
    return RuleSet([
        rule("cost", "estimated_cost", "base_rate + estimated_volume * 0.5 + distance * 2", ["distance"]),
        rule("volume", "estimated_volume", "rooms * 150 * 1.2", ["rooms"]),
        rule("crew", "crew_cost", "hours * workers * 50"),
    ])


def test_evaluation_order_follows_dependencies(moving_rules):
    order = [r.rule_id for r in moving_rules.evaluation_order()]
    assert order.index("volume") < order.index("cost")
    assert order == ["volume", "cost", "crew"]


def test_apply_computes_all_outputs(moving_rules):
    values = {"rooms": 3, "distance": 25, "base_rate": 200, "hours": 4, "workers": 2}
    result = moving_rules.apply(values)

    assert result["estimated_volume"] == pytest.approx(540)
    assert result["estimated_cost"] == pytest.approx(200 + 270 + 50)
    assert result["crew_cost"] == 400
    # Input untouched
    assert "estimated_volume" not in values


def test_apply_strict_mode_propagates_errors(moving_rules):
    with pytest.raises(FormulaError, match="unknown variable"):
        moving_rules.apply({"rooms": 3, "distance": 25, "base_rate": 200})


def test_apply_best_effort_substitutes_zero(moving_rules):
    result = moving_rules.apply({"rooms": 3, "distance": 25, "base_rate": 200}, best_effort=True)
    assert result["crew_cost"] == 0.0
    assert result["estimated_volume"] == pytest.approx(540)


def test_rules_triggered_by_includes_downstream(moving_rules):
    triggered = [r.rule_id for r in moving_rules.rules_triggered_by(["rooms"])]
    assert triggered == ["volume", "cost"]

    assert [r.rule_id for r in moving_rules.rules_triggered_by(["distance"])] == ["cost"]
    # Rules without trigger fields watch their formula variables
    assert [r.rule_id for r in moving_rules.rules_triggered_by(["workers"])] == ["crew"]
    assert moving_rules.rules_triggered_by(["notes"]) == []


def test_apply_changes_only_reruns_affected_rules(moving_rules):
    values = {"rooms": 4, "distance": 25, "base_rate": 200, "estimated_volume": 0, "crew_cost": 123}
    result = moving_rules.apply_changes(values, ["rooms"])

    assert result["estimated_volume"] == pytest.approx(720)
    assert result["estimated_cost"] == pytest.approx(200 + 360 + 50)
    assert result["crew_cost"] == 123


def test_cycle_is_rejected():
    with pytest.raises(FormulaError, match="circular"):
        RuleSet([
            rule("a", "x", "y + 1"),
            rule("b", "y", "x + 1"),
        ])


def test_self_reference_is_rejected():
    with pytest.raises(FormulaError, match="circular"):
        RuleSet([rule("a", "x", "x + 1")])


def test_duplicate_output_field_is_rejected():
    with pytest.raises(FormulaError, match="both write"):
        RuleSet([rule("a", "x", "1"), rule("b", "x", "2")])


def test_duplicate_rule_id_is_rejected():
    with pytest.raises(FormulaError, match="duplicate rule id"):
        RuleSet([rule("a", "x", "1"), rule("a", "y", "2")])


def test_inactive_rules_are_skipped():
    rules = RuleSet([rule("a", "x", "1"), rule("b", "x", "2", active=False)])
    assert rules.apply({}) == {"x": 1}


def test_invalid_formula_is_rejected_on_construction():
    with pytest.raises(FormulaError):
        RuleSet([rule("a", "x", "rooms *")])


def test_rule_dict_round_trip_accepts_camel_case():
    parsed = CalculationRule.from_dict({
        "id": "vol", "name": "Volume", "formula": "rooms * 150",
        "outputField": "volume", "triggerFields": ["rooms"],
    })
    assert parsed == CalculationRule(
        rule_id="vol", name="Volume", formula="rooms * 150", output_field="volume",
        trigger_fields=("rooms",),
    )
    assert CalculationRule.from_dict(parsed.to_dict()) == parsed


def test_validate_rule_reports_errors_and_warnings():
    ok = validate_rule(rule("a", "volume", "rooms * size", ["rooms", "floors"]),
                       known_fields={"rooms"})
    assert ok.valid
    assert any("unknown fields: size" in w for w in ok.warnings)
    assert any("not used by the formula: floors" in w for w in ok.warnings)

    bad = validate_rule(CalculationRule(rule_id="", name="", formula="1 +", output_field=""))
    assert not bad.valid
    assert "Name is required" in bad.errors
    assert "Output field is required" in bad.errors
    assert any(e.startswith("Invalid formula") for e in bad.errors)

    selfref = validate_rule(rule("a", "x", "x * 2"))
    assert not selfref.valid
