import logging
import os
import sys

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from quote_pricing.engine import FormulaError, compile_formula, evaluate


@pytest.mark.parametrize("formula, expected", [
    ("1 + 2 * 3", 7),
    ("(1 + 2) * 3", 9),
    ("10 / 4", 2.5),
    ("10 - 4 - 3", 3),
    ("2 * -3", -6),
    ("-(2 + 3)", -5),
    ("--4", 4),
    ("+4", 4),
    (".5 + 1.", 1.5),
    ("1.5e2", 150),
    ("8 / 2 / 2", 2),
])
def test_arithmetic(formula, expected):
    assert evaluate(formula, {}) == pytest.approx(expected)


def test_variables_are_substituted():
    context = {"rooms": 3, "avg_room_size": 150, "packing_factor": 1.2}
    assert evaluate("rooms * avg_room_size * packing_factor", context) == pytest.approx(540)


def test_whole_token_matching():
    assert evaluate("rate + rate2", {"rate": 1, "rate2": 2}) == 3
    assert evaluate("rate2 - rate", {"rate": 1, "rate2": 2}) == 1


def test_unbound_identifier_fails():
    with pytest.raises(FormulaError) as exc:
        evaluate("a + b", {"a": 1})
    assert "unknown variable 'b'" in exc.value.reason
    assert exc.value.position == 4


def test_division_by_zero_fails():
    with pytest.raises(FormulaError, match="division by zero"):
        evaluate("volume / months", {"volume": 10, "months": 0})


@pytest.mark.parametrize("formula", [
    "",
    "   ",
    "1 +",
    "(1 + 2",
    "1 + 2)",
    "2 3",
    "1 ** 2",
    "a.b",
    "max(a, b)",
    "__import__('os')",
    "a = 1",
    "1 if a else 2",
    "2e",
    "$rate",
])
def test_grammar_violations_fail(formula):
    with pytest.raises(FormulaError):
        evaluate(formula, {"a": 1, "b": 2})


def test_function_calls_are_rejected_with_reason():
    with pytest.raises(FormulaError, match="function calls are not allowed"):
        compile_formula("round(total)")


def test_non_finite_result_fails():
    with pytest.raises(FormulaError, match="not finite"):
        evaluate("1e308 * 10", {})


def test_non_numeric_context_value_fails():
    with pytest.raises(FormulaError, match="not a finite number"):
        evaluate("rooms * 2", {"rooms": "three"})
    with pytest.raises(FormulaError):
        evaluate("rooms * 2", {"rooms": float('nan')})
    with pytest.raises(FormulaError):
        evaluate("rooms * 2", {"rooms": True})


def test_integer_too_large_for_float_fails():
    with pytest.raises(FormulaError, match="not a finite number"):
        evaluate("a", {"a": 10**400})
    assert evaluate("a + 1", {"a": 10**400}, best_effort=True) == 0.0


def test_best_effort_returns_zero_and_logs(caplog):
    with caplog.at_level(logging.WARNING, logger="quote_pricing.engine.formula"):
        assert evaluate("a / b", {"a": 1, "b": 0}, best_effort=True) == 0.0
        assert evaluate("a +", {"a": 1}, best_effort=True) == 0.0
        assert evaluate("missing", {}, best_effort=True) == 0.0
    assert len(caplog.records) == 3


def test_best_effort_does_not_change_valid_results():
    assert evaluate("a * 2", {"a": 4}, best_effort=True) == 8


def test_compiled_formula_reports_variables():
    formula = compile_formula("base_rate + volume * rate_per_cubic_foot + volume")
    assert formula.variables == frozenset({"base_rate", "volume", "rate_per_cubic_foot"})
    assert formula.evaluate({"base_rate": 200, "volume": 100, "rate_per_cubic_foot": 0.5}) == 350


def test_evaluation_is_deterministic():
    formula = compile_formula("(hours * workers * hourly_rate) / 3")
    context = {"hours": 7, "workers": 3, "hourly_rate": 47.5}
    assert formula.evaluate(context) == formula.evaluate(context) == evaluate(formula.source, context)


def test_deeply_nested_formula_fails_cleanly():
    with pytest.raises(FormulaError, match="nested too deeply"):
        compile_formula("(" * 5000 + "1" + ")" * 5000)
