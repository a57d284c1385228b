"""
Calculation Rules - tenant-defined derived fields.

Each rule writes one output field from a formula over other fields. Rules
may read each other's outputs; a RuleSet evaluates them in dependency order
and rejects cycles up front.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from .errors import FormulaError
from .formula import Formula, compile_formula

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalculationRule:
    """A calculated field definition."""
    rule_id: str
    name: str
    formula: str
    output_field: str
    trigger_fields: tuple[str, ...] = ()
    active: bool = True

    def to_dict(self) -> dict:
        return {
            'rule_id': self.rule_id,
            'name': self.name,
            'formula': self.formula,
            'output_field': self.output_field,
            'trigger_fields': list(self.trigger_fields),
            'active': self.active,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> 'CalculationRule':
        return cls(
            rule_id=str(data.get('rule_id') or data.get('id') or ''),
            name=str(data.get('name', '')),
            formula=str(data.get('formula', '')),
            output_field=str(data.get('output_field') or data.get('outputField') or ''),
            trigger_fields=tuple(data.get('trigger_fields') or data.get('triggerFields') or ()),
            active=bool(data.get('active', True)),
        )


@dataclass
class RuleValidation:
    """Result of rule validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def validate_rule(rule: CalculationRule, known_fields: Optional[Iterable[str]] = None) -> RuleValidation:
    """Validate a rule before saving."""
    result = RuleValidation(valid=True)

    if not rule.name:
        result.errors.append("Name is required")
    if not rule.output_field:
        result.errors.append("Output field is required")
    if not rule.formula:
        result.errors.append("Formula is required")
    else:
        try:
            compiled = compile_formula(rule.formula)
        except FormulaError as e:
            result.errors.append(f"Invalid formula: {e.reason}")
        else:
            if rule.output_field and rule.output_field in compiled.variables:
                result.errors.append(
                    f"Formula reads its own output field '{rule.output_field}'"
                )
            if known_fields is not None:
                unknown = sorted(compiled.variables - set(known_fields))
                if unknown:
                    result.warnings.append(f"Formula references unknown fields: {', '.join(unknown)}")
            missing = sorted(set(rule.trigger_fields) - compiled.variables)
            if missing:
                result.warnings.append(
                    f"Trigger fields not used by the formula: {', '.join(missing)}"
                )

    result.valid = not result.errors
    return result


class RuleSet:
    """
    An ordered, validated collection of calculation rules.

    Raises FormulaError on construction for invalid formulas, duplicate rule
    IDs, two rules writing the same field, or dependency cycles.
    """

    def __init__(self, rules: Iterable[CalculationRule] = ()):
        self.rules = list(rules)
        self._compiled: dict[str, Formula] = {}
        self._by_output: dict[str, CalculationRule] = {}

        seen_ids = set()
        for rule in self.rules:
            if rule.rule_id in seen_ids:
                raise FormulaError(rule.formula, f"duplicate rule id '{rule.rule_id}'")
            seen_ids.add(rule.rule_id)
            self._compiled[rule.rule_id] = compile_formula(rule.formula)
            if not rule.active:
                continue
            if rule.output_field in self._by_output:
                other = self._by_output[rule.output_field]
                raise FormulaError(
                    rule.formula,
                    f"rules '{other.rule_id}' and '{rule.rule_id}' both write '{rule.output_field}'",
                )
            self._by_output[rule.output_field] = rule

        self._order = self._resolve_order()

    @property
    def active_rules(self) -> list[CalculationRule]:
        return [r for r in self.rules if r.active]

    def variables_for(self, rule: CalculationRule) -> frozenset:
        return self._compiled[rule.rule_id].variables

    def _dependencies(self, rule: CalculationRule) -> list[CalculationRule]:
        return [
            self._by_output[name] for name in sorted(self.variables_for(rule))
            if name in self._by_output
        ]

    def _resolve_order(self) -> list[CalculationRule]:
        """Depth-first topological sort; ties keep declaration order."""
        order = []
        state: dict[str, str] = {}  # rule_id -> "visiting" | "done"

        def visit(rule: CalculationRule, path: list[str]):
            status = state.get(rule.rule_id)
            if status == 'done':
                return
            if status == 'visiting':
                cycle = " -> ".join(path + [rule.output_field])
                raise FormulaError(rule.formula, f"circular calculation rules: {cycle}")
            state[rule.rule_id] = 'visiting'
            for dep in self._dependencies(rule):
                visit(dep, path + [rule.output_field])
            state[rule.rule_id] = 'done'
            order.append(rule)

        for rule in self.active_rules:
            visit(rule, [])
        return order

    def evaluation_order(self) -> list[CalculationRule]:
        return list(self._order)

    def apply(self, values: Mapping[str, float], best_effort: bool = False) -> dict:
        """
        Evaluate every active rule against the given field values.

        Returns a new dict with the input values plus each rule's output.
        """
        return self._apply(self._order, values, best_effort)

    def rules_triggered_by(self, changed_fields: Iterable[str]) -> list[CalculationRule]:
        """
        Rules to re-run when the given fields change, in evaluation order.

        A rule is triggered by its trigger fields (or, when it declares none,
        by any variable in its formula), and transitively by the outputs of
        triggered rules.
        """
        dirty = set(changed_fields)
        triggered = []
        for rule in self._order:
            watched = set(rule.trigger_fields) or set(self.variables_for(rule))
            upstream = {dep.output_field for dep in self._dependencies(rule)}
            if watched & dirty or upstream & dirty:
                triggered.append(rule)
                dirty.add(rule.output_field)
        return triggered

    def apply_changes(self, values: Mapping[str, float], changed_fields: Iterable[str],
                      best_effort: bool = False) -> dict:
        """Re-run only the rules affected by changed_fields."""
        return self._apply(self.rules_triggered_by(changed_fields), values, best_effort)

    def _apply(self, rules: list[CalculationRule], values: Mapping[str, float],
               best_effort: bool) -> dict:
        output = dict(values)
        for rule in rules:
            value = self._compiled[rule.rule_id].evaluate(output, best_effort=best_effort)
            logger.debug("Rule %s set %s = %s", rule.rule_id, rule.output_field, value)
            output[rule.output_field] = value
        return output
