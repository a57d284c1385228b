"""
Calculation Rules Service - CRUD operations for tenant calculated fields.
Handles reading/writing rules in the pricing config JSON and validating
that the resulting rule set still evaluates (no cycles or clashes).
"""
import re
from dataclasses import replace
from pathlib import Path
from typing import Optional

from ..engine.calculation_rules import CalculationRule, RuleSet, RuleValidation, validate_rule
from ..engine.errors import FormulaError
from ..engine.pricing_config import PricingConfig, load_pricing_config, save_pricing_config


class CalculationRulesService:
    """Service for managing calculation rules stored in a pricing config file."""

    def __init__(self, config_path: Path, known_fields: Optional[set[str]] = None):
        self.config_path = config_path
        self.known_fields = known_fields

    def load_config(self) -> PricingConfig:
        return load_pricing_config(self.config_path)

    def list_rules(self, include_inactive: bool = True) -> list[CalculationRule]:
        """List all rules from the config file."""
        rules = list(self.load_config().calculation_rules)
        if include_inactive:
            return rules
        return [r for r in rules if r.active]

    def get_rule(self, rule_id: str) -> Optional[CalculationRule]:
        """Get a single rule by ID."""
        for rule in self.list_rules():
            if rule.rule_id == rule_id:
                return rule
        return None

    def create_rule(self, rule: CalculationRule) -> CalculationRule:
        """Create a new rule."""
        if not rule.rule_id:
            rule = replace(rule, rule_id=self._generate_rule_id(rule))

        if self.get_rule(rule.rule_id):
            raise ValueError(f"Rule with ID '{rule.rule_id}' already exists")

        rules = self.list_rules()
        rules.append(rule)
        self._write_rules(rules)
        return rule

    def update_rule(self, rule_id: str, updates: dict) -> CalculationRule:
        """Update an existing rule."""
        rules = self.list_rules()

        for i, rule in enumerate(rules):
            if rule.rule_id == rule_id:
                allowed = {
                    k: v for k, v in updates.items()
                    if hasattr(rule, k) and k != 'rule_id' and v is not None
                }
                if 'trigger_fields' in allowed:
                    allowed['trigger_fields'] = tuple(allowed['trigger_fields'] or ())
                rules[i] = replace(rule, **allowed)
                break
        else:
            raise ValueError(f"Rule with ID '{rule_id}' not found")

        self._write_rules(rules)
        return rules[i]

    def delete_rule(self, rule_id: str) -> bool:
        """Delete a rule."""
        rules = self.list_rules()
        remaining = [r for r in rules if r.rule_id != rule_id]

        if len(remaining) == len(rules):
            raise ValueError(f"Rule with ID '{rule_id}' not found")

        self._write_rules(remaining)
        return True

    def validate_rule(self, rule: CalculationRule) -> RuleValidation:
        """Validate a rule before saving, including its effect on the whole set."""
        result = validate_rule(rule, known_fields=self._known_fields())

        if result.valid:
            others = [r for r in self.list_rules() if r.rule_id != rule.rule_id]
            try:
                RuleSet(others + [rule])
            except FormulaError as e:
                result.errors.append(e.reason)
                result.valid = False

        return result

    def _known_fields(self) -> Optional[set[str]]:
        if self.known_fields is None:
            return None
        config = self.load_config()
        fields = set(self.known_fields) | set(config.coefficients.to_dict())
        fields |= {r.output_field for r in config.calculation_rules}
        return fields

    def _generate_rule_id(self, rule: CalculationRule) -> str:
        """Generate a unique rule ID from the output field."""
        base = re.sub(r'[^A-Z0-9]+', '-', rule.output_field.upper()).strip('-') or "RULE"
        base = f"CALC-{base[:16].rstrip('-')}"

        existing_ids = {r.rule_id for r in self.list_rules()}
        candidate = base
        counter = 1
        while candidate in existing_ids:
            candidate = f"{base}-{counter}"
            counter += 1

        return candidate

    def _write_rules(self, rules: list[CalculationRule]):
        """Validate the full set, then write rules back to the config file."""
        RuleSet(rules)
        config = self.load_config().with_rules(rules)
        save_pricing_config(config, self.config_path)

    def get_stats(self) -> dict:
        """Get statistics about rules."""
        rules = self.list_rules()
        active = [r for r in rules if r.active]
        return {
            'total': len(rules),
            'active': len(active),
            'inactive': len(rules) - len(active),
            'output_fields': sorted(r.output_field for r in active),
        }
