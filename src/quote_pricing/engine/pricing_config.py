"""
Pricing Config - explicit, versioned per-tenant pricing configuration.

Passed into the calculator and formula library by the caller instead of
living in module-level globals, so tenants can override coefficients and
calculated fields without a code change.
"""
import json
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Mapping, Optional

from .calculation_rules import CalculationRule, RuleSet
from .default_formulas import DEFAULT_COEFFICIENTS, FormulaCoefficients, FormulaLibrary
from .errors import ValidationError
from .line_totals import require_number

logger = logging.getLogger(__name__)

CONFIG_VERSION = 1


@dataclass(frozen=True)
class PricingConfig:
    """Per-tenant pricing configuration."""
    version: int = CONFIG_VERSION
    currency: str = "USD"
    default_tax_rate_percent: float = 0.0
    coefficients: FormulaCoefficients = DEFAULT_COEFFICIENTS
    calculation_rules: tuple[CalculationRule, ...] = field(default_factory=tuple)

    def formula_library(self) -> FormulaLibrary:
        return FormulaLibrary(self.coefficients)

    def rule_set(self) -> RuleSet:
        return RuleSet(self.calculation_rules)

    def formula_context(self, values: Mapping[str, float]) -> dict:
        """Coefficients plus caller values (caller values win) for rule evaluation."""
        context = self.coefficients.to_dict()
        context.update(values)
        return context

    def with_rules(self, rules) -> 'PricingConfig':
        return replace(self, calculation_rules=tuple(rules))

    def to_dict(self) -> dict:
        return {
            'version': self.version,
            'currency': self.currency,
            'default_tax_rate_percent': self.default_tax_rate_percent,
            'coefficients': self.coefficients.to_dict(),
            'calculation_rules': [r.to_dict() for r in self.calculation_rules],
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> 'PricingConfig':
        """
        Build a config from its JSON shape.

        Raises:
            ValidationError: for unknown coefficient keys or bad numbers
        """
        known = {f.name for f in fields(FormulaCoefficients)}
        raw_coefficients = data.get('coefficients') or {}
        unknown = sorted(set(raw_coefficients) - known)
        if unknown:
            raise ValidationError('coefficients', f"unknown keys: {', '.join(unknown)}")
        coefficients = DEFAULT_COEFFICIENTS.with_overrides(**{
            key: require_number(f"coefficients.{key}", value)
            for key, value in raw_coefficients.items()
        })

        return cls(
            version=int(data.get('version', CONFIG_VERSION)),
            currency=str(data.get('currency', 'USD')),
            default_tax_rate_percent=require_number(
                'default_tax_rate_percent', data.get('default_tax_rate_percent', 0.0)),
            coefficients=coefficients,
            calculation_rules=tuple(
                CalculationRule.from_dict(r) for r in data.get('calculation_rules', [])
            ),
        )


def load_pricing_config(path: Optional[Path]) -> PricingConfig:
    """Load a pricing config JSON file, or the defaults when it does not exist."""
    if path is None or not Path(path).exists():
        logger.info("No pricing config at %s, using defaults", path)
        return PricingConfig()

    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    config = PricingConfig.from_dict(data)
    # Fail on load rather than on first use
    config.rule_set()
    return config


def save_pricing_config(config: PricingConfig, path: Path) -> None:
    """Write a pricing config to JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(config.to_dict(), f, indent=2)
        f.write("\n")
