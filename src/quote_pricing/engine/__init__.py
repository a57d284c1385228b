"""Engine subpackage - quote calculation, formulas and calculated fields."""
from .calculation_rules import CalculationRule, RuleSet, validate_rule
from .default_formulas import DEFAULT_COEFFICIENTS, FormulaCoefficients, FormulaLibrary
from .errors import (
    DegenerateResult, DegenerateResultError, FormulaError, PricingError, ValidationError,
)
from .formula import Formula, compile_formula, evaluate
from .models import CalculationInput, CalculationResult, LineItem, LineItemKind
from .pricing_config import PricingConfig, load_pricing_config, save_pricing_config
from .quote_calculator import QuoteCalculator, calculate, calculate_input, compute_line_totals

__all__ = [
    'QuoteCalculator', 'calculate', 'calculate_input', 'compute_line_totals',
    'CalculationInput', 'CalculationResult', 'LineItem', 'LineItemKind',
    'Formula', 'compile_formula', 'evaluate',
    'FormulaCoefficients', 'FormulaLibrary', 'DEFAULT_COEFFICIENTS',
    'CalculationRule', 'RuleSet', 'validate_rule',
    'PricingConfig', 'load_pricing_config', 'save_pricing_config',
    'PricingError', 'ValidationError', 'FormulaError',
    'DegenerateResult', 'DegenerateResultError',
]
