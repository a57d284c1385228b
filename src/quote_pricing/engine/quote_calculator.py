"""
Quote Calculator - Core quote/invoice pricing with traceability.

Computes subtotal, discount, tax, total, cost basis and margin for an
ordered list of line items:
- Structured CalculationResult output (immutable snapshot)
- Execution trace for every calculation step
- Warning flags for degenerate results (negative total or margin)
"""
import logging
import math
from typing import Optional, Sequence

from .errors import DegenerateResult, DegenerateResultError, ValidationError
from .line_totals import compute_line_totals, require_number
from .models import CalculationInput, CalculationResult, LineItem, LineItemKind, TraceStep
from .pricing_config import PricingConfig

logger = logging.getLogger(__name__)

__all__ = ['compute_line_totals', 'calculate', 'calculate_input', 'QuoteCalculator']


def _validate_line_item(index: int, item: LineItem) -> tuple[float, float]:
    prefix = f"line_items[{index}]."
    if not isinstance(item.kind, LineItemKind):
        allowed = ", ".join(k.value for k in LineItemKind)
        raise ValidationError(f"{prefix}kind", f"must be one of {allowed}, got {item.kind!r}")
    if not isinstance(item.taxable, bool):
        raise ValidationError(f"{prefix}taxable", f"must be a boolean, got {item.taxable!r}")
    return compute_line_totals(item.quantity, item.unit_price, item.unit_cost, field_prefix=prefix)


def _require_finite_totals(**totals: float):
    """Reject a result whose aggregates overflowed even though every input was finite."""
    for name, value in totals.items():
        if not math.isfinite(value):
            raise ValidationError(name, f"amounts are too large to total, got {value!r}")


def calculate(
    line_items: Sequence[LineItem],
    tax_rate_percent: float = 0.0,
    discount_percent: Optional[float] = None,
    discount_amount: Optional[float] = None,
) -> CalculationResult:
    """
    Calculate quote totals with full traceability.

    Calculation order:
    1. Subtotal = sum of line totals
    2. Discount: a positive percentage overrides any fixed amount
    3. Taxable total = sum of line totals for taxable items
    4. Tax on the taxable share of the discounted subtotal (0 when subtotal is 0)
    5. Total = subtotal - discount + tax
    6. Estimated cost = sum of line cost totals
    7. Margin = total - estimated cost
    8. Margin % = margin / total * 100 when total > 0, else 0

    Raises:
        ValidationError: for malformed input, naming the offending field, or
            when finite inputs total to a non-finite amount
    """
    tax_rate = require_number("tax_rate_percent", tax_rate_percent)
    pct = None if discount_percent is None else require_number(
        "discount_percent", discount_percent, maximum=100.0)
    fixed = 0.0 if discount_amount is None else require_number("discount_amount", discount_amount)

    trace = []
    warnings = []

    line_items = list(line_items)
    totals = [_validate_line_item(i, item) for i, item in enumerate(line_items)]

    subtotal = float(sum(line_total for line_total, _ in totals))
    trace.append(TraceStep("Subtotal", f"{len(totals)} line item(s)", f"${subtotal:.2f}"))

    if pct is not None and pct > 0:
        discount = subtotal * pct / 100
        if fixed > 0:
            warnings.append(
                f"Fixed discount ${fixed:.2f} ignored; {pct:g}% discount takes precedence"
            )
        trace.append(TraceStep("Discount", f"{pct:g}% of subtotal", f"${discount:.2f}"))
    else:
        discount = fixed
        trace.append(TraceStep("Discount", "Fixed amount", f"${discount:.2f}"))

    taxable_total = float(sum(
        line_total for (line_total, _), item in zip(totals, line_items) if item.taxable
    ))
    trace.append(TraceStep("Taxable Items", "Total of taxable line items", f"${taxable_total:.2f}"))

    if subtotal == 0:
        tax = 0.0
        trace.append(TraceStep("Tax", "Subtotal is zero, no tax charged", "$0.00"))
    else:
        taxable_discount = discount * (taxable_total / subtotal)
        tax = (taxable_total - taxable_discount) * tax_rate / 100
        trace.append(TraceStep(
            "Tax",
            f"{tax_rate:g}% of ${taxable_total:.2f} less ${taxable_discount:.2f} allocated discount",
            f"${tax:.2f}",
        ))

    total = subtotal - discount + tax
    trace.append(TraceStep("Total", "Subtotal - discount + tax", f"${total:.2f}"))

    estimated_cost = float(sum(cost_total for _, cost_total in totals))
    margin = total - estimated_cost
    margin_percentage = (margin / total) * 100 if total > 0 else 0.0
    trace.append(TraceStep("Margin", f"Total less estimated cost ${estimated_cost:.2f}",
                           f"${margin:.2f} ({margin_percentage:.2f}%)"))

    _require_finite_totals(
        subtotal=subtotal, discount_amount=discount, taxable_total=taxable_total,
        tax_amount=tax, total=total, estimated_cost=estimated_cost, margin=margin,
        margin_percentage=margin_percentage,
    )

    flags = []
    if total < 0:
        flags.append(DegenerateResult.NEGATIVE_TOTAL)
        warnings.append(f"Discount exceeds subtotal; total is ${total:.2f}")
    if margin < 0:
        flags.append(DegenerateResult.NEGATIVE_MARGIN)
        warnings.append(f"Estimated cost exceeds total; margin is ${margin:.2f}")
    if flags:
        logger.warning("Degenerate quote result: %s", ", ".join(f.value for f in flags))

    return CalculationResult(
        subtotal=subtotal,
        discount_amount=discount,
        taxable_total=taxable_total,
        tax_amount=tax,
        total=total,
        estimated_cost=estimated_cost,
        margin=margin,
        margin_percentage=margin_percentage,
        flags=tuple(flags),
        warnings=tuple(warnings),
        trace=tuple(trace),
    )


def calculate_input(calc_input: CalculationInput) -> CalculationResult:
    """Calculate from a CalculationInput record."""
    tax_rate = calc_input.tax_rate_percent
    return calculate(
        calc_input.line_items,
        tax_rate_percent=0.0 if tax_rate is None else tax_rate,
        discount_percent=calc_input.discount_percent,
        discount_amount=calc_input.discount_amount,
    )


class QuoteCalculator:
    """
    Quote calculator bound to a tenant's pricing configuration.

    Holds no state between calls; the configured tax rate is only used when
    a request does not carry one.
    """

    def __init__(self, config: Optional[PricingConfig] = None, reject_degenerate: bool = False):
        self.config = config or PricingConfig()
        self.reject_degenerate = reject_degenerate

    def calculate(self, request: CalculationInput) -> CalculationResult:
        """
        Calculate a quote.

        Raises:
            ValidationError: for malformed input
            DegenerateResultError: only when reject_degenerate is set and the
                result has a negative total or margin
        """
        tax_rate = request.tax_rate_percent
        if tax_rate is None:
            tax_rate = self.config.default_tax_rate_percent

        result = calculate(
            request.line_items,
            tax_rate_percent=tax_rate,
            discount_percent=request.discount_percent,
            discount_amount=request.discount_amount,
        )
        if self.reject_degenerate and result.is_degenerate:
            raise DegenerateResultError(result.flags)
        return result
