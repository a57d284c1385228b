"""
Line item total computation and numeric input checks.
"""
import math
from numbers import Real
from typing import Optional

from .errors import ValidationError


def require_number(field: str, value, minimum: Optional[float] = 0.0,
                   maximum: Optional[float] = None) -> float:
    """
    Return value as a float, or raise ValidationError naming the field.

    Booleans, strings and non-finite values are rejected.
    """
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(field, f"must be a number, got {value!r}")
    try:
        number = float(value)
    except OverflowError:
        raise ValidationError(field, "must be finite, got an integer too large for a float") from None
    if not math.isfinite(number):
        raise ValidationError(field, f"must be finite, got {value!r}")
    if minimum is not None and number < minimum:
        raise ValidationError(field, f"must be >= {minimum:g}, got {value!r}")
    if maximum is not None and number > maximum:
        raise ValidationError(field, f"must be <= {maximum:g}, got {value!r}")
    return number


def compute_line_totals(quantity, unit_price, unit_cost=0.0,
                        field_prefix: str = "") -> tuple[float, float]:
    """
    Compute (line_total, line_cost_total) for one line item.

    No rounding is applied here; rounding is deferred to presentation.
    """
    qty = require_number(f"{field_prefix}quantity", quantity)
    price = require_number(f"{field_prefix}unit_price", unit_price)
    cost = require_number(f"{field_prefix}unit_cost", 0.0 if unit_cost is None else unit_cost)
    line_total, line_cost_total = qty * price, qty * cost
    if not math.isfinite(line_total):
        raise ValidationError(f"{field_prefix}quantity", "quantity * unit_price is not finite")
    if not math.isfinite(line_cost_total):
        raise ValidationError(f"{field_prefix}quantity", "quantity * unit_cost is not finite")
    return line_total, line_cost_total
