"""
Error taxonomy for the quote pricing engine.

All errors are raised synchronously at the offending call. Degenerate
results (negative total or margin) are reported on the result instead of
raised, unless the caller opts in to rejecting them.
"""
from enum import Enum
from typing import Optional


class PricingError(Exception):
    """Base class for every error raised by the engine."""


class ValidationError(PricingError, ValueError):
    """Malformed numeric input to a calculation."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class FormulaError(PricingError, ValueError):
    """A formula could not be parsed or evaluated."""

    def __init__(self, formula: str, reason: str, position: Optional[int] = None):
        self.formula = formula
        self.reason = reason
        self.position = position
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"{reason}{where} in formula {formula!r}")


class DegenerateResult(str, Enum):
    """Warning codes for structurally valid but suspicious results."""
    NEGATIVE_TOTAL = "negative_total"
    NEGATIVE_MARGIN = "negative_margin"


class DegenerateResultError(PricingError):
    """Raised only when a caller asked for degenerate results to be rejected."""

    def __init__(self, flags):
        self.flags = tuple(flags)
        codes = ", ".join(flag.value for flag in self.flags)
        super().__init__(f"Degenerate calculation result: {codes}")
