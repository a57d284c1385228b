"""
Presentation helpers for amounts and percentages.

The engine returns raw floats; these helpers are for the API and UI only.
"""
from decimal import Decimal, ROUND_HALF_UP

CURRENCY_SYMBOLS = {
    'USD': '$',
    'CAD': 'CA$',
    'AUD': 'A$',
    'EUR': '€',
    'GBP': '£',
}


def round_currency(amount: float, places: int = 2) -> float:
    """Round half-up to minor units (2.675 -> 2.68, unlike round())."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(amount)).quantize(quantum, rounding=ROUND_HALF_UP))


def format_currency(amount: float, currency: str = 'USD') -> str:
    """Format an amount as e.g. $1,234.50 or -$20.00."""
    rounded = round_currency(amount)
    symbol = CURRENCY_SYMBOLS.get(currency.upper())
    sign = "-" if rounded < 0 else ""
    digits = f"{abs(rounded):,.2f}"
    if symbol is None:
        return f"{sign}{currency.upper()} {digits}"
    return f"{sign}{symbol}{digits}"


def format_percentage(value: float) -> str:
    return f"{value:.2f}%"


def rounded_record(result) -> dict:
    """A CalculationResult snapshot with every amount rounded to cents."""
    return {key: round_currency(value) for key, value in result.to_record().items()}
