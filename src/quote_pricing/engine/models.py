"""
Data models for the quote pricing engine.

Uses dataclasses for structured, type-safe data representation.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Sequence

from .errors import DegenerateResult, ValidationError
from .line_totals import compute_line_totals


FormulaContext = Mapping[str, float]


class LineItemKind(str, Enum):
    SERVICE = "service"
    PRODUCT = "product"
    FEE = "fee"


@dataclass(frozen=True)
class TraceStep:
    """A single step in the calculation trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class LineItem:
    """
    One priced row within a quote or invoice.

    Line totals are always derived from quantity, unit price and unit cost;
    they cannot be supplied independently.
    """
    quantity: float
    unit_price: float
    taxable: bool = True
    kind: LineItemKind = LineItemKind.SERVICE
    unit_cost: float = 0.0
    name: str = ""
    description: Optional[str] = None

    def __post_init__(self):
        # Unknown kinds are left as-is and rejected at calculation time
        if isinstance(self.kind, str) and not isinstance(self.kind, LineItemKind):
            try:
                self.kind = LineItemKind(self.kind)
            except ValueError:
                pass

    @property
    def line_total(self) -> float:
        return compute_line_totals(self.quantity, self.unit_price, self.unit_cost)[0]

    @property
    def line_cost_total(self) -> float:
        return compute_line_totals(self.quantity, self.unit_price, self.unit_cost)[1]

    @classmethod
    def from_dict(cls, data: Mapping) -> 'LineItem':
        """Build a line item from a camelCase or snake_case mapping."""
        def pick(*keys, default=None):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        quantity = pick('quantity')
        if quantity is None:
            raise ValidationError('quantity', "is required")
        unit_price = pick('unit_price', 'unitPrice')
        if unit_price is None:
            raise ValidationError('unit_price', "is required")

        return cls(
            quantity=quantity,
            unit_price=unit_price,
            taxable=pick('taxable', default=True),
            kind=pick('kind', 'type', default=LineItemKind.SERVICE),
            unit_cost=pick('unit_cost', 'unitCost', default=0.0),
            name=pick('name', default=""),
            description=pick('description'),
        )


@dataclass
class CalculationInput:
    """The parameters for one pricing pass."""
    line_items: Sequence[LineItem]
    tax_rate_percent: Optional[float] = None
    discount_percent: Optional[float] = None
    discount_amount: Optional[float] = None


@dataclass(frozen=True)
class CalculationResult:
    """Complete, immutable result of a pricing calculation."""
    subtotal: float
    discount_amount: float
    taxable_total: float
    tax_amount: float
    total: float
    estimated_cost: float
    margin: float
    margin_percentage: float
    flags: tuple[DegenerateResult, ...] = ()
    warnings: tuple[str, ...] = ()
    trace: tuple[TraceStep, ...] = field(default=(), compare=False)

    @property
    def is_degenerate(self) -> bool:
        return bool(self.flags)

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"• {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"• {t.step}: {t.description}")
        return "\n".join(lines)

    def to_record(self) -> dict:
        """Snapshot in the field naming used by quote and invoice documents."""
        return {
            "subtotal": self.subtotal,
            "discountAmount": self.discount_amount,
            "taxAmount": self.tax_amount,
            "total": self.total,
            "estimatedCost": self.estimated_cost,
            "margin": self.margin,
            "marginPercentage": self.margin_percentage,
        }
