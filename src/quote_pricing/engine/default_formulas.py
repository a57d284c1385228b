"""
Named default formulas for the moving-company vertical.

Ordinary parametrised functions; they never go through the formula string
evaluator. Default coefficients are documented on each function and
collected in FormulaCoefficients so a tenant can override them.
"""
from dataclasses import asdict, dataclass, replace
from typing import Callable, Optional


@dataclass(frozen=True)
class FormulaCoefficients:
    """Default coefficients used by the named formulas."""
    avg_room_size: float = 150.0        # sq ft per room
    packing_factor: float = 1.2         # packing efficiency
    rate_per_cubic_foot: float = 0.5    # moving cost per cu ft
    rate_per_mile: float = 2.0
    base_rate: float = 200.0
    hourly_rate: float = 50.0           # per worker
    storage_rate_per_cubic_foot: float = 0.75  # per cu ft per month

    def with_overrides(self, **overrides) -> 'FormulaCoefficients':
        return replace(self, **overrides)

    def to_dict(self) -> dict:
        return asdict(self)


DEFAULT_COEFFICIENTS = FormulaCoefficients()


def moving_volume(rooms: float, avg_room_size: float = 150.0, packing_factor: float = 1.2) -> float:
    """Estimated packed volume: rooms x average room size x packing factor."""
    return rooms * avg_room_size * packing_factor


def moving_cost(
    volume: float,
    distance: float,
    rate_per_cubic_foot: float = 0.5,
    rate_per_mile: float = 2.0,
    base_rate: float = 200.0,
) -> float:
    """Estimated job cost: base rate plus volume and distance charges."""
    volume_cost = volume * rate_per_cubic_foot
    distance_cost = distance * rate_per_mile
    return base_rate + volume_cost + distance_cost


def labor_cost(hours: float, workers: float, hourly_rate: float = 50.0) -> float:
    """Labor cost: hours x workers x hourly rate."""
    return hours * workers * hourly_rate


def storage_cost(cubic_feet: float, months: float, rate_per_cubic_foot: float = 0.75) -> float:
    """Storage cost: cubic feet x months x monthly rate."""
    return cubic_feet * months * rate_per_cubic_foot


# name -> (function, {parameter: coefficient attribute})
DEFAULT_FORMULAS: dict[str, tuple[Callable[..., float], dict[str, str]]] = {
    'moving_volume': (moving_volume, {
        'avg_room_size': 'avg_room_size',
        'packing_factor': 'packing_factor',
    }),
    'moving_cost': (moving_cost, {
        'rate_per_cubic_foot': 'rate_per_cubic_foot',
        'rate_per_mile': 'rate_per_mile',
        'base_rate': 'base_rate',
    }),
    'labor_cost': (labor_cost, {
        'hourly_rate': 'hourly_rate',
    }),
    'storage_cost': (storage_cost, {
        'rate_per_cubic_foot': 'storage_rate_per_cubic_foot',
    }),
}


class FormulaLibrary:
    """Named default formulas bound to a tenant's coefficients."""

    def __init__(self, coefficients: Optional[FormulaCoefficients] = None):
        self.coefficients = coefficients or DEFAULT_COEFFICIENTS

    @staticmethod
    def names() -> list[str]:
        return list(DEFAULT_FORMULAS)

    def defaults_for(self, name: str) -> dict[str, float]:
        """Coefficient values that will be used for a named formula."""
        _, params = DEFAULT_FORMULAS[name]
        return {param: getattr(self.coefficients, attr) for param, attr in params.items()}

    def compute(self, name: str, **params: float) -> float:
        """
        Evaluate a named formula.

        Explicit parameters win over the bound coefficients.

        Raises:
            KeyError: if the formula name is unknown
        """
        if name not in DEFAULT_FORMULAS:
            raise KeyError(f"Unknown default formula '{name}'")
        func, _ = DEFAULT_FORMULAS[name]
        kwargs = self.defaults_for(name)
        kwargs.update(params)
        return func(**kwargs)

    def moving_volume(self, rooms: float) -> float:
        return self.compute('moving_volume', rooms=rooms)

    def moving_cost(self, volume: float, distance: float) -> float:
        return self.compute('moving_cost', volume=volume, distance=distance)

    def labor_cost(self, hours: float, workers: float) -> float:
        return self.compute('labor_cost', hours=hours, workers=workers)

    def storage_cost(self, cubic_feet: float, months: float) -> float:
        return self.compute('storage_cost', cubic_feet=cubic_feet, months=months)
