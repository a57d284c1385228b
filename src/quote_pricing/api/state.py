"""
Shared API state - the live pricing config and calculator.

The config is immutable; reload() swaps in a new instance.
"""
import logging

from ..config.settings import get_settings
from ..engine import PricingConfig, QuoteCalculator, load_pricing_config

logger = logging.getLogger(__name__)


class PricingState:
    def __init__(self):
        self.config: PricingConfig = PricingConfig()
        self.calculator = QuoteCalculator(self.config)

    def reload(self) -> PricingConfig:
        """Reload the pricing config from disk."""
        settings = get_settings()
        config = load_pricing_config(settings.pricing_config)
        self.config = config
        self.calculator = QuoteCalculator(config)
        logger.info("Loaded pricing config v%s with %d calculation rule(s)",
                    config.version, len(config.calculation_rules))
        return config


state = PricingState()
state.reload()
