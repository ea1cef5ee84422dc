"""Exchange client layer -- Aster futures REST integration via aiohttp."""

from arena.exchange.aster_client import AsterClient
from arena.exchange.client import ExchangeClient
from arena.exchange.precision import (
    OrderValidation,
    PrecisionCatalog,
    QuantizeKind,
    SymbolRule,
    ValidationResult,
    required_margin,
    round_to_step,
)

__all__ = [
    "AsterClient",
    "ExchangeClient",
    "OrderValidation",
    "PrecisionCatalog",
    "QuantizeKind",
    "SymbolRule",
    "ValidationResult",
    "required_margin",
    "round_to_step",
]
