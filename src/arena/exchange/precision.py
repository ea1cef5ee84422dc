"""Per-symbol quantization rules and order validation.

The catalog must agree with the exchange's LOT_SIZE / PRICE_FILTER /
MIN_NOTIONAL filters before any order is submitted. It favours
availability over strictness: an unknown symbol is formatted with
default precision and validates as valid, and a stale catalog keeps
serving its last-known rules.

All arithmetic is Decimal. Never use float for steps, prices, or quantities.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from arena.exceptions import ResponseSchemaError
from arena.logging import get_logger

logger = get_logger(__name__)

DEFAULT_QUANTITY_STEP = Decimal("0.001")
DEFAULT_QUANTITY_MIN = Decimal("0.001")
DEFAULT_QUANTITY_MAX = Decimal("1000000")
DEFAULT_PRICE_TICK = Decimal("0.0001")
DEFAULT_MIN_NOTIONAL = Decimal("5")

# Off-step remainders at or below this are float noise from the caller
STEP_TOLERANCE = Decimal("0.0000001")

Number = Decimal | float | int | str


class QuantizeKind(str, Enum):
    QUANTITY = "quantity"
    PRICE = "price"


def as_decimal(value: Number) -> Decimal:
    """Convert via str() so floats keep their shortest repr, not binary noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def step_precision(step: Decimal) -> int:
    """Fractional digits implied by a step size.

    Steps >= 1 give 0; 0.001 gives 3; 1e-8 gives 8 (exponent read directly).
    """
    if step >= 1:
        return 0
    exponent = step.normalize().as_tuple().exponent
    return max(0, -int(exponent))


def round_to_step(value: Decimal, step: Decimal) -> Decimal:
    """Round to the nearest step multiple, halves away from zero."""
    return (value / step).to_integral_value(rounding=ROUND_HALF_UP) * step


def _format_fixed(value: Decimal, decimals: int) -> str:
    quantum = Decimal(1).scaleb(-decimals)
    return format(value.quantize(quantum, rounding=ROUND_HALF_UP), "f")


@dataclass(frozen=True)
class SymbolRule:
    """Trading constraints for one futures symbol."""

    symbol: str
    quantity_step: Decimal = DEFAULT_QUANTITY_STEP
    quantity_min: Decimal = DEFAULT_QUANTITY_MIN
    quantity_max: Decimal = DEFAULT_QUANTITY_MAX
    price_tick: Decimal = DEFAULT_PRICE_TICK
    min_notional: Decimal = DEFAULT_MIN_NOTIONAL
    quantity_precision: int = 3
    price_precision: int = 4

    @classmethod
    def from_exchange_symbol(cls, data: dict[str, Any]) -> "SymbolRule":
        """Parse one entry of exchangeInfo.symbols.

        Explicit quantityPrecision / pricePrecision on the symbol take
        precedence over the precision derived from the filters.

        Raises:
            ResponseSchemaError: If the symbol name or a filter value is malformed.
        """
        symbol = data.get("symbol")
        if not symbol:
            raise ResponseSchemaError("exchangeInfo symbol entry has no symbol name")

        values: dict[str, Any] = {}
        try:
            for flt in data.get("filters") or []:
                filter_type = flt.get("filterType")
                if filter_type == "LOT_SIZE":
                    step = Decimal(str(flt.get("stepSize") or DEFAULT_QUANTITY_STEP))
                    values["quantity_step"] = step
                    values["quantity_min"] = Decimal(str(flt.get("minQty") or DEFAULT_QUANTITY_MIN))
                    values["quantity_max"] = Decimal(str(flt.get("maxQty") or DEFAULT_QUANTITY_MAX))
                    values["quantity_precision"] = step_precision(step)
                elif filter_type == "PRICE_FILTER":
                    tick = Decimal(str(flt.get("tickSize") or DEFAULT_PRICE_TICK))
                    values["price_tick"] = tick
                    values["price_precision"] = step_precision(tick)
                elif filter_type == "MIN_NOTIONAL":
                    raw = flt.get("notional") or flt.get("minNotional") or DEFAULT_MIN_NOTIONAL
                    values["min_notional"] = Decimal(str(raw))

            if data.get("quantityPrecision") is not None:
                values["quantity_precision"] = int(data["quantityPrecision"])
            if data.get("pricePrecision") is not None:
                values["price_precision"] = int(data["pricePrecision"])
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise ResponseSchemaError(f"Malformed filters for {symbol}: {exc}") from exc

        if values.get("quantity_step", DEFAULT_QUANTITY_STEP) <= 0:
            raise ResponseSchemaError(f"Non-positive stepSize for {symbol}")
        if values.get("price_tick", DEFAULT_PRICE_TICK) <= 0:
            raise ResponseSchemaError(f"Non-positive tickSize for {symbol}")

        return cls(symbol=symbol, **values)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a single precision check. At most one adjustment is offered."""

    valid: bool
    reason: str | None = None
    adjusted: Decimal | None = None


@dataclass(frozen=True)
class OrderValidation:
    """Combined quantity + notional check for an order."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    adjusted_quantity: Decimal | None = None


class PrecisionCatalog:
    """Symbol rule table loaded from an exchange-info snapshot.

    The table is replaced wholesale on every load, so readers never see
    a half-updated set of rules.

    Args:
        validity_seconds: Age after which the catalog reports stale.
        default_quantity_decimals: Fallback precision for unknown symbols.
        default_price_decimals: Fallback precision for unknown symbols.
        clock: Time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        validity_seconds: float = 3600.0,
        default_quantity_decimals: int = 3,
        default_price_decimals: int = 4,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._validity_seconds = validity_seconds
        self._default_quantity_decimals = default_quantity_decimals
        self._default_price_decimals = default_price_decimals
        self._clock = clock
        self._rules: dict[str, SymbolRule] = {}
        self._loaded_at: float | None = None

    def load(self, exchange_info: dict[str, Any]) -> int:
        """Replace the whole rule set from an exchangeInfo payload.

        Malformed symbols are logged and skipped; the rest still load.

        Returns:
            Number of symbols loaded.

        Raises:
            ResponseSchemaError: If the payload has no symbols list.
        """
        symbols = exchange_info.get("symbols") if isinstance(exchange_info, dict) else None
        if not isinstance(symbols, list):
            raise ResponseSchemaError("Invalid exchange info format - missing symbols array")

        rules: dict[str, SymbolRule] = {}
        for entry in symbols:
            try:
                rule = SymbolRule.from_exchange_symbol(entry)
            except ResponseSchemaError as exc:
                logger.warning(
                    "symbol_rule_parse_failed",
                    symbol=entry.get("symbol") if isinstance(entry, dict) else None,
                    error=str(exc),
                )
                continue
            rules[rule.symbol] = rule

        self._rules = rules
        self._loaded_at = self._clock()
        logger.info("precision_catalog_loaded", symbol_count=len(rules))
        return len(rules)

    def get_rule(self, symbol: str) -> SymbolRule | None:
        return self._rules.get(symbol)

    @property
    def symbols(self) -> list[str]:
        return list(self._rules)

    @property
    def loaded_at(self) -> float | None:
        return self._loaded_at

    def is_stale(self) -> bool:
        """True if never loaded or older than the validity window."""
        if self._loaded_at is None:
            return True
        return self._clock() - self._loaded_at > self._validity_seconds

    def status(self) -> dict:
        return {
            "symbol_count": len(self._rules),
            "loaded_at": self._loaded_at,
            "is_stale": self.is_stale(),
        }

    # ──────────────────────────────────────────────
    # Formatting
    # ──────────────────────────────────────────────

    def quantize(self, value: Number, symbol: str, kind: QuantizeKind) -> str:
        """Round value to the symbol's step (or tick) and format it.

        Falls back to the default precision when no rule is loaded.
        Idempotent: quantizing an already-quantized string is a no-op.
        """
        amount = as_decimal(value)
        rule = self._rules.get(symbol)
        if rule is None:
            decimals = (
                self._default_quantity_decimals
                if kind is QuantizeKind.QUANTITY
                else self._default_price_decimals
            )
            logger.warning(
                "no_precision_data",
                symbol=symbol,
                kind=kind.value,
                default_decimals=decimals,
            )
            return _format_fixed(amount, decimals)

        if kind is QuantizeKind.QUANTITY:
            step, decimals = rule.quantity_step, rule.quantity_precision
        else:
            step, decimals = rule.price_tick, rule.price_precision
        return _format_fixed(round_to_step(amount, step), decimals)

    def format_quantity(self, quantity: Number, symbol: str) -> str:
        return self.quantize(quantity, symbol, QuantizeKind.QUANTITY)

    def format_price(self, price: Number, symbol: str) -> str:
        return self.quantize(price, symbol, QuantizeKind.PRICE)

    # ──────────────────────────────────────────────
    # Validation
    # ──────────────────────────────────────────────

    def validate_quantity(self, quantity: Number, symbol: str) -> ValidationResult:
        """Check min, max, then step alignment, in that order."""
        rule = self._rules.get(symbol)
        if rule is None:
            return ValidationResult(valid=True)

        qty = as_decimal(quantity)
        if qty < rule.quantity_min:
            return ValidationResult(
                valid=False,
                reason=f"Quantity {qty} below minimum {rule.quantity_min}",
                adjusted=rule.quantity_min,
            )
        if qty > rule.quantity_max:
            return ValidationResult(
                valid=False,
                reason=f"Quantity {qty} above maximum {rule.quantity_max}",
                adjusted=rule.quantity_max,
            )

        remainder = qty % rule.quantity_step
        if min(remainder, rule.quantity_step - remainder) > STEP_TOLERANCE:
            return ValidationResult(
                valid=False,
                reason=f"Quantity must be multiple of step size {rule.quantity_step}",
                adjusted=round_to_step(qty, rule.quantity_step),
            )

        return ValidationResult(valid=True)

    def validate_notional(self, quantity: Number, price: Number, symbol: str) -> ValidationResult:
        """quantity x price must reach min_notional. Leverage is not a factor."""
        rule = self._rules.get(symbol)
        if rule is None:
            return ValidationResult(valid=True)

        notional = as_decimal(quantity) * as_decimal(price)
        if notional < rule.min_notional:
            return ValidationResult(
                valid=False,
                reason=f"Notional value {notional} below minimum ${rule.min_notional}",
            )
        return ValidationResult(valid=True)

    def validate_order(
        self,
        symbol: str,
        quantity: Number,
        price: Number | None = None,
    ) -> OrderValidation:
        """Run quantity and (when price is known) notional checks together."""
        errors: list[str] = []
        adjusted: Decimal | None = None

        quantity_check = self.validate_quantity(quantity, symbol)
        if not quantity_check.valid:
            errors.append(quantity_check.reason or "Invalid quantity")
            adjusted = quantity_check.adjusted

        if price is not None:
            notional_check = self.validate_notional(quantity, price, symbol)
            if not notional_check.valid:
                errors.append(notional_check.reason or "Invalid notional value")

        return OrderValidation(valid=not errors, errors=errors, adjusted_quantity=adjusted)

    def min_quantity(self, symbol: str, price: Number) -> Decimal | None:
        """Smallest step-aligned quantity meeting both min quantity and min notional.

        Returns None when the symbol has no rule.
        """
        rule = self._rules.get(symbol)
        if rule is None:
            return None
        steps = (rule.min_notional / as_decimal(price) / rule.quantity_step).to_integral_value(
            rounding=ROUND_CEILING
        )
        return max(rule.quantity_min, steps * rule.quantity_step)


def required_margin(quantity: Number, price: Number, leverage: Number) -> Decimal:
    """Collateral needed for a position: notional / leverage.

    A separate constraint from min notional; callers compare it with
    their available balance.
    """
    lev = as_decimal(leverage)
    if lev <= 0:
        raise ValueError(f"Leverage must be positive, got {leverage}")
    return as_decimal(quantity) * as_decimal(price) / lev
