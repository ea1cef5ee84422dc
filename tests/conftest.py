"""Shared test fixtures for the arena engine."""

from decimal import Decimal

import pytest

from arena.config import AppSettings, ExchangeSettings
from arena.exchange.precision import PrecisionCatalog
from arena.models import Position, PositionSide

# 2023-11-14 22:13:20 UTC
FIXED_NOW = 1_700_000_000.0

# Valid secp256k1 key used only in tests
ETH_TEST_PRIVATE_KEY = "0x" + "11" * 32


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with dummy key credentials."""
    return AppSettings(
        log_level="DEBUG",
        exchange=ExchangeSettings(
            base_url="https://fapi.test",
            api_key="test-api-key",  # type: ignore[arg-type]
            api_secret="test-api-secret",  # type: ignore[arg-type]
        ),
    )


@pytest.fixture
def fixed_clock():
    """Clock frozen at FIXED_NOW seconds."""
    return lambda: FIXED_NOW


@pytest.fixture
def exchange_info() -> dict:
    """Trimmed exchangeInfo payload with three symbols."""
    return {
        "timezone": "UTC",
        "serverTime": 1_700_000_000_000,
        "symbols": [
            {
                "symbol": "BTCUSDT",
                "filters": [
                    {"filterType": "PRICE_FILTER", "tickSize": "0.1", "minPrice": "1"},
                    {
                        "filterType": "LOT_SIZE",
                        "stepSize": "0.001",
                        "minQty": "0.001",
                        "maxQty": "1000",
                    },
                    {"filterType": "MIN_NOTIONAL", "notional": "5"},
                ],
            },
            {
                "symbol": "ETHUSDT",
                "quantityPrecision": 3,
                "pricePrecision": 2,
                "filters": [
                    {"filterType": "PRICE_FILTER", "tickSize": "0.01"},
                    {
                        "filterType": "LOT_SIZE",
                        "stepSize": "0.001",
                        "minQty": "0.001",
                        "maxQty": "10000",
                    },
                    {"filterType": "MIN_NOTIONAL", "notional": "5"},
                ],
            },
            {
                "symbol": "ASTERUSDT",
                "filters": [
                    {"filterType": "PRICE_FILTER", "tickSize": "0.00001"},
                    {
                        "filterType": "LOT_SIZE",
                        "stepSize": "0.01",
                        "minQty": "0.01",
                        "maxQty": "5000000",
                    },
                    {"filterType": "MIN_NOTIONAL", "minNotional": "5"},
                ],
            },
        ],
    }


@pytest.fixture
def catalog(exchange_info: dict, fixed_clock) -> PrecisionCatalog:
    """PrecisionCatalog loaded from the exchange_info fixture."""
    loaded = PrecisionCatalog(clock=fixed_clock)
    loaded.load(exchange_info)
    return loaded


@pytest.fixture
def long_btc_position() -> Position:
    """0.01 BTC long opened at 60000, marked at 66000, 10x."""
    return Position(
        symbol="BTCUSDT",
        side=PositionSide.LONG,
        position_amount=Decimal("0.01"),
        size=Decimal("0.01"),
        entry_price=Decimal("60000"),
        mark_price=Decimal("66000"),
        unrealized_pnl=Decimal("60"),
        leverage=Decimal("10"),
        update_time=int(FIXED_NOW * 1000) - 60_000,
    )
