"""Aster futures client implementation over aiohttp.

Aster speaks the Binance futures REST dialect on two surfaces: /fapi/v1
for API-key accounts and /fapi/v3 for wallet-signed accounts. The signer
chosen at construction decides which surface is used and whether DELETE
parameters travel in the query string or the body.
"""

import asyncio
import json
import time
from typing import Any

import aiohttp
from yarl import URL

from arena.config import ExchangeSettings
from arena.exceptions import TransportError
from arena.exchange.client import ExchangeClient
from arena.exchange.precision import PrecisionCatalog
from arena.exchange.types import (
    AccountInfo,
    Balance,
    CommissionRate,
    FundingRate,
    MarkPrice,
    OrderResponse,
    ServerTime,
    parse_income_record,
    parse_list,
    parse_position,
    parse_trade,
)
from arena.logging import get_logger
from arena.models import IncomeRecord, OrderRequest, Position, Trade
from arena.signing import RequestSigner
from arena.signing.canonical import encode_query

logger = get_logger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class AsterClient(ExchangeClient):
    """Concrete Aster futures client.

    Args:
        settings: Base URL and timeout.
        signer: Request signer for this account (key or wallet).
        catalog: Shared precision catalog.
        name: Agent name bound into every log line from this client.
        session: Optional externally-owned aiohttp session. When omitted
            the client creates and owns its own session lazily.
        clock: Time source in seconds.
    """

    def __init__(
        self,
        settings: ExchangeSettings,
        signer: RequestSigner,
        catalog: PrecisionCatalog,
        name: str = "",
        session: aiohttp.ClientSession | None = None,
        clock=time.time,
    ) -> None:
        super().__init__(catalog, clock)
        self._settings = settings
        self._signer = signer
        self._base_url = settings.base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._log = logger.bind(agent=name) if name else logger

    @property
    def api_version(self) -> str:
        return self._signer.api_version

    # ──────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._settings.request_timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def connect(self) -> None:
        self._get_session()
        self._log.info("aster_client_connected", base_url=self._base_url, api=self.api_version)

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
            self._log.info("aster_client_closed")
        self._session = None

    # ──────────────────────────────────────────────
    # Transport
    # ──────────────────────────────────────────────

    def _path(self, endpoint: str) -> str:
        return f"/fapi/{self._signer.api_version}{endpoint}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        signed: bool = False,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Raises:
            TransportError: On network failure, timeout, non-2xx status, or
                an exchange error body ({"code": <negative>, "msg": ...}).
        """
        path = self._path(endpoint)
        headers: dict[str, str] = {}
        body: str | None = None
        query = ""

        if signed:
            signed_request = self._signer.sign(params or {})
            headers.update(signed_request.headers)
            in_body = method == "POST" or (method == "DELETE" and self._signer.delete_in_body)
            if in_body:
                body = signed_request.encoded
                headers["Content-Type"] = FORM_CONTENT_TYPE
            else:
                query = signed_request.encoded
        elif params:
            query = encode_query(params)

        target = f"{self._base_url}{path}?{query}" if query else f"{self._base_url}{path}"
        url = URL(target, encoded=True)

        started = time.monotonic()
        try:
            async with self._get_session().request(
                method, url, data=body, headers=headers
            ) as resp:
                status = resp.status
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self._log.error(
                "exchange_request_failed",
                method=method,
                path=path,
                error=str(exc) or type(exc).__name__,
            )
            raise TransportError(f"{method} {path} failed: {exc!r}", path=path) from exc

        duration_ms = round((time.monotonic() - started) * 1000, 1)
        self._log.debug(
            "exchange_request",
            method=method,
            path=path,
            status=status,
            duration_ms=duration_ms,
        )

        try:
            payload = json.loads(text) if text else None
        except ValueError:
            payload = text

        error_code = None
        if isinstance(payload, dict):
            code = payload.get("code")
            if isinstance(code, int) and code < 0:
                error_code = code

        if status >= 400 or error_code is not None:
            message = payload.get("msg", text) if isinstance(payload, dict) else text
            self._log.warning(
                "exchange_error_response",
                method=method,
                path=path,
                status=status,
                code=error_code,
                msg=message,
            )
            raise TransportError(
                f"{method} {path} -> {status}: {message}",
                status=status,
                code=error_code,
                path=path,
            )

        return payload

    # ──────────────────────────────────────────────
    # Market data
    # ──────────────────────────────────────────────

    async def ping(self) -> bool:
        await self._request("GET", "/ping")
        return True

    async def get_server_time(self) -> ServerTime:
        return ServerTime.from_payload(await self._request("GET", "/time"))

    async def get_exchange_info(self) -> dict:
        return await self._request("GET", "/exchangeInfo")

    async def get_mark_prices(self, symbol: str | None = None) -> list[MarkPrice]:
        data = await self._request("GET", "/premiumIndex", {"symbol": symbol})
        rows = data if isinstance(data, list) else [data]
        return parse_list(rows, MarkPrice.from_payload, "MarkPrice")

    async def get_funding_rates(self, symbol: str | None = None) -> list[FundingRate]:
        data = await self._request("GET", "/fundingRate", {"symbol": symbol})
        rows = data if isinstance(data, list) else [data]
        return parse_list(rows, FundingRate.from_payload, "FundingRate")

    # ──────────────────────────────────────────────
    # Orders
    # ──────────────────────────────────────────────

    async def place_order(
        self,
        request: OrderRequest,
        quantity: str | None = None,
        price: str | None = None,
    ) -> OrderResponse:
        params = request.to_params(quantity=quantity, price=price)
        self._log.info(
            "placing_order",
            symbol=request.symbol,
            side=request.side.value,
            order_type=request.order_type.value,
            quantity=str(params["quantity"]),
            price=str(params["price"]) if "price" in params else None,
            reduce_only=request.reduce_only,
        )
        data = await self._request("POST", "/order", params, signed=True)
        response = OrderResponse.from_payload(data)
        self._log.info(
            "order_placed",
            symbol=response.symbol,
            order_id=response.order_id,
            status=response.status,
        )
        return response

    async def cancel_order(
        self,
        symbol: str,
        order_id: str | None = None,
        client_order_id: str | None = None,
    ) -> OrderResponse:
        if order_id is None and client_order_id is None:
            raise ValueError("cancel_order needs order_id or client_order_id")
        self._log.info("cancelling_order", symbol=symbol, order_id=order_id)
        params = {"symbol": symbol, "orderId": order_id, "origClientOrderId": client_order_id}
        data = await self._request("DELETE", "/order", params, signed=True)
        return OrderResponse.from_payload(data)

    async def get_order(self, symbol: str, order_id: str) -> OrderResponse:
        data = await self._request(
            "GET", "/order", {"symbol": symbol, "orderId": order_id}, signed=True
        )
        return OrderResponse.from_payload(data)

    async def get_open_orders(self, symbol: str | None = None) -> list[OrderResponse]:
        data = await self._request("GET", "/openOrders", {"symbol": symbol}, signed=True)
        return parse_list(data, OrderResponse.from_payload, "OrderResponse")

    async def cancel_all_open_orders(self, symbol: str) -> dict:
        self._log.info("cancelling_all_open_orders", symbol=symbol)
        return await self._request("DELETE", "/allOpenOrders", {"symbol": symbol}, signed=True)

    # ──────────────────────────────────────────────
    # Account
    # ──────────────────────────────────────────────

    async def get_account_info(self) -> AccountInfo:
        return AccountInfo.from_payload(await self._request("GET", "/account", signed=True))

    async def get_positions(self) -> list[Position]:
        data = await self._request("GET", "/positionRisk", signed=True)
        return parse_list(data, parse_position, "Position")

    async def get_balances(self) -> list[Balance]:
        data = await self._request("GET", "/balance", signed=True)
        return parse_list(data, Balance.from_payload, "Balance")

    async def change_leverage(self, symbol: str, leverage: int) -> dict:
        data = await self._request(
            "POST", "/leverage", {"symbol": symbol, "leverage": leverage}, signed=True
        )
        self._log.info("leverage_changed", symbol=symbol, leverage=leverage)
        return data

    async def get_income_history(
        self,
        symbol: str | None = None,
        income_type: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = 1000,
    ) -> list[IncomeRecord]:
        params = {
            "symbol": symbol,
            "incomeType": income_type,
            "startTime": start_time,
            "endTime": end_time,
            "limit": min(limit, 1000),
        }
        data = await self._request("GET", "/income", params, signed=True)
        return parse_list(data, parse_income_record, "IncomeRecord")

    async def get_user_trades(
        self,
        symbol: str,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = 500,
    ) -> list[Trade]:
        params = {
            "symbol": symbol,
            "startTime": start_time,
            "endTime": end_time,
            "limit": limit,
        }
        data = await self._request("GET", "/userTrades", params, signed=True)
        return parse_list(data, parse_trade, "Trade")

    async def get_commission_rate(self, symbol: str) -> CommissionRate:
        data = await self._request("GET", "/commissionRate", {"symbol": symbol}, signed=True)
        return CommissionRate.from_payload(data)
