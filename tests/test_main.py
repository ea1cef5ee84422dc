"""Tests for the composition root."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from eth_account import Account

from arena.config import (
    AgentAccountSettings,
    AppSettings,
    ArenaSettings,
    DecisionStoreSettings,
    ExchangeSettings,
    PrecisionSettings,
)
from arena.exceptions import ConfigurationError
from arena.main import build_catalog, build_components, build_exchange_client, poll
from arena.signing import KeyAuthenticator, WalletAuthenticator

ETH_KEY = "0x" + "11" * 32


class TestBuildExchangeClient:
    def test_key_credentials_use_v1(self) -> None:
        settings = ExchangeSettings(api_key="k", api_secret="s")  # type: ignore[arg-type]
        client = build_exchange_client(settings, build_catalog(PrecisionSettings()))
        assert isinstance(client._signer, KeyAuthenticator)
        assert client.api_version == "v1"

    def test_wallet_credentials_use_v3(self) -> None:
        address = Account.from_key(ETH_KEY).address
        settings = ExchangeSettings(
            wallet_address=address,
            signer_address=address,
            private_key=ETH_KEY,  # type: ignore[arg-type]
        )
        client = build_exchange_client(settings, build_catalog(PrecisionSettings()))
        assert isinstance(client._signer, WalletAuthenticator)
        assert client.api_version == "v3"

    def test_missing_credentials_fatal(self) -> None:
        with pytest.raises(ConfigurationError):
            build_exchange_client(ExchangeSettings(), build_catalog(PrecisionSettings()))


class TestBuildComponents:
    @pytest.mark.asyncio
    async def test_default_single_agent(self, mock_settings) -> None:
        mock_settings.decisions = DecisionStoreSettings(db_path=":memory:")

        components = await build_components(mock_settings)
        try:
            assert [a.name for a in components.service.agents] == ["default"]
        finally:
            await components.close()

    @pytest.mark.asyncio
    async def test_roster_with_shared_catalog(self, mock_settings) -> None:
        mock_settings.decisions = DecisionStoreSettings(db_path=":memory:")
        mock_settings.arena = ArenaSettings(
            agents=[
                AgentAccountSettings(name="alpha", agent_id="a", trading_pairs=["BTCUSDT"]),
                AgentAccountSettings(name="beta", agent_id="b"),
            ]
        )

        components = await build_components(mock_settings)
        try:
            agents = components.service.agents
            assert [a.agent_id for a in agents] == ["a", "b"]
            assert agents[0].trading_pairs == ("BTCUSDT",)
            assert agents[0].client.catalog is agents[1].client.catalog
        finally:
            await components.close()

    @pytest.mark.asyncio
    async def test_bad_credentials_close_database(self) -> None:
        settings = AppSettings(
            exchange=ExchangeSettings(),
            decisions=DecisionStoreSettings(db_path=":memory:"),
        )
        with pytest.raises(ConfigurationError):
            await build_components(settings)


class TestPoll:
    @pytest.mark.asyncio
    async def test_stops_on_event(self) -> None:
        service = AsyncMock()
        service.get_agent_snapshots.return_value = []
        stop = asyncio.Event()

        task = asyncio.create_task(poll(service, 60, stop))
        await asyncio.sleep(0)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        service.get_agent_snapshots.assert_awaited()

    @pytest.mark.asyncio
    async def test_refresh_failure_does_not_stop_loop(self) -> None:
        service = AsyncMock()
        service.get_agent_snapshots.side_effect = RuntimeError("exchange down")
        stop = asyncio.Event()

        task = asyncio.create_task(poll(service, 0.01, stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert service.get_agent_snapshots.await_count >= 2
