"""Tests for settings composition and per-agent credential overrides."""

import pytest

from arena.config import AgentAccountSettings, AppSettings, ArenaSettings, ExchangeSettings


class TestDefaults:
    def test_app_settings_defaults(self, mock_settings) -> None:
        assert mock_settings.precision.validity_seconds == 3600.0
        assert mock_settings.cache.snapshot_ttl_seconds == 300.0
        assert mock_settings.cache.static_ttl_seconds == 60.0
        assert mock_settings.reconcile.max_history_days == 7
        assert mock_settings.exchange.recv_window_ms == 50_000

    def test_agents_from_env_json(self, monkeypatch) -> None:
        monkeypatch.setenv(
            "ARENA_AGENTS",
            '[{"name": "alpha", "agent_id": "a-1", "trading_pairs": ["BTCUSDT"]}]',
        )
        settings = ArenaSettings()
        assert settings.agents[0].name == "alpha"
        assert settings.agents[0].trading_pairs == ["BTCUSDT"]

    def test_secrets_masked(self, mock_settings) -> None:
        assert "test-api-secret" not in repr(mock_settings.exchange)


class TestAgentAccountSettings:
    @pytest.fixture()
    def base(self) -> ExchangeSettings:
        return ExchangeSettings(
            base_url="https://fapi.test",
            api_key="shared-key",  # type: ignore[arg-type]
            api_secret="shared-secret",  # type: ignore[arg-type]
        )

    def test_no_credentials_uses_shared(self, base) -> None:
        account = AgentAccountSettings(name="alpha", agent_id="a")
        assert account.exchange_settings(base) is base

    def test_own_credentials_replace_shared_set(self, base) -> None:
        account = AgentAccountSettings(
            name="beta",
            agent_id="b",
            wallet_address="0xabc",
            private_key="pk",  # type: ignore[arg-type]
        )

        settings = account.exchange_settings(base)

        assert settings.wallet_address == "0xabc"
        assert settings.private_key.get_secret_value() == "pk"
        assert settings.api_key.get_secret_value() == ""
        assert settings.base_url == "https://fapi.test"

    def test_app_settings_nested(self) -> None:
        settings = AppSettings(
            arena=ArenaSettings(agents=[AgentAccountSettings(name="alpha", agent_id="a")])
        )
        assert settings.arena.agents[0].provider == "unknown"
