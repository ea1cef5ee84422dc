"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Literal

from pydantic import BaseModel, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExchangeSettings(BaseSettings):
    """Aster futures connection and credential settings.

    Exactly one credential set is used per client: api_key/api_secret
    for key auth, or wallet_address/signer_address/private_key for
    wallet auth. auth_type selects the wallet curve; when left unset it
    is inferred from which fields are populated.
    """

    model_config = SettingsConfigDict(env_prefix="ASTER_")

    base_url: str = "https://fapi.asterdex.com"
    auth_type: Literal["api_key", "ethereum", "solana"] | None = None

    api_key: SecretStr = SecretStr("")
    api_secret: SecretStr = SecretStr("")

    wallet_address: str = ""
    signer_address: str = ""
    private_key: SecretStr = SecretStr("")

    recv_window_ms: int = 50_000
    request_timeout_seconds: float = 30.0


class PrecisionSettings(BaseSettings):
    """Symbol precision catalog behaviour."""

    model_config = SettingsConfigDict(env_prefix="PRECISION_")

    validity_seconds: float = 3600.0  # reload exchange info after 1 hour
    default_quantity_decimals: int = 3
    default_price_decimals: int = 4


class CacheSettings(BaseSettings):
    """TTL settings for the single-flight snapshot caches."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    snapshot_ttl_seconds: float = 300.0  # cross-agent balances + PnL
    static_ttl_seconds: float = 60.0  # roster / configuration views


class ReconcileSettings(BaseSettings):
    """Decision reconciliation lookback parameters."""

    model_config = SettingsConfigDict(env_prefix="RECONCILE_")

    lookback_padding_hours: int = 24  # search this far before the oldest position
    max_history_days: int = 7  # exchange hard limit for userTrades
    trade_fetch_limit: int = 100


_CREDENTIAL_FIELDS = (
    "auth_type",
    "api_key",
    "api_secret",
    "wallet_address",
    "signer_address",
    "private_key",
)


class AgentAccountSettings(BaseModel):
    """One arena agent and the exchange account it trades on.

    With no credential field set the shared ASTER_ credentials are used.
    """

    name: str
    agent_id: str
    trading_pairs: list[str] = []
    provider: str = "unknown"
    model: str = "unknown"

    auth_type: Literal["api_key", "ethereum", "solana"] | None = None
    api_key: SecretStr = SecretStr("")
    api_secret: SecretStr = SecretStr("")
    wallet_address: str = ""
    signer_address: str = ""
    private_key: SecretStr = SecretStr("")

    def exchange_settings(self, base: ExchangeSettings) -> ExchangeSettings:
        """This account's credentials on top of the shared exchange settings.

        An account that sets any credential field replaces the whole
        shared credential set, so modes are never mixed.
        """
        own = {name: getattr(self, name) for name in _CREDENTIAL_FIELDS}
        if not any(
            v.get_secret_value() if isinstance(v, SecretStr) else v for v in own.values()
        ):
            return base
        return base.model_copy(update=own)


class ArenaSettings(BaseSettings):
    """Cross-agent aggregation settings.

    agents is read from ARENA_AGENTS as a JSON list. When empty, a single
    agent named default_agent_name trades on the shared ASTER_ account.
    """

    model_config = SettingsConfigDict(env_prefix="ARENA_")

    agents: list[AgentAccountSettings] = []
    default_agent_name: str = "default"
    poll_interval_seconds: float = 60.0
    trade_history_days: int = 7
    recent_trades_limit: int = 50
    recent_decisions_limit: int = 100
    default_trading_pairs: list[str] = ["BTCUSDT", "ETHUSDT", "SOLUSDT", "ASTERUSDT"]


class DecisionStoreSettings(BaseSettings):
    """Local SQLite decision store location."""

    model_config = SettingsConfigDict(env_prefix="DECISIONS_")

    db_path: str = "data/decisions.db"


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: str = "console"
    exchange: ExchangeSettings = ExchangeSettings()
    precision: PrecisionSettings = PrecisionSettings()
    cache: CacheSettings = CacheSettings()
    reconcile: ReconcileSettings = ReconcileSettings()
    arena: ArenaSettings = ArenaSettings()
    decisions: DecisionStoreSettings = DecisionStoreSettings()
