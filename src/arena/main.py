"""Entry point for the arena aggregation engine.

Composition root: every shared component is constructed here once and
injected, so there are no process-wide singletons.

Component wiring order (in build_components):
1. PrecisionCatalog (shared by every client on the exchange)
2. DecisionDatabase + SqliteDecisionStore
3. DecisionReconciler
4. AsterClient per tracked agent (signer chosen from its credentials)
5. SnapshotCache x 2 (agent snapshot, static views)
6. ArenaService

Running the module polls the agent snapshot on an interval and logs a
one-line summary per agent until SIGINT/SIGTERM.
"""

import asyncio
import signal
from dataclasses import dataclass

import aiohttp

from arena.agents import ArenaService, TrackedAgent
from arena.cache.snapshot import SnapshotCache
from arena.config import AgentAccountSettings, AppSettings, ExchangeSettings, PrecisionSettings
from arena.exchange.aster_client import AsterClient
from arena.exchange.precision import PrecisionCatalog
from arena.logging import get_logger, setup_logging
from arena.reconcile.matcher import DecisionReconciler
from arena.reconcile.store import DecisionDatabase, SqliteDecisionStore
from arena.signing import build_signer, credentials_from_settings

logger = get_logger("arena.main")


def build_catalog(settings: PrecisionSettings) -> PrecisionCatalog:
    return PrecisionCatalog(
        validity_seconds=settings.validity_seconds,
        default_quantity_decimals=settings.default_quantity_decimals,
        default_price_decimals=settings.default_price_decimals,
    )


def build_exchange_client(
    settings: ExchangeSettings,
    catalog: PrecisionCatalog,
    name: str = "",
    session: aiohttp.ClientSession | None = None,
) -> AsterClient:
    """Build a client whose signer matches the configured credentials.

    Raises:
        ConfigurationError: If the credentials are missing or malformed.
    """
    credentials = credentials_from_settings(settings)
    signer = build_signer(credentials, recv_window_ms=settings.recv_window_ms)
    logger.info(
        "exchange_client_built",
        agent=name or None,
        auth=type(signer).__name__,
        api=signer.api_version,
    )
    return AsterClient(settings, signer, catalog, name=name, session=session)


def _agent_accounts(settings: AppSettings) -> list[AgentAccountSettings]:
    if settings.arena.agents:
        return list(settings.arena.agents)
    name = settings.arena.default_agent_name
    return [AgentAccountSettings(name=name, agent_id=name)]


@dataclass
class ArenaComponents:
    """Everything build_components wires together, for lifecycle management."""

    service: ArenaService
    database: DecisionDatabase
    clients: list[AsterClient]

    async def close(self) -> None:
        for client in self.clients:
            await client.close()
        await self.database.close()


async def build_components(settings: AppSettings) -> ArenaComponents:
    """Build and connect the full dependency graph from settings."""
    catalog = build_catalog(settings.precision)

    database = DecisionDatabase(settings.decisions.db_path)
    await database.connect()
    store = SqliteDecisionStore(database)
    reconciler = DecisionReconciler(store, settings.reconcile)

    agents: list[TrackedAgent] = []
    clients: list[AsterClient] = []
    try:
        for account in _agent_accounts(settings):
            client = build_exchange_client(
                account.exchange_settings(settings.exchange),
                catalog,
                name=account.name,
            )
            clients.append(client)
            agents.append(
                TrackedAgent(
                    name=account.name,
                    agent_id=account.agent_id,
                    client=client,
                    trading_pairs=tuple(account.trading_pairs),
                    provider=account.provider,
                    model=account.model,
                )
            )
    except Exception:
        await database.close()
        raise

    service = ArenaService(
        agents=agents,
        reconciler=reconciler,
        store=store,
        snapshot_cache=SnapshotCache(settings.cache.snapshot_ttl_seconds, name="agents"),
        static_cache=SnapshotCache(settings.cache.static_ttl_seconds, name="static"),
        settings=settings.arena,
    )
    return ArenaComponents(service=service, database=database, clients=clients)


async def poll(service: ArenaService, interval_seconds: float, stop: asyncio.Event) -> None:
    """Refresh and log the agent snapshot until stop is set."""
    while not stop.is_set():
        try:
            snapshots = await service.get_agent_snapshots()
        except Exception as e:
            logger.error("arena_poll_failed", error=str(e))
        else:
            for snapshot in snapshots:
                logger.info(
                    "arena_agent",
                    agent=snapshot.name,
                    wallet_balance=str(snapshot.wallet_balance),
                    unrealized_pnl=str(snapshot.unrealized_pnl),
                    pnl_1d=str(snapshot.pnl_1d.trading_pnl) if snapshot.pnl_1d else None,
                    pnl_7d=str(snapshot.pnl_7d.trading_pnl) if snapshot.pnl_7d else None,
                )
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass


async def run() -> None:
    """Run the arena poller."""
    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format)

    components = await build_components(settings)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info(
        "arena_started",
        agents=len(components.clients),
        poll_interval=settings.arena.poll_interval_seconds,
    )
    try:
        await poll(components.service, settings.arena.poll_interval_seconds, stop)
    finally:
        await components.close()
        logger.info("arena_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
