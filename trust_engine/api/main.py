"""
Application entry point for the trust engine HTTP service.

Wires settings, storage, the HTTP fetcher, the chain gateway and the
sweep scheduler into one TrustEngine held in app state.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from trust_engine.adapters.alerts.console import ConsoleAlertSink
from trust_engine.adapters.chain.rpc import RpcChainGateway
from trust_engine.adapters.http.fetcher import HttpxResourceFetcher
from trust_engine.adapters.repository.memory import InMemoryVerificationRepository
from trust_engine.adapters.repository.postgres import PostgresVerificationRepository, run_migrations
from trust_engine.adapters.scheduler import SweepScheduler
from trust_engine.api.errors import install_error_handlers
from trust_engine.api.v1 import router as v1_router
from trust_engine.config.settings import Settings, get_settings
from trust_engine.domain.engine import TrustEngine
from trust_engine.domain.lifecycle import dispute_policy_for
from trust_engine.domain.ports import AlertSink, ChainGateway, ResourceFetcher, VerificationRepository
from trust_engine.domain.scoring import TrustScoreEngine

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Trust & Verification Engine v1 - Claims, challenges, proofs and community validation",
    },
]


def build_engine(
    settings: Settings,
    repository: VerificationRepository,
    fetcher: ResourceFetcher,
    chain: ChainGateway,
    alerts: AlertSink | None = None,
) -> TrustEngine:
    """Build the engine from settings around the given adapters."""
    return TrustEngine.create(
        repository,
        fetcher,
        chain,
        alerts=alerts,
        scores=TrustScoreEngine.for_scheme(settings.weight_scheme),
        challenge_ttl=settings.challenge_ttl,
        rate_limits=settings.rate_limit_policies(),
        dispute_policy=dispute_policy_for(
            settings.dispute_policy, settings.dispute_report_quota, settings.dispute_min_reputation
        ),
        sweep_max_workers=settings.sweep_max_workers,
        check_timeout=settings.check_timeout_seconds,
        moderators=settings.moderator_ids,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates the repository (and database pool + migrations for postgres)
    - Builds the engine and stores it in app state
    - Starts the background sweep scheduler when the monitor is enabled
    - Stops the scheduler and closes the pool and HTTP client on shutdown
    """
    settings = get_settings()
    logging.getLogger("trust_engine").setLevel(settings.log_level.upper())

    logger.info("Starting application...")

    pool: ConnectionPool | None = None
    repository: VerificationRepository
    if settings.storage_backend == "postgres":
        logger.info("Connecting to database...")
        pool = ConnectionPool(
            conninfo=settings.database_url,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
        )
        logger.info("Running database migrations...")
        run_migrations(pool)
        repository = PostgresVerificationRepository(pool)
    else:
        repository = InMemoryVerificationRepository()

    fetcher = HttpxResourceFetcher(
        timeout=settings.fetch_timeout_seconds, max_bytes=settings.fetch_max_bytes
    )
    chain = RpcChainGateway.from_endpoints(
        ethereum_rpc_url=settings.ethereum_rpc_url,
        polygon_rpc_url=settings.polygon_rpc_url,
        ton_api_url=settings.ton_api_url,
        timeout=settings.chain_timeout_seconds,
    )
    engine = build_engine(settings, repository, fetcher, chain, ConsoleAlertSink())

    scheduler = SweepScheduler(engine.run_sweep, settings.sweep_interval_seconds)
    if settings.monitor_enabled:
        scheduler.start()

    # Store collaborators in app state for dependency injection
    app.state.pool = pool
    app.state.engine = engine

    logger.info("Application startup complete: storage=%s", settings.storage_backend)

    yield

    # Shutdown
    logger.info("Shutting down application...")
    scheduler.stop()
    fetcher.close()
    chain.close()
    if pool is not None:
        pool.close()
        logger.info("Database connection pool closed")


app = FastAPI(
    title="crosschain-trust-engine",
    description="Trust & Verification Engine for a cross-chain organization registry",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

install_error_handlers(app)

# Include v1 API routes
app.include_router(v1_router, prefix="/v1")


@app.get("/health")
def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if the application (and database, when used) is healthy.
    """
    pool = getattr(request.app.state, "pool", None)
    if pool is not None:
        with pool.connection() as conn:
            conn.execute("SELECT 1")
        return {"status": "healthy", "storage": "postgres"}
    return {"status": "healthy", "storage": "memory"}
