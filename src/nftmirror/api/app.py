"""FastAPI application factory."""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nftmirror.api.routes import assets, health, listings
from nftmirror.config.logging import configure_logging
from nftmirror.config.settings import Settings, get_settings
from nftmirror.core.exceptions import DatabaseConnectionError
from nftmirror.data.memory.store import InMemoryProjectionStore
from nftmirror.data.protocols import ProjectionStore
from nftmirror.data.supabase.client import close_supabase_client, get_supabase_client
from nftmirror.data.supabase.store import SupabaseProjectionStore
from nftmirror.services.chain.client import close_chain_client, get_chain_client
from nftmirror.services.chain.decoder import LogDecoder
from nftmirror.services.metadata.enricher import get_metadata_enricher, reset_metadata_enricher
from nftmirror.services.projector.projector import ChainStateProjector
from nftmirror.workers.event_ingestion_worker import EventIngestionWorker

log = structlog.get_logger()


async def _create_store(settings: Settings) -> ProjectionStore | None:
    if settings.store_backend == "memory":
        log.warning("projection_store_in_memory")
        return InMemoryProjectionStore()

    try:
        client = await get_supabase_client()
    except DatabaseConnectionError as e:
        log.warning("supabase_connection_skipped", error=str(e))
        return None
    return SupabaseProjectionStore(client)


def _create_worker(settings: Settings, store: ProjectionStore) -> EventIngestionWorker:
    chain = get_chain_client()
    projector = ChainStateProjector(
        store,
        enricher=get_metadata_enricher(chain) if settings.metadata_enabled else None,
        max_attempts=settings.projector_max_attempts,
        concurrency=settings.projector_concurrency,
    )
    return EventIngestionWorker(
        store=store,
        projector=projector,
        chain=chain,
        decoder=LogDecoder.for_contracts(
            settings.nft_contract_address, settings.marketplace_address
        ),
        start_block=settings.start_block,
        confirmations=settings.confirmations,
        batch_size=settings.block_batch_size,
        poll_interval=settings.poll_interval_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    configure_logging()
    log.info("application_starting")
    settings = get_settings()

    store = await _create_store(settings)
    app.state.store = store
    app.state.worker = None
    task: asyncio.Task[None] | None = None

    if store is not None and settings.ingestion_enabled:
        worker = _create_worker(settings, store)
        app.state.worker = worker
        task = asyncio.create_task(worker.run())
    else:
        log.info("event_ingestion_disabled", store_available=store is not None)

    log.info("application_started")

    yield

    # Shutdown
    log.info("application_stopping")
    if app.state.worker is not None:
        await app.state.worker.stop()
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    await reset_metadata_enricher()
    await close_chain_client()
    await close_supabase_client()
    log.info("application_stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Asset and listing projections of an NFT registry and marketplace",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api")
    app.include_router(assets.router, prefix="/api")
    app.include_router(listings.router, prefix="/api")

    return app
