"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from nftmirror.config.settings import Settings, get_settings
from nftmirror.data.protocols import ProjectionStore
from nftmirror.workers.event_ingestion_worker import EventIngestionWorker

SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_store(request: Request) -> ProjectionStore:
    """Projection store created by the app lifespan."""
    store: ProjectionStore | None = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Projection store not available",
        )
    return store


def get_worker(request: Request) -> EventIngestionWorker | None:
    """Ingestion worker, or None when ingestion is disabled."""
    return getattr(request.app.state, "worker", None)


StoreDep = Annotated[ProjectionStore, Depends(get_store)]
WorkerDep = Annotated[EventIngestionWorker | None, Depends(get_worker)]
