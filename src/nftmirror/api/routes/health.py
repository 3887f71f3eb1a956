"""Health check endpoint with store and ingestion status."""

from typing import Any

from fastapi import APIRouter

from nftmirror.api.dependencies import SettingsDep, StoreDep, WorkerDep

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(settings: SettingsDep, store: StoreDep, worker: WorkerDep) -> dict[str, Any]:
    """
    Health check endpoint.

    Returns:
        dict with overall status, version, store health and ingestion status.
    """
    store_health = await store.health_check()
    ingestion = worker.get_status() if worker else {"running": False, "current_state": "disabled"}

    ingestion_ok = worker is None or ingestion["current_state"] != "error"
    overall_status = "ok" if store_health.get("healthy") and ingestion_ok else "degraded"

    return {
        "status": overall_status,
        "version": settings.app_version,
        "store": store_health,
        "ingestion": ingestion,
    }
