"""
Health check route
"""

from fastapi import APIRouter, Depends

from rsf_queue.core.container import ServiceContainer
from rsf_queue.security.dependencies import get_services

router = APIRouter()


@router.get("/health")
async def health(services: ServiceContainer = Depends(get_services)):
    """liveness plus worker state"""
    await services.database.check_connection()
    return {
        "status": "ok",
        "version": services.settings.app_version,
        "worker_running": services.worker.is_running,
        "tasks_in_flight": services.worker.in_flight,
        "subscribers": services.broadcaster.subscriber_count,
    }
