"""
Route configuration module
"""

from fastapi import FastAPI

from rsf_queue.api.health_routes import router as health_router
from rsf_queue.api.job_definition_routes import router as job_definition_router
from rsf_queue.api.queue_routes import router as queue_router
from rsf_queue.api.websocket_routes import router as ws_router


def setup_routes(app: FastAPI) -> None:
    """set application routes"""

    app.include_router(health_router, prefix="/api/v1", tags=["General"])
    app.include_router(queue_router, prefix="/api/v1", tags=["Task Queue"])
    app.include_router(job_definition_router, prefix="/api/v1", tags=["Job Definitions"])
    app.include_router(ws_router, prefix="/api/v1", tags=["Real-time Updates"])
