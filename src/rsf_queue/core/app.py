"""
FastAPI application factory
"""

from typing import Optional

from fastapi import FastAPI

from rsf_queue.config import Settings, settings as default_settings
from rsf_queue.core.container import ServiceContainer
from rsf_queue.core.exception_handlers import setup_exception_handlers
from rsf_queue.core.lifespan import lifespan
from rsf_queue.core.middleware import setup_middleware
from rsf_queue.core.routes import setup_routes


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ServiceContainer] = None,
) -> FastAPI:
    """create FastAPI application"""
    settings = settings or default_settings
    services = services or ServiceContainer.build(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Priority task queue with live task updates",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.services = services

    setup_middleware(app, settings)
    setup_exception_handlers(app, debug=settings.debug)
    setup_routes(app)

    return app
