"""
Application lifecycle management module
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from rsf_queue.core.container import ServiceContainer


@asynccontextmanager
async def lifespan(app: FastAPI):
    """application lifecycle management"""
    services: ServiceContainer = app.state.services
    logger.info(f"Starting {services.settings.app_name}...")

    try:
        await initialize_services(services)
        yield
    finally:
        await cleanup_services(services)


async def initialize_services(services: ServiceContainer) -> None:
    """prepare the database and start the worker"""

    if services.settings.db_create_tables:
        logger.info("Creating missing database tables...")
        await services.database.create_all()

    logger.info("Checking relational database connectivity...")
    await services.database.check_connection()
    logger.info(f"Database connection ready ({services.database.dialect_name})")
    logger.info(f"Task handlers registered for: {', '.join(services.task_handlers.registered_types)}")

    if services.settings.worker_enabled:
        await services.worker.start()
    else:
        logger.info("Queue worker disabled by configuration")


async def cleanup_services(services: ServiceContainer) -> None:
    """stop the worker, deliver pending updates, release connections"""
    logger.info("Shutting down services...")

    try:
        await services.worker.stop()
        await services.broadcaster.flush()
    finally:
        await services.database.dispose()
        logger.info("Services shut down")
