"""
Web server entry point: REST API, WebSocket feed and the in-process worker.

uvicorn turns SIGTERM/SIGINT into a lifespan shutdown, which stops the worker
and waits up to WORKER_SHUTDOWN_GRACE_SECONDS for in-flight tasks.
"""

import uvicorn
from loguru import logger

from rsf_queue.config import settings
from rsf_queue.core.app import create_app
from rsf_queue.core.logging import setup_logging


def main() -> int:
    """start the web server"""
    setup_logging(settings)
    app = create_app(settings)

    logger.info(f"Starting {settings.app_name} on {settings.host}:{settings.port}")
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
        access_log=settings.debug,
        timeout_graceful_shutdown=int(settings.worker_shutdown_grace_seconds) + 5,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
