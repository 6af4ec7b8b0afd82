"""
Main entry point for the rsf_queue package.

Usage:
    python -m rsf_queue [--web|--init-db|--version]
"""

import argparse
import asyncio
import sys


def main():
    """Main entry point for the package."""
    parser = argparse.ArgumentParser(
        description="RSF Task Queue - priority job queue with live task updates"
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version information",
    )
    parser.add_argument(
        "--web",
        action="store_true",
        help="Start web server and worker (default)",
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing database tables and exit",
    )

    args = parser.parse_args()

    if args.version:
        from rsf_queue import __version__
        print(f"rsf-task-queue version {__version__}")
        return 0

    if args.init_db:
        from rsf_queue.config import settings
        from rsf_queue.core.logging import setup_logging
        from rsf_queue.database import create_database

        setup_logging(settings)
        database = create_database(settings)

        async def _init() -> None:
            try:
                await database.create_all()
            finally:
                await database.dispose()

        asyncio.run(_init())
        return 0

    from rsf_queue.server.web import main as web_main
    return web_main()


if __name__ == "__main__":
    sys.exit(main())
