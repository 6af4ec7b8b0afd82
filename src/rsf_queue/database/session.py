"""Database engine and session management.

Components receive a :class:`Database` at construction instead of importing a
module-level engine, so tests can hand each case its own isolated store.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from rsf_queue.config import Settings
from rsf_queue.database.base import Base


@dataclass
class Database:
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    async def create_all(self) -> None:
        async with self.engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    async def check_connection(self) -> None:
        async with self.engine.connect() as connection:
            await connection.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        await self.engine.dispose()


def _install_sqlite_pragmas(engine: AsyncEngine, settings: Settings) -> None:
    journal_mode = settings.sqlite_journal_mode.upper()
    synchronous = settings.sqlite_synchronous.upper()
    busy_timeout_ms = max(settings.sqlite_busy_timeout_seconds, 1) * 1000

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record) -> None:  # pragma: no cover - connection setup
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms}")
        cursor.execute(f"PRAGMA journal_mode={journal_mode}")
        cursor.execute(f"PRAGMA synchronous={synchronous}")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_database(settings: Settings, dsn: Optional[str] = None) -> Database:
    """Build the async engine and session factory described by ``settings``."""

    url = dsn or settings.database_dsn_async
    engine_kwargs: Dict[str, Any] = {
        "echo": settings.db_echo,
        "pool_pre_ping": True,
    }

    if url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"timeout": settings.sqlite_busy_timeout_seconds}
        if dsn is None:
            Path(settings.db_path).parent.mkdir(parents=True, exist_ok=True)
    elif url.startswith("postgresql") and settings.db_schema:
        engine_kwargs["connect_args"] = {
            "server_settings": {"search_path": settings.db_schema}
        }

    engine = create_async_engine(url, **engine_kwargs)
    if url.startswith("sqlite"):
        _install_sqlite_pragmas(engine, settings)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    return Database(engine=engine, session_factory=session_factory)


__all__ = ["Database", "create_database"]
