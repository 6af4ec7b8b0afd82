"""Translation of store failures into DatabaseError."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from rsf_queue.exceptions import DatabaseError


@contextmanager
def database_errors(action: str) -> Iterator[None]:
    """Log and re-raise any SQLAlchemy failure inside the block as DatabaseError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error(f"Database error occurred while {action}: {exc}")
        raise DatabaseError(f"Database error occurred while {action}.") from exc


__all__ = ["database_errors"]
