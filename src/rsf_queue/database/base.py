"""Declarative base and shared column helpers."""

from __future__ import annotations

import datetime as dt

from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from rsf_queue.database.types import UTCDateTime


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Base(DeclarativeBase):
    """Base class for all rsf_queue entities."""


class TimestampMixin:
    """created_at / updated_at stamped in Python with microsecond precision."""

    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        nullable=False,
    )


__all__ = ["Base", "TimestampMixin", "utcnow"]
