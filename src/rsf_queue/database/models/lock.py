"""Lock table used where the store has no native advisory locks."""

from __future__ import annotations

import datetime as dt

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from rsf_queue.database.base import Base, utcnow
from rsf_queue.database.types import UTCDateTime


class JobLockEntity(Base):
    __tablename__ = "job_locks"

    lock_key: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    owner: Mapped[str] = mapped_column(String(255), nullable=False)
    acquired_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )


__all__ = ["JobLockEntity"]
