"""Verified identity carried by bearer tokens."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, StrictStr, field_validator


class AuthenticatedUser(BaseModel):
    """Claims every token must carry: ``id``, ``username`` and ``role``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    username: StrictStr
    role: StrictStr

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        # numeric user ids are common in issuers; booleans are not ids
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str) and value:
            return value
        raise ValueError("id claim must be a non-empty string or an integer")
