"""Casbin-backed role checks."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import casbin
from loguru import logger

from rsf_queue.exceptions import AuthorizationError
from rsf_queue.security.identity import AuthenticatedUser

_model_path = Path(__file__).with_name("rbac_model.conf")
_policy_path = Path(__file__).with_name("rbac_policy.csv")


class RoleAuthorizer:
    """Answers "may this role do that action on that resource"."""

    def __init__(self, enforcer: Optional[casbin.Enforcer] = None) -> None:
        self._enforcer = enforcer or casbin.Enforcer(str(_model_path), str(_policy_path))

    def is_allowed(self, user: Optional[AuthenticatedUser], resource: str, action: str) -> bool:
        if user is None:
            return False
        return bool(self._enforcer.enforce(user.role, resource, action))

    def require(
        self,
        user: Optional[AuthenticatedUser],
        resource: str,
        action: str,
        message: Optional[str] = None,
    ) -> AuthenticatedUser:
        if self.is_allowed(user, resource, action):
            return user  # type: ignore[return-value]

        logger.warning(
            f"Permission denied: role={user.role if user else None} "
            f"resource={resource} action={action}"
        )
        raise AuthorizationError(
            message or f"Authorization Error: role may not {action} {resource}."
        )


__all__ = ["RoleAuthorizer"]
