"""FastAPI dependencies for authentication and permission checks."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi_users.authentication import BearerTransport

from rsf_queue.core.container import ServiceContainer
from rsf_queue.security.identity import AuthenticatedUser


# tokens are issued by the login service; tokenUrl only feeds the OpenAPI docs
bearer_transport = BearerTransport(tokenUrl="/api/v1/auth/login")


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


async def get_current_user(
    token: Optional[str] = Depends(bearer_transport.scheme),
    services: ServiceContainer = Depends(get_services),
) -> AuthenticatedUser:
    """Resolve the bearer token; AuthenticationError becomes a 401."""
    return services.token_verifier.verify(token)


def require_permission(resource: str, action: str):
    """Build a dependency that admits users whose role may ``action`` ``resource``."""

    async def dependency(
        user: AuthenticatedUser = Depends(get_current_user),
        services: ServiceContainer = Depends(get_services),
    ) -> AuthenticatedUser:
        return services.authorizer.require(
            user,
            resource,
            action,
            "Forbidden: insufficient permissions.",
        )

    return dependency


__all__ = ["bearer_transport", "get_services", "get_current_user", "require_permission"]
