"""Bearer token verification and role-based access control."""

from rsf_queue.security.identity import AuthenticatedUser
from rsf_queue.security.rbac import RoleAuthorizer
from rsf_queue.security.tokens import TokenVerifier

__all__ = ["AuthenticatedUser", "RoleAuthorizer", "TokenVerifier"]
