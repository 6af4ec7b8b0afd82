"""Bearer token verification.

Token issuance belongs to the login service; this module only checks the
signature, expiry and audience, then validates the identity claims.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import jwt
from fastapi_users.jwt import decode_jwt, generate_jwt
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from rsf_queue.config import Settings
from rsf_queue.exceptions import AuthenticationError
from rsf_queue.security.identity import AuthenticatedUser

JWT_ALGORITHM = "HS256"


class TokenVerifier:
    def __init__(self, secret: str, audience: str, lifetime_seconds: Optional[int] = None) -> None:
        self._secret = secret
        self._audience = audience
        self._lifetime_seconds = lifetime_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenVerifier":
        return cls(
            secret=settings.auth_jwt_secret,
            audience=settings.auth_jwt_audience,
            lifetime_seconds=settings.auth_access_token_lifetime,
        )

    def verify(self, token: Optional[str]) -> AuthenticatedUser:
        """Return the identity carried by ``token`` or raise AuthenticationError."""
        if not token:
            raise AuthenticationError("Authentication token missing.")

        try:
            claims = decode_jwt(token, self._secret, [self._audience], algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Authentication token expired.") from exc
        except jwt.PyJWTError as exc:
            logger.debug(f"Rejected bearer token: {exc}")
            raise AuthenticationError("Invalid authentication token.") from exc

        try:
            return AuthenticatedUser.model_validate(claims)
        except PydanticValidationError as exc:
            raise AuthenticationError("Invalid token payload.") from exc

    def issue(self, user: AuthenticatedUser, lifetime_seconds: Optional[int] = None) -> str:
        """Sign a token for ``user``; used by tooling and tests."""
        data: Dict[str, Any] = {**user.model_dump(), "aud": self._audience}
        lifetime = lifetime_seconds if lifetime_seconds is not None else self._lifetime_seconds
        return generate_jwt(data, self._secret, lifetime, algorithm=JWT_ALGORITHM)


__all__ = ["TokenVerifier", "JWT_ALGORITHM"]
