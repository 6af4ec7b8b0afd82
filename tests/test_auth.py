"""
Tests for bearer token verification and role checks
"""

import pytest
from fastapi_users.jwt import generate_jwt

from rsf_queue.exceptions import AuthenticationError, AuthorizationError
from rsf_queue.security.constants import (
    ACTION_CREATE,
    ACTION_READ,
    ACTION_RECEIVE,
    RESOURCE_JOB_DEFINITIONS,
    RESOURCE_JOB_RESULTS,
    RESOURCE_QUEUE,
    RESOURCE_TASK_UPDATES,
)
from rsf_queue.security.identity import AuthenticatedUser
from rsf_queue.security.tokens import JWT_ALGORITHM, TokenVerifier

SECRET = "unit-test-secret"
AUDIENCE = "rsf-queue:auth"


@pytest.fixture
def verifier():
    return TokenVerifier(SECRET, AUDIENCE, lifetime_seconds=300)


class TestTokenVerifier:

    def test_issued_token_round_trips(self, verifier, manager_user):
        token = verifier.issue(manager_user)
        assert verifier.verify(token) == manager_user

    def test_numeric_id_is_accepted(self, verifier):
        token = generate_jwt(
            {"id": 17, "username": "maria", "role": "manager", "aud": AUDIENCE},
            SECRET,
            300,
            algorithm=JWT_ALGORITHM,
        )
        assert verifier.verify(token).id == "17"

    def test_missing_token(self, verifier):
        with pytest.raises(AuthenticationError) as exc_info:
            verifier.verify(None)
        assert exc_info.value.message == "Authentication token missing."

    def test_expired_token(self, verifier, manager_user):
        token = verifier.issue(manager_user, lifetime_seconds=-60)
        with pytest.raises(AuthenticationError) as exc_info:
            verifier.verify(token)
        assert "expired" in exc_info.value.message

    def test_wrong_secret(self, verifier, manager_user):
        forged = TokenVerifier("other-secret", AUDIENCE, 300).issue(manager_user)
        with pytest.raises(AuthenticationError):
            verifier.verify(forged)

    def test_wrong_audience(self, verifier, manager_user):
        foreign = TokenVerifier(SECRET, "someone-else", 300).issue(manager_user)
        with pytest.raises(AuthenticationError):
            verifier.verify(foreign)

    def test_garbage_token(self, verifier):
        with pytest.raises(AuthenticationError):
            verifier.verify("not.a.jwt")

    @pytest.mark.parametrize(
        "claims",
        [
            {"id": 1, "username": "maria"},
            {"id": 1, "role": "manager"},
            {"username": "maria", "role": "manager"},
            {"id": True, "username": "maria", "role": "manager"},
            {"id": 1, "username": 5, "role": "manager"},
        ],
    )
    def test_malformed_claims(self, verifier, claims):
        token = generate_jwt({**claims, "aud": AUDIENCE}, SECRET, 300, algorithm=JWT_ALGORITHM)
        with pytest.raises(AuthenticationError) as exc_info:
            verifier.verify(token)
        assert exc_info.value.message == "Invalid token payload."


class TestRoleAuthorizer:

    def test_manager_permissions(self, authorizer, manager_user):
        assert authorizer.is_allowed(manager_user, RESOURCE_QUEUE, ACTION_READ)
        assert authorizer.is_allowed(manager_user, RESOURCE_JOB_DEFINITIONS, ACTION_CREATE)
        assert authorizer.is_allowed(manager_user, RESOURCE_TASK_UPDATES, ACTION_RECEIVE)

    def test_consultant_permissions(self, authorizer, consultant_user):
        assert authorizer.is_allowed(consultant_user, RESOURCE_JOB_RESULTS, ACTION_READ)
        assert not authorizer.is_allowed(consultant_user, RESOURCE_QUEUE, ACTION_READ)
        assert not authorizer.is_allowed(consultant_user, RESOURCE_JOB_DEFINITIONS, ACTION_CREATE)
        assert not authorizer.is_allowed(consultant_user, RESOURCE_TASK_UPDATES, ACTION_RECEIVE)

    def test_unknown_role_has_no_permissions(self, authorizer):
        stranger = AuthenticatedUser(id="9", username="eve", role="admin")
        assert not authorizer.is_allowed(stranger, RESOURCE_JOB_RESULTS, ACTION_READ)

    def test_require_raises(self, authorizer, consultant_user):
        with pytest.raises(AuthorizationError) as exc_info:
            authorizer.require(consultant_user, RESOURCE_QUEUE, ACTION_READ, "Forbidden.")
        assert exc_info.value.message == "Forbidden."

    def test_require_anonymous(self, authorizer):
        with pytest.raises(AuthorizationError):
            authorizer.require(None, RESOURCE_QUEUE, ACTION_READ)
