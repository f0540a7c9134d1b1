"""
Unit tests for authentication dependencies and role checks.
"""

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from auth.dependencies import UserContext, get_current_user, get_token_payload
from auth.permissions import require_patient, require_provider, require_roles
from models import UserRole
from services.jwt_service import TokenPayload, jwt_service


def _token_for(user, role=None):
    return TokenPayload(
        sub=str(user.id), email=user.email, role=role or user.role, name=user.full_name
    )


class TestGetTokenPayload:

    def test_no_credentials(self):
        assert get_token_payload(None) is None

    def test_valid_bearer(self):
        token = jwt_service.create_access_token(
            TokenPayload(sub="7", email="a@example.com", role="patient", name="A")
        )
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)

        payload = get_token_payload(credentials)
        assert payload is not None
        assert payload.user_id == 7


class TestGetCurrentUser:

    def test_active_user(self, db_session, provider):
        context = get_current_user(_token_for(provider), db_session)

        assert context.user_id == provider.id
        assert context.actor.role == UserRole.provider

    def test_missing_payload(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(None, db_session)
        assert exc_info.value.status_code == 401

    def test_bad_subject(self, db_session, provider):
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(
                TokenPayload(sub="abc", email=provider.email, role="provider", name="x"), db_session
            )
        assert exc_info.value.detail == "Invalid token subject"

    def test_unknown_user(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(TokenPayload(sub="9999", email="ghost@example.com", role="patient", name="G"), db_session)
        assert exc_info.value.status_code == 401

    def test_deactivated_user(self, db_session, make_user):
        user = make_user("patient", is_active=False)
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(_token_for(user), db_session)
        assert exc_info.value.detail == "Account is deactivated"

    def test_role_claim_must_match_stored_role(self, db_session, patient):
        """A patient token cannot be replayed with a provider claim."""
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(_token_for(patient, role="provider"), db_session)
        assert exc_info.value.detail == "Token no longer valid"

    def test_actor_carries_role(self):
        context = UserContext(user_id=3, email="ada@example.com", role="admin", name="Ada")
        actor = context.actor
        assert actor.id == 3
        assert actor.is_admin


class TestRoleRequirements:

    def _context(self, role):
        return UserContext(user_id=1, email="u@example.com", role=role, name="U")

    def test_matching_role_passes(self):
        context = self._context("patient")
        assert require_patient()(context) is context

    @pytest.mark.parametrize("dependency_factory,role", [
        (require_patient, "provider"),
        (require_provider, "patient"),
    ])
    def test_other_roles_rejected(self, dependency_factory, role):
        with pytest.raises(HTTPException) as exc_info:
            dependency_factory()(self._context(role))
        assert exc_info.value.status_code == 403

    def test_any_of_several_roles(self):
        dependency = require_roles("provider", "admin")
        assert dependency(self._context("admin")).role == "admin"
        with pytest.raises(HTTPException) as exc_info:
            dependency(self._context("patient"))
        assert exc_info.value.detail == "Access denied: provider or admin role required"
