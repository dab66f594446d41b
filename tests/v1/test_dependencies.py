# tests/v1/test_dependencies.py
"""Tests for API dependencies module."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from fastapi import HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from secret_santa.api.v1.dependencies import get_current_user
from secret_santa.core.security import create_access_token
from secret_santa.core.settings import settings


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestGetCurrentUser:
    """Test the bearer token dependency."""

    def test_valid_token(self, db_session, owner):
        user = get_current_user(_credentials(create_access_token(owner.id)), db_session)
        assert user.id == owner.id

    def test_unknown_user(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(_credentials(create_access_token(uuid.uuid4())), db_session)
        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
        assert exc_info.value.detail == "User not found"

    def test_garbage_token(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(_credentials("not-a-token"), db_session)
        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED

    def test_expired_token(self, db_session, owner):
        token = jwt.encode(
            {"sub": str(owner.id), "exp": datetime.now(UTC) - timedelta(minutes=1)},
            settings.secret_key,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(_credentials(token), db_session)
        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED

    def test_token_signed_with_other_key(self, db_session, owner):
        token = jwt.encode({"sub": str(owner.id)}, "some-other-key", algorithm="HS256")
        with pytest.raises(HTTPException):
            get_current_user(_credentials(token), db_session)

    def test_non_uuid_subject(self, db_session):
        token = jwt.encode({"sub": "alice"}, settings.secret_key, algorithm=settings.jwt_algorithm)
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(_credentials(token), db_session)
        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
