"""Bearer token helpers.

Tokens are issued by the login flow (outside this service) and carry the
user's UUID in the ``sub`` claim.
"""
from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from secret_santa.core.settings import settings


class InvalidTokenError(ValueError):
    """Raised when a bearer token cannot be verified."""


def create_access_token(subject: uuid.UUID | str, extra_claims: dict[str, str] | None = None) -> str:
    """Create JWT access token for user authentication."""
    to_encode: dict[str, object] = {"sub": str(subject)}
    if extra_claims:
        to_encode.update(extra_claims)
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def decode_access_token(token: str) -> uuid.UUID:
    """Verify a bearer token and return the user id it was issued for.

    Raises:
        InvalidTokenError: If the signature, expiry or subject is invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as err:
        raise InvalidTokenError("Could not validate credentials") from err

    subject = payload.get("sub")
    if not isinstance(subject, str):
        raise InvalidTokenError("Token has no subject")
    try:
        return uuid.UUID(subject)
    except ValueError as err:
        raise InvalidTokenError("Invalid user ID in token") from err
