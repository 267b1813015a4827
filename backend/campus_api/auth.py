"""Authentication helpers and FastAPI security dependencies.

This module provides utilities to decode JWT tokens, a FastAPI
dependency `get_current_user` that validates the bearer token and
returns the corresponding `User` model instance from the database, and
`restrict_to` which builds a dependency that only admits given roles.

Failures raise the typed errors from `errors.py`, which the application
maps to 401 responses.
"""

from typing import Optional

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from sqlmodel import Session
from .config import settings
from .database import get_session
from .errors import UnauthenticatedError, UnauthorizedError
from . import models, repositories

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises
    `UnauthenticatedError` on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError('Your token has expired. Please log in again')
    except jwt.InvalidTokenError:
        raise UnauthenticatedError('Invalid token. Please log in again')


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
) -> models.User:
    """FastAPI dependency that returns the authenticated user.

    The function extracts the bearer token from the request, decodes it
    and performs a database lookup to return the `User` object.
    """
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError()
    payload = decode_token(credentials.credentials)
    user_id = payload.get('user_id')
    if not user_id:
        raise UnauthenticatedError('Invalid token payload')
    user = repositories.UserRepository(db).get(user_id)
    if not user:
        raise UnauthenticatedError('The user belonging to this token no longer exists')
    return user


def restrict_to(*roles: str):
    """Build a dependency admitting only users whose role is in `roles`."""
    allowed = {r.value if isinstance(r, models.Role) else r for r in roles}

    def _check_role(user: models.User = Depends(get_current_user)) -> models.User:
        if user.role not in allowed:
            raise UnauthorizedError()
        return user

    return _check_role
