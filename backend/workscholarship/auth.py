"""Authentication helpers and FastAPI security dependencies.

This module decodes bearer JWTs, resolves them to a `User` and exposes the
`require_admin` dependency that guards every cycle endpoint. Tokens are
issued out of band by `scripts/create_user.py`.
"""

import uuid
from datetime import timedelta

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import clock, models, repositories
from .config import settings
from .database import get_session
from .enums import UserRole

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user: models.User, expires_hours: int = 24) -> str:
    """Sign a token carrying the user's id, email and role."""
    expire = clock.utcnow() + timedelta(hours=expires_hours)
    payload = {
        "user_id": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "exp": expire,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail='invalid token')


def get_current_user(credentials: HTTPAuthorizationCredentials = Security(bearer_scheme),
                     session: Session = Depends(get_session)) -> models.User:
    """FastAPI dependency that returns the authenticated, active user."""
    if credentials is None:
        raise HTTPException(status_code=401, detail='missing bearer token')
    payload = decode_token(credentials.credentials)
    try:
        user_id = uuid.UUID(payload.get('user_id', ''))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail='invalid token payload')
    user = repositories.UserRepository(session).get(user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail='user not found')
    return user


def require_admin(user: models.User = Depends(get_current_user)) -> models.User:
    if user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail='admin role required')
    return user
