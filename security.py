"""Password hashing, access tokens and the FastAPI dependencies that resolve the caller."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, status
from loguru import logger

from config import Settings
from models import User

ACCESS_TOKEN_COOKIE = "access_token"
# bcrypt refuses input longer than this many bytes
BCRYPT_MAX_BYTES = 72


def hash_password(plain_password: str) -> str:
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    encoded = plain_password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        # Such a password could never have been stored
        return False
    return bcrypt.checkpw(encoded, hashed_password.encode("utf-8"))


def create_access_token(user: User, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "name": user.name,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_key_bytes, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str, settings: Settings) -> uuid.UUID:
    """Verify signature and expiry; return the user id carried in ``sub``.

    Raises ``jwt.InvalidTokenError`` for anything that is not a valid token
    issued by this service.
    """
    payload = jwt.decode(
        token,
        settings.jwt_key_bytes,
        algorithms=[settings.JWT_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )
    try:
        return uuid.UUID(payload["sub"])
    except (TypeError, ValueError) as exc:
        raise jwt.InvalidTokenError("sub is not a user id") from exc


class UserLookup(Protocol):
    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]: ...


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_user_lookup(request: Request) -> UserLookup:
    return request.app.state.user_service


def _extract_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization")
    if header:
        scheme, _, credentials = header.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
        return None
    return request.cookies.get(ACCESS_TOKEN_COOKIE) or None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> uuid.UUID:
    token = _extract_token(request)
    if token is None:
        raise _unauthorized("Not authenticated")
    try:
        return decode_access_token(token, settings)
    except jwt.InvalidTokenError as exc:
        logger.info(f"Rejected access token on {request.url.path}: {exc}")
        raise _unauthorized("Invalid or expired token") from exc


async def get_current_user(
    user_id: uuid.UUID = Depends(get_current_user_id),
    users: UserLookup = Depends(get_user_lookup),
) -> User:
    user = await users.get_user_by_id(user_id)
    if user is None:
        raise _unauthorized("User no longer exists")
    return user
