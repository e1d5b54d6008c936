"""
Access token helpers.

Buyers and sellers log in with email + password and receive a short-lived
HS256 JWT carrying their id and role. Clients present it either as the
`authToken` httpOnly cookie (browser) or as `Authorization: Bearer <jwt>`.

A missing, expired or malformed token is not an error by itself: the caller
is simply treated as a guest. Guards in deps.py decide what guests may do.
"""
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

import bcrypt
import jwt
from fastapi import HTTPException

from config import settings

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _require_secret() -> str:
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=500,
            detail="Server auth misconfigured (JWT secret missing).",
        )
    return settings.jwt_secret


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def extract_token(cookie_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    """Cookie wins over the Authorization header."""
    if cookie_token:
        return cookie_token
    return _parse_bearer_token(authorization)


def decode_access_token(token: str) -> Optional[dict]:
    """Return the token claims, or None when the token is expired or invalid."""
    secret = _require_secret()
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Expired access token presented; continuing as guest")
        return None
    except jwt.InvalidTokenError:
        logger.info("Invalid access token presented; continuing as guest")
        return None


def issue_access_token(*, subject_id: int, role: str) -> str:
    secret = _require_secret()
    now = _now_utc()
    exp = now.replace(microsecond=0) + timedelta(minutes=settings.jwt_access_ttl_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": str(subject_id),
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False
