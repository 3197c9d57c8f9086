"""FastAPI authentication dependencies."""

from __future__ import annotations

import secrets

import jwt
from fastapi import Header, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from promominer.auth.jwt import verify_token
from promominer.config import get_settings

_bearer = HTTPBearer()


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
) -> str:
    """
    Verify the bearer token and return its subject as the miner user id.

    Raises 401 on any verification failure.
    """
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    return str(payload["sub"])


async def require_internal_key(
    x_internal_key: str | None = Header(default=None),
) -> None:
    """Guard for service-to-service endpoints (prize wheel, lottery, referrals)."""
    expected = get_settings().internal_api_key
    if not x_internal_key or not secrets.compare_digest(x_internal_key, expected):
        raise HTTPException(status_code=403, detail="Invalid internal key")
