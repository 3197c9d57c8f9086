"""
Verification of access tokens issued by the main platform.

This service never mints tokens. HS* algorithms verify with the shared
secret; asymmetric algorithms (RS256, ES256, ...) with the platform's public
key read from ``jwt_public_key_path``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jwt

from promominer.config import get_settings

_public_key: str | None = None


def _verification_key() -> str:
    """Secret or public key matching the configured algorithm (cached)."""
    global _public_key  # noqa: PLW0603
    settings = get_settings()
    if settings.jwt_algorithm.upper().startswith("HS"):
        return settings.jwt_secret
    if _public_key is None:
        _public_key = Path(settings.jwt_public_key_path).read_text()
    return _public_key


def reset_keys() -> None:
    """Reset the cached public key (useful for testing)."""
    global _public_key  # noqa: PLW0603
    _public_key = None


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Args:
        token: The encoded JWT string.

    Returns:
        Decoded payload dictionary.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired or has no subject.
    """
    settings = get_settings()
    options: dict[str, Any] = {"require": ["exp", "sub"]}
    if settings.jwt_audience is None:
        options["verify_aud"] = False
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            _verification_key(),
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type", "access") != "access":
        msg = f"Expected token type 'access', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)
    if not str(payload["sub"]).strip():
        msg = "Token has an empty subject"
        raise jwt.InvalidTokenError(msg)

    return payload
