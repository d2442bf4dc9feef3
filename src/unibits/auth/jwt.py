"""
JWT verification for tokens issued by the identity provider.

HS* algorithms use the shared ``jwt_secret``; RS*/ES* algorithms verify with the
public key at ``jwt_public_key_path``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt

from unibits.config import get_settings

_public_key: str | None = None


def _verification_key() -> str:
    """Key used to verify signatures (cached after first read for asymmetric algorithms)."""
    global _public_key  # noqa: PLW0603
    settings = get_settings()
    if settings.jwt_algorithm.startswith("HS"):
        return settings.jwt_secret
    if _public_key is None:
        _public_key = Path(settings.jwt_public_key_path).read_text()
    return _public_key


def reset_keys() -> None:
    """Reset the cached public key (useful for testing)."""
    global _public_key  # noqa: PLW0603
    _public_key = None


def create_access_token(
    user_id: str,
    display_name: str | None = None,
    *,
    signing_key: str | None = None,
) -> str:
    """
    Create an access token for local tooling and tests.

    Args:
        user_id: Opaque user identifier, stored in ``sub``.
        display_name: Optional ``name`` claim.
        signing_key: Private key for asymmetric algorithms; defaults to the shared secret.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_token_expire_minutes),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    if display_name:
        payload["name"] = display_name
    key = signing_key if signing_key is not None else settings.jwt_secret
    return jwt.encode(payload, key, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or has no subject.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            _verification_key(),
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type", "access") != "access":
        msg = f"Expected token type 'access', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)
    if not str(payload.get("sub", "")).strip():
        msg = "Token has no subject"
        raise jwt.InvalidTokenError(msg)

    return payload
