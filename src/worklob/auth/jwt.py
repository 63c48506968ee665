"""
RS256 bearer tokens for marketplace sessions.

A token names the user (``sub``), their username and which identity
variant they signed in with (``auth_method``). There is no refresh flow:
clients sign in again once ``exp`` passes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import jwt

from worklob.config import get_settings

AuthMethod = Literal["wallet", "email"]


@dataclass(frozen=True)
class KeyPair:
    private_pem: str
    public_pem: str


@lru_cache
def signing_keys() -> KeyPair:
    """PEM pair read from the configured paths, cached for the process."""
    settings = get_settings()
    return KeyPair(
        private_pem=Path(settings.jwt_private_key_path).read_text(),
        public_pem=Path(settings.jwt_public_key_path).read_text(),
    )


def reset_keys() -> None:
    """Forget cached keys so the next token re-reads them."""
    signing_keys.cache_clear()


def create_access_token(user_id: int, auth_method: AuthMethod, username: str | None = None) -> str:
    settings = get_settings()
    issued = datetime.now(timezone.utc)
    claims: dict[str, Any] = {
        "sub": str(user_id),
        "auth_method": auth_method,
        "type": "access",
        "iss": settings.jwt_issuer,
        "iat": issued,
        "exp": issued + timedelta(minutes=settings.jwt_access_token_expire_minutes),
    }
    if username:
        claims["username"] = username
    return jwt.encode(claims, signing_keys().private_pem, algorithm=settings.jwt_algorithm)


def verify_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Decode a token signed by this server.

    Raises:
        jwt.InvalidTokenError: Bad signature, foreign issuer, expired, or
            a ``type`` claim other than ``expected_type``.
    """
    settings = get_settings()
    try:
        claims: dict[str, Any] = jwt.decode(
            token,
            signing_keys().public_pem,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": ["sub", "exp", "iss"]},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    token_type = claims.get("type")
    if token_type != expected_type:
        msg = f"Expected token type '{expected_type}', got '{token_type}'"
        raise jwt.InvalidTokenError(msg)
    return claims
