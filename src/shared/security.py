"""Internal service tokens (HS256 JWT) for trusted backend endpoints."""

import time

import jwt

from shared.config import Settings, get_settings

ALGO = "HS256"


def mint_internal_token(audience: str, settings: Settings | None = None, claims: dict | None = None) -> str:
    settings = settings or get_settings()
    now = int(time.time())
    payload = {
        "iss": settings.internal_token_issuer,
        "aud": audience,
        "iat": now,
        "exp": now + settings.internal_token_ttl_seconds,
        **(claims or {}),
    }
    return jwt.encode(payload, settings.internal_token_secret, algorithm=ALGO)


def verify_internal_token(token: str, audience: str, settings: Settings | None = None) -> dict:
    """Decode and validate a token. Raises ``jwt.InvalidTokenError`` when rejected."""
    settings = settings or get_settings()
    return jwt.decode(
        token,
        settings.internal_token_secret,
        algorithms=[ALGO],
        audience=audience,
        issuer=settings.internal_token_issuer,
        options={"require": ["exp", "iat", "iss"]},
    )
