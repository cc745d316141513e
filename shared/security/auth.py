"""
Credential verification for client connections and the control API.

Client tokens are HS256 JWTs issued by the main application and signed
with JWT_SECRET. The control API uses a separate pre-shared secret.
"""

from __future__ import annotations

import hmac
import time
from typing import Any

import jwt

from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.utils.exceptions import Unauthenticated

logger = get_logger(__name__)

# Claims that may carry the user identity, in lookup order
IDENTITY_CLAIMS: tuple[str, ...] = ("userId", "id", "sub")


def sign_jwt(
    payload: dict[str, Any],
    ttl_seconds: int | None = 3600,
    secret: str | None = None,
) -> str:
    """
    Sign a client token.

    The gateway never issues tokens in production; this exists for tooling
    and tests. ``ttl_seconds=None`` produces a token without ``exp``.
    """
    now = int(time.time())
    data = {**payload, "iat": now}
    if ttl_seconds is not None:
        data["exp"] = now + ttl_seconds
    return jwt.encode(data, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify signature and expiry and return the decoded claims.

    ``exp`` is enforced when present but not required.

    Raises:
        Unauthenticated: If the token is malformed, badly signed or expired.
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        logger.info("Client token expired")
        raise Unauthenticated(Unauthenticated.INVALID)
    except jwt.InvalidTokenError as e:
        # Log the actual error, return the generic message to the client
        logger.warning("JWT validation failed", error=str(e))
        raise Unauthenticated(Unauthenticated.INVALID)


def extract_user_id(claims: dict[str, Any]) -> str:
    """
    Return the user identity embedded in verified claims as a string.

    Raises:
        Unauthenticated: If no identity claim holds a usable value.
    """
    for claim in IDENTITY_CLAIMS:
        value = claims.get(claim)
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, (int, str)) and str(value).strip():
            return str(value).strip()
    logger.warning("Token has no usable identity claim", claims=sorted(claims))
    raise Unauthenticated(Unauthenticated.INVALID)


class JWTTokenVerifier:
    """Default token verifier: token string in, user identity out."""

    def verify(self, token: str) -> str:
        return extract_user_id(verify_jwt(token))


def get_bearer_token(authorization: str | None) -> str | None:
    """
    Extract bearer token from an Authorization header value.

    Returns None when the header is absent or not a Bearer credential.
    """
    if not authorization:
        return None
    scheme, _, credential = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return credential.strip() or None


def verify_internal_token(presented: str | None, expected: str | None = None) -> bool:
    """
    Constant-time comparison of the control API secret.

    An empty configured secret rejects everything.
    """
    expected = settings.internal_token if expected is None else expected
    if not expected or not presented:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))
