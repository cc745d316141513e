"""Security helpers: JWT verification and internal token checks."""

from shared.security.auth import (
    JWTTokenVerifier,
    extract_user_id,
    get_bearer_token,
    sign_jwt,
    verify_internal_token,
    verify_jwt,
)

__all__ = [
    "JWTTokenVerifier",
    "extract_user_id",
    "get_bearer_token",
    "sign_jwt",
    "verify_internal_token",
    "verify_jwt",
]
