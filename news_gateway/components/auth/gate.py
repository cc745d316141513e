"""
Authentication Gate.

Extracts the client credential from the handshake and verifies it. The
credential is looked up, in priority order, in:

1. the ``token`` query parameter
2. an ``Authorization: Bearer <token>`` header
3. a cookie named ``token``

Failure raises Unauthenticated and has no side effects; the caller must
refuse the connection before touching the registry.
"""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

from shared.config.logging import get_logger
from shared.security.auth import JWTTokenVerifier, get_bearer_token
from shared.utils.exceptions import Unauthenticated

if TYPE_CHECKING:
    from starlette.requests import HTTPConnection

logger = get_logger(__name__)

TOKEN_QUERY_PARAM = "token"
TOKEN_COOKIE = "token"


class TokenVerifier(Protocol):
    """Token string in, user identity out; raises Unauthenticated."""

    def verify(self, token: str) -> str:
        ...


class AuthenticationGate:
    """
    Validates the bearer credential presented at connection time.

    Usage:
        gate = AuthenticationGate()
        user_id, source = gate.authenticate(websocket)
    """

    def __init__(self, verifier: TokenVerifier | None = None) -> None:
        self._verifier = verifier or JWTTokenVerifier()

    @staticmethod
    def extract_credential(connection: "HTTPConnection") -> tuple[str | None, str | None]:
        """
        Find the credential in the handshake.

        Returns:
            (token, source) where source is "query", "header" or "cookie";
            (None, None) when no credential is present.
        """
        token = connection.query_params.get(TOKEN_QUERY_PARAM)
        if token:
            return token, "query"

        token = get_bearer_token(connection.headers.get("authorization"))
        if token:
            return token, "header"

        token = connection.cookies.get(TOKEN_COOKIE)
        if token:
            return token, "cookie"

        return None, None

    def authenticate(self, connection: "HTTPConnection") -> tuple[str, str]:
        """
        Return the user identity and where the credential came from.

        Raises:
            Unauthenticated: "Authenticated required" when no credential is
                present, "Invalid token" when verification fails.
        """
        token, source = self.extract_credential(connection)
        if token is None or source is None:
            raise Unauthenticated(Unauthenticated.MISSING)

        user_id = self._verifier.verify(token)
        logger.debug("Client authenticated", user_id=user_id, credential_source=source)
        return user_id, source
