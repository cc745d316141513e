"""Connection authentication."""

from news_gateway.components.auth.gate import AuthenticationGate, TokenVerifier

__all__ = ["AuthenticationGate", "TokenVerifier"]
