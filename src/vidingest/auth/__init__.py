"""Token acquisition for outbound service calls."""

from .token_provider import AccessToken, ClientCredentialsTokenProvider, TokenProvider

__all__ = ["AccessToken", "ClientCredentialsTokenProvider", "TokenProvider"]
