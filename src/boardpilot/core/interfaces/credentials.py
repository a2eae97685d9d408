"""
Protocol for outbound credential providers.

The Boards client asks the provider for an Authorization header before
every request and invalidates it when the API answers 401.
"""

from typing import Protocol


class CredentialProviderProtocol(Protocol):
    async def get_auth_header(self) -> str:
        """Return the Authorization header value for the next request."""
        ...

    def invalidate(self) -> None:
        """Drop any cached token. Safe to call when nothing is cached."""
        ...
