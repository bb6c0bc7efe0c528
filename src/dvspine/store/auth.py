"""Bearer credential providers for the store.

The engine never acquires tokens interactively; it asks a ``TokenProvider``
for a token with the store's ``.default`` scope before each call. Token
caching and refresh are the provider's concern.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, runtime_checkable

from dvspine.core.errors import MissingConfigError
from dvspine.core.settings import StoreSettings


@runtime_checkable
class TokenProvider(Protocol):
    """Anything that can hand out a bearer token for a set of scopes."""

    async def get_token(self, *scopes: str) -> str:
        ...


class StaticTokenProvider:
    """Returns the same pre-acquired token for every scope."""

    def __init__(self, token: str):
        if not token:
            raise MissingConfigError("access_token")
        self._token = token

    async def get_token(self, *scopes: str) -> str:
        return self._token


class AzureCredentialTokenProvider:
    """Adapts an azure-identity credential to ``TokenProvider``.

    Authentication via Azure DefaultAzureCredential which supports:
    - Service Principal (env vars)
    - Azure CLI (az login)
    - Managed Identity

    The synchronous credential is called in a worker thread so the event
    loop is not blocked while MSAL talks to the identity endpoint.
    """

    def __init__(self, credential: Any = None):
        if credential is None:
            from azure.identity import DefaultAzureCredential

            credential = DefaultAzureCredential()
        self.credential = credential

    async def get_token(self, *scopes: str) -> str:
        access_token = await asyncio.to_thread(self.credential.get_token, *scopes)
        return access_token.token


def token_provider_from_settings(settings: StoreSettings) -> TokenProvider:
    """Static token when ``DVSPINE_ACCESS_TOKEN`` is set, else DefaultAzureCredential."""
    if settings.access_token:
        return StaticTokenProvider(settings.access_token)
    return AzureCredentialTokenProvider()


__all__ = [
    "TokenProvider",
    "StaticTokenProvider",
    "AzureCredentialTokenProvider",
    "token_provider_from_settings",
]
