"""
Metadata Client - authenticated HTTP access to the store.

A thin wrapper over ``httpx.AsyncClient`` that issues GET/POST/PATCH/DELETE
against the store's metadata and data endpoints and returns every answer as
a ``StoreResponse``. It performs no retries: retry policy belongs to the
components above it.

Manifesto:
    A non-2xx answer is a normal, expected outcome that the calling
    component must inspect ("does this entity exist?" is answered with a
    404). The client therefore never raises on status. It raises only when
    there is no answer at all: a transport failure or a timeout.

    - **Status is data:** non-2xx comes back as a StoreResponse
    - **No answer is an error:** StoreNetworkError / StoreTimeoutError
    - **One token per call:** caching belongs to the TokenProvider
    - **OData headers:** every call speaks OData 4.0 JSON

Architecture:
    ::

        MetadataClient(base_url, token_provider, scope, timeout)
          ├── get(path)          → StoreResponse(status, headers, body, text)
          ├── post(path, json)   → StoreResponse (OData-EntityId header on create)
          ├── patch(path, json)  → StoreResponse
          └── delete(path)       → StoreResponse

        path is relative to <store_url>/api/data/<api_version>, e.g.
        "/EntityDefinitions(LogicalName='toba_batch')?$select=EntitySetName"

Examples:
    >>> async with MetadataClient.from_settings(settings) as client:
    ...     response = await client.get("/WhoAmI")
    ...     response.ok, response.body["UserId"]

Tags:
    http, httpx, odata, client, dvspine, store
"""

from __future__ import annotations

import re
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from dvspine.core.errors import CredentialError, StoreNetworkError, StoreTimeoutError
from dvspine.core.logging import get_logger
from dvspine.core.settings import StoreSettings
from dvspine.store.auth import TokenProvider, token_provider_from_settings

logger = get_logger(__name__)

_GUID_RE = re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")

ODATA_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json; charset=utf-8",
    "OData-Version": "4.0",
    "OData-MaxVersion": "4.0",
}


@dataclass(frozen=True)
class StoreResponse:
    """One answer from the store.

    Attributes:
        status: HTTP status code
        headers: Response headers (case-insensitive lookup via ``header()``)
        body: Parsed JSON body, or ``None`` when empty or not JSON
        text: Raw response text (the diagnostic for non-2xx answers)
    """

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def rows(self) -> list[dict[str, Any]]:
        """The ``value`` array of an OData collection response."""
        if isinstance(self.body, dict) and isinstance(self.body.get("value"), list):
            return [row for row in self.body["value"] if isinstance(row, dict)]
        return []

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    def created_id(self) -> str | None:
        """Identifier of a created record, from ``OData-EntityId`` or ``Location``."""
        for name in ("OData-EntityId", "Location"):
            value = self.header(name)
            if value:
                match = _GUID_RE.search(value)
                if match:
                    return match.group(0)
        return None

    def diagnostic(self) -> str:
        """``"<status> <text>"`` as shown to operators."""
        return f"{self.status} {self.text}".strip()


class MetadataClient:
    """Authenticated OData client for the store's metadata and data endpoints.

    Args:
        base_url: ``<store_url>/api/data/<api_version>``
        token_provider: Source of bearer tokens
        scope: Token scope (``<store_url>/.default``)
        timeout: Per-call timeout in seconds
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        scope: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.scope = scope
        self.timeout = timeout
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers=ODATA_HEADERS,
        )

    @classmethod
    def from_settings(
        cls,
        settings: StoreSettings,
        token_provider: TokenProvider | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> MetadataClient:
        return cls(
            settings.api_base_url,
            token_provider or token_provider_from_settings(settings),
            settings.token_scope,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> MetadataClient:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Verbs ────────────────────────────────────────────────────────

    async def get(self, path: str) -> StoreResponse:
        return await self.request("GET", path)

    async def post(self, path: str, json: Mapping[str, Any]) -> StoreResponse:
        return await self.request("POST", path, json=json)

    async def patch(self, path: str, json: Mapping[str, Any]) -> StoreResponse:
        return await self.request("PATCH", path, json=json)

    async def delete(self, path: str) -> StoreResponse:
        return await self.request("DELETE", path)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Mapping[str, Any] | None = None,
    ) -> StoreResponse:
        """Issue one authenticated call.

        Raises:
            CredentialError: The token provider failed
            StoreTimeoutError: No answer within the timeout
            StoreNetworkError: Connection-level failure
        """
        url = self._url(path)
        token = await self._token()
        started = time.monotonic()

        try:
            response = await self._http.request(
                method,
                url,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as exc:
            raise StoreTimeoutError(
                f"{method} {path} timed out after {self.timeout}s", cause=exc
            ).with_context(url=url, method=method) from exc
        except httpx.TransportError as exc:
            raise StoreNetworkError(
                f"{method} {path} failed: {exc}", cause=exc
            ).with_context(url=url, method=method) from exc

        result = StoreResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=_parse_body(response),
            text=response.text,
        )
        logger.debug(
            "store.request",
            method=method,
            path=path,
            status=result.status,
            elapsed_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return result

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _token(self) -> str:
        try:
            return await self.token_provider.get_token(self.scope)
        except Exception as exc:
            raise CredentialError(
                f"Could not acquire a token for {self.scope}: {exc}", cause=exc
            ) from exc


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


__all__ = ["MetadataClient", "StoreResponse", "ODATA_HEADERS"]
