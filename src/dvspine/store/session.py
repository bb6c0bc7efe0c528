"""
StoreSession - one provisioning or write session against the store.

Wires the engine's components together around a single MetadataClient and
owns the session's discovered schema. Nothing here is process-wide: a new
session rediscovers collection ids and attribute sets, because the remote
schema can change between runs.

Architecture:
    ::

        StoreSession(settings)
          ├── client        MetadataClient       (httpx.AsyncClient)
          ├── entity_sets   EntitySetResolver    (role → collection, cached)
          ├── fields        AttributeResolver    (field role → attribute)
          ├── ensurer       EntityEnsurer        (ensure-or-create)
          └── writer        AdaptiveWriter       (bounded retry-with-removal)

Examples:
    >>> async with StoreSession(get_settings()) as session:
    ...     collection = await session.entity_sets.resolve("documents")
    ...     outcome = await session.writer.adaptive_create(collection, builder)
"""

from __future__ import annotations

from typing import Any

import httpx

from dvspine.core.logging import get_logger
from dvspine.core.settings import StoreSettings
from dvspine.store.auth import TokenProvider
from dvspine.store.client import MetadataClient
from dvspine.store.diagnostics import DiagnosticParser
from dvspine.store.ensure import EntityEnsurer
from dvspine.store.entity_sets import EntitySetResolver
from dvspine.store.fields import AttributeResolver
from dvspine.store.writer import AdaptiveWriter

logger = get_logger(__name__)


class StoreSession:
    """Composes the engine for one session.

    Args:
        settings: Store configuration
        token_provider: Bearer token source (defaults from settings)
        client: Pre-built client; when given, the session does not close it
        transport: httpx transport for the default client (tests)
        parser: Diagnostic parser for the adaptive writer
    """

    def __init__(
        self,
        settings: StoreSettings,
        *,
        token_provider: TokenProvider | None = None,
        client: MetadataClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        parser: DiagnosticParser | None = None,
    ):
        self.settings = settings
        self._owns_client = client is None
        self.client = client or MetadataClient.from_settings(
            settings, token_provider, transport=transport
        )
        self.entity_sets = EntitySetResolver(self.client, settings)
        self.fields = AttributeResolver(self.entity_sets, settings)
        self.ensurer = EntityEnsurer(
            self.client,
            language_code=settings.language_code,
            solution_unique_name=settings.solution_unique_name,
        )
        self.writer = AdaptiveWriter(
            self.client,
            parser,
            max_attempts=settings.max_write_attempts,
            max_concurrency=settings.write_concurrency,
        )

    async def __aenter__(self) -> StoreSession:
        logger.debug("session.opened", store_url=self.settings.store_url)
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
        logger.debug("session.closed")

    def discovered_schema(self) -> dict[str, Any]:
        """What this session has discovered so far (for diagnostics output)."""
        return self.entity_sets.snapshot()


__all__ = ["StoreSession"]
