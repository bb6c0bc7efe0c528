"""
EntitySet Resolver - role → this deployment's collection identifier.

Deployments are provisioned independently and may use a different publisher
prefix, so collection identifiers ("entity set names") are discovered by
probing metadata for entities whose logical name ends with a role-specific
suffix, falling back to the configured default when nothing matches.

Manifesto:
    Resolution never fails. A probe that returns nothing, a non-2xx answer
    or a transport failure all fall back to the statically configured
    default, and the caller gets a definite collection id.

    - **Ordered suffixes:** first suffix with any match wins
    - **Exact suffix preferred:** ``*_document`` beats ``*document``
    - **Once per session:** results memoised in a SingleFlightCache
    - **Single-flight:** concurrent callers share one probe

Architecture:
    ::

        resolve("documents")
          ├── cache hit?                      → collection id
          └── for suffix in ("batchdocument", "document"):
                GET EntityDefinitions?$select=LogicalName,EntitySetName
                    &$filter=endswith(LogicalName,'_<suffix>')
                rows → prefer LogicalName ending "_<suffix>" (ci) → else rows[0]
              none matched / probe failed      → settings.<role>_set

        describe("toba_documents")            → DiscoveredEntity
          GET EntityDefinitions?$filter=EntitySetName eq 'toba_documents'
          GET EntityDefinitions(LogicalName='…')/Attributes?$select=LogicalName&$top=500

Tags:
    metadata, discovery, entity-set, cache, dataverse, dvspine, store
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from dvspine.core.cache import SingleFlightCache
from dvspine.core.errors import ConfigError, StoreError
from dvspine.core.logging import get_logger
from dvspine.core.settings import StoreSettings
from dvspine.store.client import MetadataClient

logger = get_logger(__name__)

ROLE_SUFFIXES: dict[str, tuple[str, ...]] = {
    "batches": ("batch",),
    "documents": ("batchdocument", "document"),
    "user_acks": ("batchacknowledgement", "useracknowledgement"),
    "user_progresses": ("batchuserprogress", "userprogress"),
    "businesses": ("business",),
    "batch_recipients": ("batchrecipient",),
}


@dataclass(frozen=True)
class DiscoveredEntity:
    """What this session learned about one collection.

    ``attributes`` keeps the order the store listed them in; attribute
    resolution is order-sensitive.
    """

    collection_id: str
    logical_name: str | None = None
    attributes: tuple[str, ...] = field(default_factory=tuple)

    def has(self, attribute: str) -> bool:
        return attribute in self.attributes

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection_id": self.collection_id,
            "logical_name": self.logical_name,
            "attributes": list(self.attributes),
        }


class EntitySetResolver:
    """Maps application roles to collection ids for one session.

    Args:
        client: Metadata client for the session
        settings: Supplies the default collection per role
        suffixes: Role → ordered suffix table (defaults to ``ROLE_SUFFIXES``)
    """

    def __init__(
        self,
        client: MetadataClient,
        settings: StoreSettings,
        suffixes: dict[str, tuple[str, ...]] | None = None,
    ):
        self.client = client
        self.settings = settings
        self.suffixes = dict(suffixes or ROLE_SUFFIXES)
        self._collections: SingleFlightCache[str] = SingleFlightCache()
        self._entities: SingleFlightCache[DiscoveredEntity] = SingleFlightCache()

    @property
    def roles(self) -> list[str]:
        return list(self.suffixes)

    def default_for(self, role: str) -> str:
        defaults = self.settings.default_collections()
        if role not in defaults:
            raise ConfigError(f"No default collection configured for role '{role}'")
        return defaults[role]

    # ── Collections ──────────────────────────────────────────────────

    async def resolve(self, role: str) -> str:
        """Collection id for ``role``; probes at most once per session."""
        if role not in self.suffixes:
            raise ConfigError(f"Unknown entity role '{role}'")
        return await self._collections.get_or_compute(role, lambda: self._probe_role(role))

    async def resolve_all(self) -> dict[str, str]:
        """Resolve every known role. Roles are probed concurrently."""
        roles = self.roles
        collections = await asyncio.gather(*(self.resolve(role) for role in roles))
        return dict(zip(roles, collections))

    async def _probe_role(self, role: str) -> str:
        for suffix in self.suffixes[role]:
            found = await self._probe_suffix(suffix)
            if found:
                logger.debug("entity_sets.resolved", role=role, suffix=suffix, collection=found)
                return found

        fallback = self.default_for(role)
        logger.info("entity_sets.fallback", role=role, collection=fallback)
        return fallback

    async def _probe_suffix(self, suffix: str) -> str | None:
        path = (
            "/EntityDefinitions?$select=LogicalName,EntitySetName"
            f"&$filter=endswith(LogicalName,'_{suffix}')"
        )
        try:
            response = await self.client.get(path)
        except StoreError as e:
            logger.warning("entity_sets.probe_failed", suffix=suffix, error=str(e))
            return None

        if not response.ok:
            logger.debug("entity_sets.probe_rejected", suffix=suffix, status=response.status)
            return None

        rows = [row for row in response.rows if row.get("EntitySetName")]
        if not rows:
            return None

        wanted = f"_{suffix.lower()}"
        for row in rows:
            logical = row.get("LogicalName")
            if isinstance(logical, str) and logical.lower().endswith(wanted):
                return row["EntitySetName"]
        return rows[0]["EntitySetName"]

    # ── Entities ─────────────────────────────────────────────────────

    async def describe(self, collection_id: str) -> DiscoveredEntity:
        """Logical name and attribute set behind ``collection_id`` (cached).

        An unknown collection yields an entity with no attributes; the
        field picker then omits every optional field.
        """
        return await self._entities.get_or_compute(
            collection_id, lambda: self._describe(collection_id)
        )

    async def discover(self, role: str) -> DiscoveredEntity:
        """``describe(resolve(role))``."""
        return await self.describe(await self.resolve(role))

    async def _describe(self, collection_id: str) -> DiscoveredEntity:
        try:
            logical = await self._logical_name_for(collection_id)
            attributes = await self.list_attributes(logical) if logical else ()
        except StoreError as e:
            logger.warning("entity_sets.describe_failed", collection=collection_id, error=str(e))
            return DiscoveredEntity(collection_id)

        logger.debug(
            "entity_sets.described",
            collection=collection_id,
            logical_name=logical,
            attributes=len(attributes),
        )
        return DiscoveredEntity(collection_id, logical, attributes)

    async def _logical_name_for(self, collection_id: str) -> str | None:
        response = await self.client.get(
            "/EntityDefinitions?$select=EntitySetName,LogicalName"
            f"&$filter=EntitySetName eq '{collection_id}'"
        )
        if not response.ok or not response.rows:
            return None
        return response.rows[0].get("LogicalName") or None

    async def list_attributes(self, logical_name: str) -> tuple[str, ...]:
        response = await self.client.get(
            f"/EntityDefinitions(LogicalName='{logical_name}')/Attributes"
            "?$select=LogicalName&$top=500"
        )
        if not response.ok:
            return ()
        return tuple(
            row["LogicalName"] for row in response.rows if isinstance(row.get("LogicalName"), str)
        )

    # ── Session state ────────────────────────────────────────────────

    def forget(self, collection_id: str) -> None:
        """Drop a described entity (after provisioning added attributes)."""
        self._entities.invalidate(collection_id)

    def snapshot(self) -> dict[str, Any]:
        return {
            "collections": self._collections.snapshot(),
            "entities": {k: v.to_dict() for k, v in self._entities.snapshot().items()},
        }


__all__ = ["EntitySetResolver", "DiscoveredEntity", "ROLE_SUFFIXES"]
