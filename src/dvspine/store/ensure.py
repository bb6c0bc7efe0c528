"""
Entity Ensurer - make entities and attributes exist, idempotently.

Manifesto:
    Ensuring is probe-first: when the entity or attribute is already there,
    the only request issued is the probe. Creation has to tolerate several
    server conventions, so entity creation walks an ordered list of payload
    shapes and the first one the store accepts wins.

    - **Idempotent:** a second ensure with the same arguments only probes
    - **Ordered strategies:** action (FQ name), action (short name),
      nested PrimaryAttribute, PrimaryNameAttribute hint
    - **Permission aborts:** 401/403 stops the strategy walk at once
    - **Last diagnostic kept:** exhaustion reports what the store last said
    - **Kind never changed:** an existing attribute is left as it is

Architecture:
    ::

        ensure_entity(logical, singular, plural, primary)
          GET EntityDefinitions(LogicalName='<logical>')  200 → EntitySetName
                                                         404 → create
          for strategy in creation_strategies(...):
              POST strategy.path   2xx → re-probe → EntitySetName
                                   401/403 → PermissionDeniedError
                                   other   → remember "<note>: <status> <text>"
          all failed → EntityCreationError(last_diagnostic)

        ensure_attribute(entity, spec)
          GET .../Attributes(LogicalName='<attr>')       200 → no-op
          POST .../Attributes  spec.creation_payload()   non-2xx → StoreError

Tags:
    provisioning, metadata, idempotent, dataverse, dvspine, store
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from dvspine.core.errors import EntityCreationError, PermissionDeniedError, error_for_status
from dvspine.core.logging import get_logger
from dvspine.store.catalog import (
    DEFAULT_LANGUAGE_CODE,
    ODATA_NS,
    AttributeSpec,
    EntitySpec,
    labels,
    to_schema_name,
)
from dvspine.store.client import MetadataClient, StoreResponse

logger = get_logger(__name__)


@dataclass(frozen=True)
class CreationStrategy:
    """One way of asking the store to create an entity."""

    note: str
    path: str
    body: dict[str, Any]


def creation_strategies(
    logical_name: str,
    display_singular: str,
    display_plural: str,
    primary_attribute: str,
    *,
    language_code: int = DEFAULT_LANGUAGE_CODE,
    solution_unique_name: str = "",
) -> list[CreationStrategy]:
    """Entity creation payload shapes, in the order they are tried."""
    entity = {
        "@odata.type": f"{ODATA_NS}.EntityMetadata",
        "SchemaName": to_schema_name(logical_name),
        "DisplayName": labels(display_singular, language_code),
        "DisplayCollectionName": labels(display_plural, language_code),
        "OwnershipType": "UserOwned",
        "HasActivities": False,
        "HasNotes": True,
    }
    primary = {
        "@odata.type": f"{ODATA_NS}.StringAttributeMetadata",
        "SchemaName": to_schema_name(primary_attribute),
        "RequiredLevel": {"Value": "None"},
        "MaxLength": 200,
        "FormatName": {"Value": "Text"},
        "DisplayName": labels(primary_attribute, language_code),
    }

    action: dict[str, Any] = {"Entity": entity, "PrimaryAttribute": primary}
    if solution_unique_name:
        action["SolutionUniqueName"] = solution_unique_name

    return [
        CreationStrategy("Unbound action (FQ name)", f"/{ODATA_NS}.CreateEntity", action),
        CreationStrategy("Unbound action (short name)", "/CreateEntity", action),
        CreationStrategy(
            "EntityDefinitions with nested PrimaryAttribute",
            "/EntityDefinitions",
            {**entity, "PrimaryNameAttribute": primary_attribute, "PrimaryAttribute": primary},
        ),
        CreationStrategy(
            "EntityDefinitions PrimaryNameAttribute only",
            "/EntityDefinitions",
            {**entity, "PrimaryNameAttribute": primary_attribute},
        ),
    ]


class EntityEnsurer:
    """Ensure-or-create for entities and their attributes."""

    def __init__(
        self,
        client: MetadataClient,
        *,
        language_code: int = DEFAULT_LANGUAGE_CODE,
        solution_unique_name: str = "",
    ):
        self.client = client
        self.language_code = language_code
        self.solution_unique_name = solution_unique_name

    # ── Entities ─────────────────────────────────────────────────────

    async def probe_entity(self, logical_name: str) -> dict[str, Any] | None:
        """Entity definition, or ``None`` when the store answers 404."""
        response = await self.client.get(
            f"/EntityDefinitions(LogicalName='{logical_name}')"
            "?$select=MetadataId,LogicalName,EntitySetName"
        )
        if response.ok:
            return response.body if isinstance(response.body, dict) else {}
        if response.status == 404:
            return None
        raise error_for_status(
            response.status,
            f"Probe for entity {logical_name} failed: {response.diagnostic()}",
            diagnostic=response.text,
            entity=logical_name,
        )

    async def ensure_entity(
        self,
        logical_name: str,
        display_singular: str,
        display_plural: str,
        primary_attribute: str,
    ) -> str:
        """Make the entity exist and return its collection id.

        Raises:
            PermissionDeniedError: The store answered 401/403
            EntityCreationError: Every strategy failed, or the created
                entity cannot be found afterwards
        """
        existing = await self.probe_entity(logical_name)
        if existing is not None:
            logger.debug("ensure.entity_exists", entity=logical_name)
            return _collection_id(existing, logical_name)

        last_diagnostic = ""
        for strategy in creation_strategies(
            logical_name,
            display_singular,
            display_plural,
            primary_attribute,
            language_code=self.language_code,
            solution_unique_name=self.solution_unique_name,
        ):
            response = await self.client.post(strategy.path, strategy.body)
            if response.ok:
                logger.info("ensure.entity_created", entity=logical_name, strategy=strategy.note)
                break

            last_diagnostic = f"{strategy.note}: {response.diagnostic()}"
            logger.info(
                "ensure.strategy_failed",
                entity=logical_name,
                strategy=strategy.note,
                status=response.status,
            )
            if response.status in (401, 403):
                raise PermissionDeniedError(
                    f"Not allowed to create entity {logical_name}: {last_diagnostic}",
                    status=response.status,
                    diagnostic=response.text,
                ).with_context(entity=logical_name)
        else:
            raise EntityCreationError(
                f"Failed to create entity {logical_name}. Attempts exhausted. "
                f"Last error: {last_diagnostic}",
                last_diagnostic=last_diagnostic,
            ).with_context(entity=logical_name)

        created = await self.probe_entity(logical_name)
        if created is None:
            raise EntityCreationError(
                f"Entity {logical_name} created but not found afterwards",
                last_diagnostic=last_diagnostic,
            ).with_context(entity=logical_name)
        return _collection_id(created, logical_name)

    async def ensure_entity_spec(self, spec: EntitySpec) -> str:
        return await self.ensure_entity(
            spec.logical_name, spec.display_name, spec.display_collection_name, spec.primary_attribute
        )

    # ── Attributes ───────────────────────────────────────────────────

    async def attribute_exists(self, entity_logical_name: str, attribute_logical_name: str) -> bool:
        response = await self.client.get(
            f"/EntityDefinitions(LogicalName='{entity_logical_name}')"
            f"/Attributes(LogicalName='{attribute_logical_name}')?$select=MetadataId"
        )
        if response.ok:
            return True
        if response.status == 404:
            return False
        raise _attribute_error(response, entity_logical_name, attribute_logical_name, "Probe for")

    async def ensure_attribute(self, entity_logical_name: str, spec: AttributeSpec) -> bool:
        """Make the attribute exist. Returns ``True`` if it was created.

        Raises:
            StoreError: The probe or the creation POST was rejected
        """
        if await self.attribute_exists(entity_logical_name, spec.logical_name):
            logger.debug("ensure.attribute_exists", entity=entity_logical_name, attribute=spec.logical_name)
            return False

        response = await self.client.post(
            f"/EntityDefinitions(LogicalName='{entity_logical_name}')/Attributes",
            spec.creation_payload(self.language_code),
        )
        if not response.ok:
            raise _attribute_error(response, entity_logical_name, spec.logical_name, "Failed to create")

        logger.info(
            "ensure.attribute_created",
            entity=entity_logical_name,
            attribute=spec.logical_name,
            kind=type(spec.kind).__name__,
        )
        return True


def _collection_id(definition: dict[str, Any], logical_name: str) -> str:
    return definition.get("EntitySetName") or definition.get("MetadataId") or logical_name


def _attribute_error(response: StoreResponse, entity: str, attribute: str, verb: str):
    return error_for_status(
        response.status,
        f"{verb} attribute {entity}.{attribute}: {response.diagnostic()}",
        diagnostic=response.text,
        entity=entity,
        attribute=attribute,
    )


__all__ = ["EntityEnsurer", "CreationStrategy", "creation_strategies"]
