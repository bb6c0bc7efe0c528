"""dvspine store -- the schema reconciliation and adaptive write engine.

Architecture::

    client.py        MetadataClient: authenticated OData calls, never raises on status
    catalog.py       EntitySpec / AttributeSpec / Kind, default catalog
    ensure.py        EntityEnsurer: probe, then create with ordered strategies
    entity_sets.py   EntitySetResolver: role -> collection id (suffix probing)
    fields.py        pick() and AttributeResolver: field role -> attribute name
    diagnostics.py   Pluggable parser for "Invalid property" diagnostics
    payloads.py      PayloadBuilder and per-entity payload builders
    writer.py        AdaptiveWriter: bounded retry-with-removal
    session.py       StoreSession: wires the above for one session
    provisioning.py  provision / seed / write-test / WhoAmI entry points
    workflows.py     persist_batch
"""

from dvspine.store.auth import (
    AzureCredentialTokenProvider,
    StaticTokenProvider,
    TokenProvider,
    token_provider_from_settings,
)
from dvspine.store.catalog import (
    DEFAULT_CATALOG,
    AttributeSpec,
    Boolean,
    DateOnly,
    DateTime,
    EntitySpec,
    Integer,
    Kind,
    Lookup,
    String,
    Url,
    dependency_order,
    to_schema_name,
)
from dvspine.store.client import MetadataClient, StoreResponse
from dvspine.store.diagnostics import DiagnosticParser, InvalidPropertyParser, RegexDiagnosticParser
from dvspine.store.ensure import EntityEnsurer
from dvspine.store.entity_sets import ROLE_SUFFIXES, DiscoveredEntity, EntitySetResolver
from dvspine.store.fields import AttributeResolver, FieldRole, pick
from dvspine.store.payloads import (
    BatchInput,
    DocumentInput,
    LookupBind,
    PayloadBuilder,
    RecipientInput,
)
from dvspine.store.provisioning import (
    ProvisioningLog,
    ProvisionStep,
    provision,
    seed_businesses,
    seed_sample_data,
    who_am_i,
    write_test,
)
from dvspine.store.session import StoreSession
from dvspine.store.workflows import BatchPersistResult, persist_batch
from dvspine.store.writer import AdaptiveWriter, WriteOutcome

__all__ = [
    "AzureCredentialTokenProvider",
    "StaticTokenProvider",
    "TokenProvider",
    "token_provider_from_settings",
    "DEFAULT_CATALOG",
    "AttributeSpec",
    "Boolean",
    "DateOnly",
    "DateTime",
    "EntitySpec",
    "Integer",
    "Kind",
    "Lookup",
    "String",
    "Url",
    "dependency_order",
    "to_schema_name",
    "MetadataClient",
    "StoreResponse",
    "DiagnosticParser",
    "InvalidPropertyParser",
    "RegexDiagnosticParser",
    "EntityEnsurer",
    "ROLE_SUFFIXES",
    "DiscoveredEntity",
    "EntitySetResolver",
    "AttributeResolver",
    "FieldRole",
    "pick",
    "BatchInput",
    "DocumentInput",
    "LookupBind",
    "PayloadBuilder",
    "RecipientInput",
    "ProvisioningLog",
    "ProvisionStep",
    "provision",
    "seed_businesses",
    "seed_sample_data",
    "who_am_i",
    "write_test",
    "StoreSession",
    "BatchPersistResult",
    "persist_batch",
    "AdaptiveWriter",
    "WriteOutcome",
]
