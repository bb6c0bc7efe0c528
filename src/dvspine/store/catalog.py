"""
Attribute Definition Catalog - what the application needs the store to have.

Static, immutable descriptions of entities and their attributes. The catalog
is pure data: it knows how to shape a metadata-creation payload for each
attribute Kind, but never talks to the store. The Entity Ensurer consumes it.

Manifesto:
    Every attribute is created optional (RequiredLevel "None"), so adding it
    to a deployment that already holds data can never break existing rows.
    Once an attribute exists remotely its Kind is never changed here; a
    mismatch is an operator's job.

    - **Frozen specs:** EntitySpec / AttributeSpec are immutable
    - **One payload shape per Kind:** String, Integer, Boolean, DateOnly,
      DateTime, Url, Lookup
    - **Dependency order:** lookup targets are listed before referrers

Architecture:
    ::

        Kind ─┬─ String(max_length)          StringAttributeMetadata  (Text)
              ├─ Url(max_length)             StringAttributeMetadata  (Url)
              ├─ Integer(min_value, max)     IntegerAttributeMetadata
              ├─ Boolean()                   BooleanAttributeMetadata + Yes/No
              ├─ DateOnly()                  DateTimeAttributeMetadata (DateOnly)
              ├─ DateTime(behavior)          DateTimeAttributeMetadata (DateAndTime)
              └─ Lookup(target_entity)       LookupAttributeMetadata  Targets=[...]

        EntitySpec(logical_name, display_name, display_collection_name,
                   primary_attribute, attributes=(AttributeSpec, ...))

Examples:
    >>> to_schema_name("toba_startdate")
    'toba_Startdate'
    >>> spec = AttributeSpec("toba_version", "Version", Integer())
    >>> spec.creation_payload()["@odata.type"]
    'Microsoft.Dynamics.CRM.IntegerAttributeMetadata'

Tags:
    metadata, schema, catalog, dataverse, dvspine, store
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from dvspine.core.errors import ConfigError

DEFAULT_LANGUAGE_CODE = 1033
ODATA_NS = "Microsoft.Dynamics.CRM"


def labels(text: str, language_code: int = DEFAULT_LANGUAGE_CODE) -> dict[str, Any]:
    """Localized label block used by every metadata payload."""
    return {"LocalizedLabels": [{"Label": text, "LanguageCode": language_code}]}


def to_schema_name(logical_name: str) -> str:
    """Schema name for a logical name.

    The publisher prefix (text before the first underscore) is kept as-is and
    every remaining underscore-separated part is capitalised::

        toba_startdate   → toba_Startdate
        toba_due_date    → toba_DueDate
        widget           → Widget
    """
    if not logical_name:
        return logical_name
    prefix, _, rest = logical_name.partition("_")
    if not rest:
        return logical_name[0].upper() + logical_name[1:]
    parts = [part for part in rest.split("_") if part]
    return prefix + "_" + "".join(part[0].upper() + part[1:] for part in parts)


# =============================================================================
# KINDS
# =============================================================================


@dataclass(frozen=True)
class String:
    max_length: int = 4000

    def payload(self) -> dict[str, Any]:
        return {
            "@odata.type": f"{ODATA_NS}.StringAttributeMetadata",
            "MaxLength": self.max_length,
            "FormatName": {"Value": "Text"},
        }


@dataclass(frozen=True)
class Url:
    max_length: int = 1000

    def payload(self) -> dict[str, Any]:
        return {
            "@odata.type": f"{ODATA_NS}.StringAttributeMetadata",
            "MaxLength": self.max_length,
            "FormatName": {"Value": "Url"},
        }


@dataclass(frozen=True)
class Integer:
    min_value: int = 0
    max_value: int = 2147483647

    def payload(self) -> dict[str, Any]:
        return {
            "@odata.type": f"{ODATA_NS}.IntegerAttributeMetadata",
            "Format": "None",
            "MinValue": self.min_value,
            "MaxValue": self.max_value,
        }


@dataclass(frozen=True)
class Boolean:
    true_label: str = "Yes"
    false_label: str = "No"

    def payload(self, language_code: int = DEFAULT_LANGUAGE_CODE) -> dict[str, Any]:
        return {
            "@odata.type": f"{ODATA_NS}.BooleanAttributeMetadata",
            "DefaultValue": False,
            "OptionSet": {
                "@odata.type": f"{ODATA_NS}.BooleanOptionSetMetadata",
                "TrueOption": {"Label": labels(self.true_label, language_code), "Value": 1},
                "FalseOption": {"Label": labels(self.false_label, language_code), "Value": 0},
            },
        }


@dataclass(frozen=True)
class DateOnly:
    def payload(self) -> dict[str, Any]:
        return {
            "@odata.type": f"{ODATA_NS}.DateTimeAttributeMetadata",
            "Format": "DateOnly",
            "DateTimeBehavior": {"Value": "DateOnly"},
        }


@dataclass(frozen=True)
class DateTime:
    behavior: Literal["UserLocal", "TimeZoneIndependent"] = "UserLocal"

    def payload(self) -> dict[str, Any]:
        return {
            "@odata.type": f"{ODATA_NS}.DateTimeAttributeMetadata",
            "Format": "DateAndTime",
            "DateTimeBehavior": {"Value": self.behavior},
        }


@dataclass(frozen=True)
class Lookup:
    target_entity: str

    def payload(self) -> dict[str, Any]:
        return {
            "@odata.type": f"{ODATA_NS}.LookupAttributeMetadata",
            "Targets": [self.target_entity],
        }


Kind = Union[String, Url, Integer, Boolean, DateOnly, DateTime, Lookup]


# =============================================================================
# SPECS
# =============================================================================


@dataclass(frozen=True)
class AttributeSpec:
    """One desired attribute of an entity.

    ``schema_name`` overrides the derived schema name where a deployment's
    installer used mixed case (``toba_DisplayName``).
    """

    logical_name: str
    display_name: str
    kind: Kind
    schema_name: str | None = None

    @property
    def required_level(self) -> str:
        return "None"

    @property
    def is_lookup(self) -> bool:
        return isinstance(self.kind, Lookup)

    def resolved_schema_name(self) -> str:
        return self.schema_name or to_schema_name(self.logical_name)

    def creation_payload(self, language_code: int = DEFAULT_LANGUAGE_CODE) -> dict[str, Any]:
        """Metadata payload for ``POST EntityDefinitions(...)/Attributes``."""
        if isinstance(self.kind, Boolean):
            shape = self.kind.payload(language_code)
        else:
            shape = self.kind.payload()
        body: dict[str, Any] = {"@odata.type": shape.pop("@odata.type")}
        body.update(
            {
                "SchemaName": self.resolved_schema_name(),
                "DisplayName": labels(self.display_name, language_code),
                "RequiredLevel": {"Value": self.required_level},
            }
        )
        body.update(shape)
        return body


@dataclass(frozen=True)
class EntitySpec:
    """One desired entity and the attributes it must carry."""

    logical_name: str
    display_name: str
    display_collection_name: str
    primary_attribute: str = "toba_name"
    attributes: tuple[AttributeSpec, ...] = field(default_factory=tuple)

    def lookup_targets(self) -> set[str]:
        return {a.kind.target_entity for a in self.attributes if isinstance(a.kind, Lookup)}

    def attribute(self, logical_name: str) -> AttributeSpec | None:
        for attr in self.attributes:
            if attr.logical_name == logical_name:
                return attr
        return None


def dependency_order(entities: Iterable[EntitySpec]) -> list[EntitySpec]:
    """Order entities so every lookup target precedes the entities using it.

    Stable: each pass takes the first remaining entity, in input order, whose
    targets are already placed, so an already valid order comes back
    unchanged. Targets outside the given set are assumed to exist already
    (system tables such as ``account``). A self-reference is allowed.

    Raises:
        ConfigError: The lookups form a cycle
    """
    remaining = list(entities)
    names = {e.logical_name for e in remaining}
    ordered: list[EntitySpec] = []
    placed: set[str] = set()
    while remaining:
        for index, entity in enumerate(remaining):
            pending = (entity.lookup_targets() & names) - placed - {entity.logical_name}
            if not pending:
                break
        else:
            cycle = ", ".join(e.logical_name for e in remaining)
            raise ConfigError(f"Lookup cycle between entities: {cycle}")
        ordered.append(remaining.pop(index))
        placed.add(entity.logical_name)
    return ordered


# =============================================================================
# DEFAULT CATALOG (acknowledgement workflow)
# =============================================================================


def _string(name: str, label: str, max_length: int = 255, schema: str | None = None) -> AttributeSpec:
    return AttributeSpec(name, label, String(max_length), schema)


DEFAULT_CATALOG: tuple[EntitySpec, ...] = (
    EntitySpec(
        "toba_batch", "Batch", "Batches", "toba_name",
        (
            _string("toba_description", "Description", 4000),
            AttributeSpec("toba_status", "Status", Integer()),
            AttributeSpec("toba_startdate", "Start Date", DateOnly()),
            AttributeSpec("toba_duedate", "Due Date", DateOnly()),
        ),
    ),
    EntitySpec(
        "toba_document", "Document", "Documents", "toba_title",
        (
            AttributeSpec("toba_version", "Version", Integer()),
            AttributeSpec("toba_fileurl", "File URL", Url(1000)),
            AttributeSpec("toba_requiressignature", "Requires Signature", Boolean()),
            AttributeSpec("toba_batch", "Batch", Lookup("toba_batch"), "toba_Batch"),
        ),
    ),
    EntitySpec(
        "toba_useracknowledgement", "User Acknowledgement", "User Acknowledgements", "toba_name",
        (
            AttributeSpec("toba_acknowledged", "Acknowledged", Boolean()),
            AttributeSpec("toba_ackdate", "Acknowledged On", DateTime("UserLocal")),
            AttributeSpec("toba_batch", "Batch", Lookup("toba_batch"), "toba_Batch"),
            AttributeSpec("toba_document", "Document", Lookup("toba_document"), "toba_Document"),
            _string("toba_user", "User", schema="toba_User"),
        ),
    ),
    EntitySpec(
        "toba_batchuserprogress", "User Progress", "User Progresses", "toba_name",
        (
            AttributeSpec("toba_acknowledged", "Acknowledged Count", Integer()),
            AttributeSpec("toba_totaldocs", "Total Documents", Integer()),
            AttributeSpec("toba_batch", "Batch", Lookup("toba_batch"), "toba_Batch"),
            _string("toba_user", "User", schema="toba_User"),
        ),
    ),
    EntitySpec(
        "toba_business", "Business", "Businesses", "toba_name",
        (
            _string("toba_code", "Code", 50),
            _string("toba_description", "Description", 4000),
            AttributeSpec("toba_isactive", "Is Active", Boolean()),
        ),
    ),
    EntitySpec(
        "toba_batchrecipient", "Batch Recipient", "Batch Recipients", "toba_name",
        (
            _string("toba_user", "User", schema="toba_User"),
            _string("toba_email", "Email", schema="toba_Email"),
            _string("toba_displayname", "Display Name", schema="toba_DisplayName"),
            AttributeSpec("toba_batch", "Batch", Lookup("toba_batch"), "toba_Batch"),
            AttributeSpec("toba_business", "Business", Lookup("toba_business"), "toba_Business"),
            _string("toba_department", "Department", schema="toba_Department"),
            _string("toba_jobtitle", "Job Title", schema="toba_JobTitle"),
            _string("toba_location", "Location", schema="toba_Location"),
            _string("toba_primarygroup", "Primary Group", schema="toba_PrimaryGroup"),
        ),
    ),
)


__all__ = [
    "String",
    "Url",
    "Integer",
    "Boolean",
    "DateOnly",
    "DateTime",
    "Lookup",
    "Kind",
    "AttributeSpec",
    "EntitySpec",
    "DEFAULT_CATALOG",
    "dependency_order",
    "labels",
    "to_schema_name",
]
