"""
Payload construction for record writes.

A record payload is an ordered list of ``(attribute, value)`` pairs plus
lookup binds, never a blind dump of an object. Only attribute names that the
field picker resolved are inserted, so every key in a payload is something
the adaptive writer can name and remove when the store rejects it.

Architecture:
    ::

        PayloadBuilder
          ├── set(attribute, value)       skipped when attribute == ""
          ├── bind(nav, collection, id)   → "<nav>@odata.bind": "/<collection>(<id>)"
          ├── remove(name)                attribute, nav property or full bind key
          └── build()                     → dict in insertion order

        Per-entity builders (one per collection the workflows write to):
          batch_payload · document_payload · recipient_payload
          business_payload · progress_payload · acknowledgement_payload

Examples:
    >>> builder = PayloadBuilder().set("toba_title", "Policy.pdf")
    >>> builder.bind("toba_Batch", "toba_batches", "42").build()
    {'toba_title': 'Policy.pdf', 'toba_Batch@odata.bind': '/toba_batches(42)'}

Tags:
    payload, builder, odata, lookup, dvspine, store
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

BIND_SUFFIX = "@odata.bind"


@dataclass(frozen=True)
class LookupBind:
    """Reference from a record to a row in another collection."""

    navigation_property: str
    collection_id: str
    record_id: str

    @property
    def key(self) -> str:
        return f"{self.navigation_property}{BIND_SUFFIX}"

    @property
    def value(self) -> str:
        return f"/{self.collection_id}({self.record_id})"


class PayloadBuilder:
    """Ordered, removable record payload."""

    def __init__(self, fields: dict[str, Any] | None = None):
        self._fields: dict[str, Any] = {}
        self._binds: list[LookupBind] = []
        for name, value in (fields or {}).items():
            self.set(name, value)

    def set(self, attribute: str, value: Any) -> PayloadBuilder:
        """Add a field.

        Ignored when the attribute name is empty (unavailable field) or the
        value is ``None``; an unset optional value is left out, never sent as null.
        """
        if attribute and value is not None:
            self._fields[attribute] = value
        return self

    def bind(self, navigation_property: str, collection_id: str, record_id: str | None) -> PayloadBuilder:
        """Add a lookup bind. Ignored when any part is missing."""
        if navigation_property and collection_id and record_id:
            self._binds = [b for b in self._binds if b.navigation_property != navigation_property]
            self._binds.append(LookupBind(navigation_property, collection_id, record_id))
        return self

    def has(self, name: str) -> bool:
        return name in self._fields or self._find_bind(name) is not None

    def remove(self, name: str) -> bool:
        """Remove a field or bind by name; ``False`` if not present."""
        if name in self._fields:
            del self._fields[name]
            return True
        bind = self._find_bind(name)
        if bind is not None:
            self._binds.remove(bind)
            return True
        return False

    def _find_bind(self, name: str) -> LookupBind | None:
        for bind in self._binds:
            if name in (bind.navigation_property, bind.key):
                return bind
        return None

    def keys(self) -> list[str]:
        return list(self._fields) + [b.key for b in self._binds]

    def copy(self) -> PayloadBuilder:
        clone = PayloadBuilder()
        clone._fields = dict(self._fields)
        clone._binds = list(self._binds)
        return clone

    def build(self) -> dict[str, Any]:
        body = dict(self._fields)
        for bind in self._binds:
            body[bind.key] = bind.value
        return body

    def __len__(self) -> int:
        return len(self._fields) + len(self._binds)

    def __repr__(self) -> str:
        return f"PayloadBuilder({self.keys()!r})"


# =============================================================================
# WORKFLOW INPUTS
# =============================================================================


@dataclass
class BatchInput:
    name: str
    start_date: date | None = None
    due_date: date | None = None
    description: str | None = None
    status: int = 1


@dataclass
class DocumentInput:
    title: str
    url: str
    version: int = 1
    requires_signature: bool = False


@dataclass
class RecipientInput:
    """One person receiving a batch.

    ``group_ids`` lists the directory groups the recipient was expanded
    from, in selection order. They are consulted, in that order, when no
    business is assigned to the recipient directly.
    """

    email: str
    display_name: str | None = None
    department: str | None = None
    job_title: str | None = None
    location: str | None = None
    primary_group: str | None = None
    business_id: str | None = None
    group_ids: list[str] = field(default_factory=list)

    @property
    def email_lower(self) -> str:
        return self.email.strip().lower()


# =============================================================================
# PER-ENTITY BUILDERS
# =============================================================================


def _iso_date(value: date | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def batch_payload(batch: BatchInput) -> PayloadBuilder:
    return (
        PayloadBuilder()
        .set("toba_name", batch.name)
        .set("toba_startdate", _iso_date(batch.start_date))
        .set("toba_duedate", _iso_date(batch.due_date))
        .set("toba_description", batch.description)
        .set("toba_status", batch.status)
    )


def document_payload(
    document: DocumentInput,
    fields: dict[str, str],
    *,
    batch_lookup: str,
    batches_set: str,
    batch_id: str | None,
) -> PayloadBuilder:
    """``fields`` maps document field roles to resolved attribute names."""
    return (
        PayloadBuilder()
        .set(fields.get("title", ""), document.title)
        .set(fields.get("url", ""), document.url)
        .set(fields.get("version", ""), document.version)
        .set(fields.get("requires_signature", ""), document.requires_signature)
        .bind(batch_lookup, batches_set, batch_id)
    )


def recipient_payload(
    recipient: RecipientInput,
    fields: dict[str, str],
    *,
    batch_name: str,
    batch_lookup: str,
    batches_set: str,
    batch_id: str | None,
    business_lookup: str = "",
    businesses_set: str = "",
    business_id: str | None = None,
) -> PayloadBuilder:
    email = recipient.email_lower
    label = recipient.display_name or recipient.email
    return (
        PayloadBuilder()
        .set("toba_name", f"Recipient - {label} - {batch_name}")
        .set(fields.get("email", ""), email)
        .set(fields.get("user", ""), email)
        .set(fields.get("display_name", ""), recipient.display_name)
        .set(fields.get("department", ""), recipient.department)
        .set(fields.get("job_title", ""), recipient.job_title)
        .set(fields.get("location", ""), recipient.location)
        .set(fields.get("primary_group", ""), recipient.primary_group)
        .bind(batch_lookup, batches_set, batch_id)
        .bind(business_lookup, businesses_set, business_id)
    )


def business_payload(name: str, code: str, *, is_active: bool = True, description: str | None = None) -> PayloadBuilder:
    builder = PayloadBuilder().set("toba_name", name).set("toba_code", code).set("toba_isactive", is_active)
    if description is not None:
        builder.set("toba_description", description)
    return builder


def progress_payload(
    user: str,
    user_field: str,
    *,
    acknowledged: int,
    total_documents: int,
    batch_lookup: str,
    batches_set: str,
    batch_id: str | None,
) -> PayloadBuilder:
    return (
        PayloadBuilder()
        .set("toba_name", f"Progress - {user}")
        .set("toba_acknowledged", acknowledged)
        .set("toba_totaldocs", total_documents)
        .set(user_field, user)
        .bind(batch_lookup, batches_set, batch_id)
    )


def acknowledgement_payload(
    user: str,
    user_field: str,
    *,
    acknowledged_at: datetime,
    batch_lookup: str,
    batches_set: str,
    batch_id: str | None,
    document_lookup: str,
    documents_set: str,
    document_id: str | None,
) -> PayloadBuilder:
    return (
        PayloadBuilder()
        .set("toba_name", f"Ack - {user}")
        .set("toba_acknowledged", True)
        .set("toba_ackdate", acknowledged_at.isoformat())
        .set(user_field, user)
        .bind(batch_lookup, batches_set, batch_id)
        .bind(document_lookup, documents_set, document_id)
    )


__all__ = [
    "PayloadBuilder",
    "LookupBind",
    "BatchInput",
    "DocumentInput",
    "RecipientInput",
    "batch_payload",
    "document_payload",
    "recipient_payload",
    "business_payload",
    "progress_payload",
    "acknowledgement_payload",
]
