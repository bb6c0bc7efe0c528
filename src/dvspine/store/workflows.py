"""Persist a batch with its documents and recipients.

The batch record is created first; documents and recipients reference it
through lookup binds and are written concurrently (bounded by the writer's
concurrency). Every record goes through the adaptive writer with the field
names this deployment actually has. There is no rollback: a failed document
leaves the batch and the other documents in place, and the result says
exactly which writes failed.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from dvspine.core.logging import LogContext, get_logger
from dvspine.store.fields import DOCUMENT_FIELDS, RECIPIENT_FIELDS
from dvspine.store.payloads import (
    BatchInput,
    DocumentInput,
    RecipientInput,
    batch_payload,
    document_payload,
    recipient_payload,
)
from dvspine.store.session import StoreSession
from dvspine.store.writer import WriteOutcome

logger = get_logger(__name__)


@dataclass
class BatchPersistResult:
    batch: WriteOutcome
    documents: list[WriteOutcome] = field(default_factory=list)
    recipients: list[WriteOutcome] = field(default_factory=list)

    @property
    def batch_id(self) -> str | None:
        return self.batch.record_id

    @property
    def ok(self) -> bool:
        return self.batch.ok and all(o.ok for o in self.documents + self.recipients)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "batch": self.batch.to_dict(),
            "documents": [o.to_dict() for o in self.documents],
            "recipients": [o.to_dict() for o in self.recipients],
        }


def choose_business(
    recipient: RecipientInput,
    business_map: Mapping[str, str] | None = None,
    group_business_map: Mapping[str, str] | None = None,
    default_business_id: str | None = None,
) -> str | None:
    """Business for a recipient.

    Order: the recipient's own ``business_id``, the per-email map, the first
    originating group with a mapping, then the default.
    """
    if recipient.business_id:
        return recipient.business_id
    direct = (business_map or {}).get(recipient.email_lower)
    if direct:
        return direct
    for group_id in recipient.group_ids:
        mapped = (group_business_map or {}).get(group_id)
        if mapped:
            return mapped
    return default_business_id or None


def unique_recipients(recipients: Sequence[RecipientInput]) -> list[RecipientInput]:
    """Drop repeated addresses (case-insensitive), keeping the first."""
    seen: set[str] = set()
    unique = []
    for recipient in recipients:
        key = recipient.email_lower
        if key and key not in seen:
            seen.add(key)
            unique.append(recipient)
    return unique


async def persist_batch(
    session: StoreSession,
    batch: BatchInput,
    documents: Sequence[DocumentInput],
    recipients: Sequence[RecipientInput],
    *,
    business_map: Mapping[str, str] | None = None,
    group_business_map: Mapping[str, str] | None = None,
    default_business_id: str | None = None,
) -> BatchPersistResult:
    """Create a batch, then its documents and recipients."""
    settings = session.settings
    sets = session.entity_sets

    async with LogContext(workflow="persist_batch", batch=batch.name):
        batches_set = await sets.resolve("batches")
        created = await session.writer.adaptive_create(batches_set, batch_payload(batch))
        result = BatchPersistResult(batch=created)
        if not created.ok or not created.record_id:
            logger.warning("workflow.batch_failed", diagnostic=created.diagnostic)
            return result

        if documents:
            documents_set = await sets.resolve("documents")
            doc_fields = await session.fields.resolve_fields("documents", DOCUMENT_FIELDS)
            result.documents = await session.writer.create_many(
                documents_set,
                [
                    document_payload(
                        document,
                        doc_fields,
                        batch_lookup=settings.document_batch_lookup,
                        batches_set=batches_set,
                        batch_id=created.record_id,
                    )
                    for document in documents
                ],
            )

        people = unique_recipients(recipients)
        if people:
            recipients_set = await sets.resolve("batch_recipients")
            businesses_set = await sets.resolve("businesses")
            recipient_fields = await session.fields.resolve_fields("batch_recipients", RECIPIENT_FIELDS)
            result.recipients = await session.writer.create_many(
                recipients_set,
                [
                    recipient_payload(
                        person,
                        recipient_fields,
                        batch_name=batch.name,
                        batch_lookup=settings.br_batch_lookup,
                        batches_set=batches_set,
                        batch_id=created.record_id,
                        business_lookup=settings.br_business_lookup,
                        businesses_set=businesses_set,
                        business_id=choose_business(
                            person, business_map, group_business_map, default_business_id
                        ),
                    )
                    for person in people
                ],
            )

        logger.info(
            "workflow.batch_persisted",
            batch_id=created.record_id,
            documents=len(result.documents),
            recipients=len(result.recipients),
            ok=result.ok,
        )
        return result


__all__ = ["BatchPersistResult", "choose_business", "unique_recipients", "persist_batch"]
