"""
Provisioning - bulk "ensure everything" entry points and smoke checks.

Every entry point here returns a ProvisioningLog: an ordered list of
``{step, ok, detail}`` entries an operator can read top to bottom. A failing
step is recorded and the pass continues with the next independent step, so
the log always shows the complete picture; a partially provisioned schema is
still usable.

Manifesto:
    - **Never stop at the first failure:** each step is recorded
    - **Skips are visible:** attributes of an entity that could not be
      ensured are logged as skipped, never silently dropped
    - **Dependency order:** entities are ensured sequentially, lookup
      targets first
    - **Adaptive writes only:** every seeded record goes through the
      AdaptiveWriter

Architecture:
    ::

        provision(session, catalog)
          "Entity toba_batch"                 ok  detail=toba_batches
          "Attribute toba_batch.toba_status"  ok  detail=Created | Exists
          ...
          "Entity toba_document"              ✗   detail=<last diagnostic>
          "Attribute toba_document.…"         ✗   Skipped (entity toba_document not available)

        seed_businesses(session)      Head Office / Subsidiary A / Subsidiary B
        seed_sample_data(session)     business → batch → document → recipient
                                      → progress → acknowledgement
        write_test(session)           create → fetch → delete a batch
        who_am_i(session)             GET /WhoAmI

Tags:
    provisioning, seeding, smoke-test, log, dvspine, store
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import Any

from dvspine.core.errors import ConfigError, DvSpineError, error_for_status
from dvspine.core.logging import get_logger
from dvspine.store.catalog import DEFAULT_CATALOG, EntitySpec, Lookup, dependency_order
from dvspine.store.fields import RECIPIENT_FIELDS, USER_FIELDS
from dvspine.store.payloads import (
    BatchInput,
    DocumentInput,
    PayloadBuilder,
    RecipientInput,
    acknowledgement_payload,
    batch_payload,
    business_payload,
    document_payload,
    progress_payload,
    recipient_payload,
)
from dvspine.store.client import StoreResponse
from dvspine.store.session import StoreSession
from dvspine.store.writer import WriteOutcome

logger = get_logger(__name__)

SAMPLE_BUSINESSES: tuple[tuple[str, str], ...] = (
    ("Head Office", "HO"),
    ("Subsidiary A", "SUB-A"),
    ("Subsidiary B", "SUB-B"),
)

SAMPLE_DOCUMENT_URL = "https://contoso.sharepoint.com/sites/hr/Shared%20Documents/Code%20of%20Conduct.pdf"
SAMPLE_RECIPIENT = RecipientInput(
    email="jane.doe@contoso.com",
    display_name="Jane Doe",
    department="HR",
    job_title="HR Manager",
    location="Lagos",
)


# =============================================================================
# LOG
# =============================================================================


@dataclass(frozen=True)
class ProvisionStep:
    step: str
    ok: bool
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        entry: dict[str, Any] = {"step": self.step, "ok": self.ok}
        if self.detail is not None:
            entry["detail"] = self.detail
        return entry


@dataclass
class ProvisioningLog:
    """Ordered pass/fail record of a bulk operation."""

    steps: list[ProvisionStep] = field(default_factory=list)

    def add(self, step: str, ok: bool, detail: str | None = None) -> ProvisionStep:
        entry = ProvisionStep(step, ok, detail)
        self.steps.append(entry)
        log = logger.info if ok else logger.warning
        log("provisioning.step", step=step, ok=ok, detail=detail)
        return entry

    def extend(self, other: ProvisioningLog) -> None:
        self.steps.extend(other.steps)

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def failed(self) -> list[ProvisionStep]:
        return [step for step in self.steps if not step.ok]

    def to_list(self) -> list[dict[str, Any]]:
        return [step.to_dict() for step in self.steps]

    def __iter__(self) -> Iterator[ProvisionStep]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)


# =============================================================================
# PROVISION
# =============================================================================


async def provision(
    session: StoreSession,
    entities: Iterable[EntitySpec] = DEFAULT_CATALOG,
) -> ProvisioningLog:
    """Ensure every entity and attribute of ``entities`` exists.

    Entities are ensured in dependency order. A lookup cycle yields a single
    failed ``"Catalog"`` step.
    """
    log = ProvisioningLog()
    if not session.settings.store_url:
        log.add("Store URL", False, "DVSPINE_STORE_URL not set")
        return log

    try:
        ordered = dependency_order(entities)
    except ConfigError as e:
        log.add("Catalog", False, str(e))
        return log
    in_pass = {e.logical_name for e in ordered}
    available: set[str] = set()

    for entity in ordered:
        step = f"Entity {entity.logical_name}"
        collection_id = None
        try:
            collection_id = await session.ensurer.ensure_entity_spec(entity)
        except DvSpineError as e:
            log.add(step, False, str(e))
        else:
            available.add(entity.logical_name)
            log.add(step, True, collection_id)

        created_any = False
        for attribute in entity.attributes:
            step = f"Attribute {entity.logical_name}.{attribute.logical_name}"
            if entity.logical_name not in available:
                log.add(step, False, f"Skipped (entity {entity.logical_name} not available)")
                continue
            if isinstance(attribute.kind, Lookup):
                target = attribute.kind.target_entity
                if target in in_pass and target not in available:
                    log.add(step, False, f"Skipped (target entity {target} not available)")
                    continue
            try:
                created = await session.ensurer.ensure_attribute(entity.logical_name, attribute)
            except DvSpineError as e:
                log.add(step, False, str(e))
            else:
                created_any = created_any or created
                log.add(step, True, "Created" if created else "Exists")

        if created_any and collection_id:
            session.entity_sets.forget(collection_id)

    return log


# =============================================================================
# SEEDING
# =============================================================================


async def _first_record_id(
    session: StoreSession, role: str, default_logical_name: str
) -> tuple[StoreResponse, str | None]:
    collection = await session.entity_sets.resolve(role)
    entity = await session.entity_sets.discover(role)
    id_field = f"{entity.logical_name or default_logical_name}id"
    response = await session.client.get(f"/{collection}?$select={id_field}&$top=1")
    if not response.ok or not response.rows:
        return response, None
    value = response.rows[0].get(id_field)
    return response, str(value) if value else None


async def seed_businesses(
    session: StoreSession,
    samples: Sequence[tuple[str, str]] = SAMPLE_BUSINESSES,
) -> ProvisioningLog:
    """Insert sample businesses when the businesses collection is empty."""
    log = ProvisioningLog()
    try:
        await _seed_businesses(log, session, samples)
    except DvSpineError as e:
        log.add("Seed businesses", False, str(e))
    return log


async def _seed_businesses(
    log: ProvisioningLog, session: StoreSession, samples: Sequence[tuple[str, str]]
) -> None:
    step = "Seed businesses"
    check, existing = await _first_record_id(session, "businesses", "toba_business")

    if not check.ok:
        detail = "Skipped (entity set not found)" if check.status == 404 else f"Skipped ({check.status})"
        log.add(step, False, detail)
        return
    if existing:
        log.add(step, True, "Skipped (records already exist)")
        return

    collection = await session.entity_sets.resolve("businesses")
    outcomes = await session.writer.create_many(
        collection, [business_payload(name, code) for name, code in samples]
    )
    seeded = sum(1 for o in outcomes if o.ok)
    log.add(step, True, f"Inserted {seeded} sample rows")


async def _write_step(
    log: ProvisioningLog,
    session: StoreSession,
    step: str,
    role: str,
    builder: PayloadBuilder,
) -> str | None:
    collection = await session.entity_sets.resolve(role)
    outcome: WriteOutcome = await session.writer.adaptive_create(collection, builder)
    if outcome.ok:
        log.add(step, True, outcome.record_id)
        return outcome.record_id
    log.add(step, False, outcome.diagnostic or (outcome.failure.value if outcome.failure else None))
    return None


async def seed_sample_data(session: StoreSession, *, today: date | None = None) -> ProvisioningLog:
    """Write one linked record per core collection to verify reads and writes.

    A failure outside the per-record steps (credentials, configuration) ends
    the pass with a final ``"Seed sample data failed"`` entry.
    """
    log = ProvisioningLog()
    try:
        await _seed_sample_data(log, session, today or datetime.now(UTC).date())
    except DvSpineError as e:
        log.add("Seed sample data failed", False, str(e))
    return log


async def _seed_sample_data(log: ProvisioningLog, session: StoreSession, today: date) -> None:
    settings = session.settings

    sets = await session.entity_sets.resolve_all()
    log.add("Detect entity sets", True, json.dumps(sets))

    try:
        _, business_id = await _first_record_id(session, "businesses", "toba_business")
    except DvSpineError as e:
        log.add("Seed business", False, str(e))
        business_id = None
    else:
        if business_id:
            log.add("Seed business", True, "Skipped (exists)")
        else:
            business_id = await _write_step(
                log, session, "Seed business", "businesses", business_payload("Head Office", "HO")
            )

    batch = BatchInput(
        name=f"HR Policies - {today.year}",
        start_date=today,
        due_date=today + timedelta(days=7),
        description="Sample batch for verification",
    )
    batch_id = await _write_step(log, session, "Seed batch", "batches", batch_payload(batch))

    document_id = None
    if batch_id:
        doc_fields = await session.fields.resolve_fields("documents")
        document_id = await _write_step(
            log,
            session,
            "Seed document",
            "documents",
            document_payload(
                DocumentInput("Code of Conduct.pdf", SAMPLE_DOCUMENT_URL, version=1),
                doc_fields,
                batch_lookup=settings.document_batch_lookup,
                batches_set=sets["batches"],
                batch_id=batch_id,
            ),
        )
    else:
        log.add("Seed document", False, "Skipped (no batch id)")

    user = SAMPLE_RECIPIENT.email_lower
    if batch_id:
        recipient_fields = await session.fields.resolve_fields("batch_recipients", RECIPIENT_FIELDS)
        await _write_step(
            log,
            session,
            "Seed batch recipient",
            "batch_recipients",
            recipient_payload(
                SAMPLE_RECIPIENT,
                recipient_fields,
                batch_name=batch.name,
                batch_lookup=settings.br_batch_lookup,
                batches_set=sets["batches"],
                batch_id=batch_id,
                business_lookup=settings.br_business_lookup,
                businesses_set=sets["businesses"],
                business_id=business_id,
            ),
        )

        progress_fields = await session.fields.resolve_fields("user_progresses", USER_FIELDS)
        await _write_step(
            log,
            session,
            "Seed user progress",
            "user_progresses",
            progress_payload(
                user,
                progress_fields["user"],
                acknowledged=0,
                total_documents=1,
                batch_lookup=settings.progress_batch_lookup,
                batches_set=sets["batches"],
                batch_id=batch_id,
            ),
        )
    else:
        log.add("Seed batch recipient", False, "Skipped (no batch id)")
        log.add("Seed user progress", False, "Skipped (no batch id)")

    if batch_id and document_id:
        ack_fields = await session.fields.resolve_fields("user_acks", USER_FIELDS)
        await _write_step(
            log,
            session,
            "Seed user acknowledgement",
            "user_acks",
            acknowledgement_payload(
                user,
                ack_fields["user"],
                acknowledged_at=datetime.now(UTC),
                batch_lookup=settings.ack_batch_lookup,
                batches_set=sets["batches"],
                batch_id=batch_id,
                document_lookup=settings.ack_document_lookup,
                documents_set=sets["documents"],
                document_id=document_id,
            ),
        )
    else:
        log.add("Seed user acknowledgement", False, "Skipped (no batch/document id)")


# =============================================================================
# SMOKE CHECKS
# =============================================================================


async def write_test(session: StoreSession) -> ProvisioningLog:
    """Create, fetch and delete a minimal batch record."""
    log = ProvisioningLog()
    try:
        await _write_test(log, session)
    except DvSpineError as e:
        log.add("Write test failed", False, str(e))
    return log


async def _write_test(log: ProvisioningLog, session: StoreSession) -> None:
    sets = await session.entity_sets.resolve_all()
    log.add("Detect entity sets", True, json.dumps(sets))
    batches = sets["batches"]

    name = f"WriteTest {datetime.now(UTC).isoformat()}"
    created = await session.writer.adaptive_create(batches, PayloadBuilder({"toba_name": name}))
    if not created.ok:
        log.add("Create test batch", False, created.diagnostic)
        return
    log.add("Create test batch", True, created.record_id or "no id")
    if not created.record_id:
        return
    record_id = created.record_id

    try:
        fetched = await session.client.get(f"/{batches}({record_id})?$select=toba_batchid,toba_name")
    except DvSpineError as e:
        log.add("Fetch test batch", False, str(e))
    else:
        if fetched.ok:
            body = fetched.body if isinstance(fetched.body, dict) else {}
            log.add("Fetch test batch", True, json.dumps({"id": record_id, "name": body.get("toba_name")}))
        else:
            log.add("Fetch test batch", False, fetched.diagnostic())

    deleted = await session.writer.delete(batches, record_id)
    log.add("Delete test batch", deleted.ok, record_id if deleted.ok else deleted.diagnostic)


async def who_am_i(session: StoreSession) -> dict[str, Any]:
    """Identity of the calling principal.

    Raises:
        StoreError: The store rejected the call (classified by status)
    """
    response = await session.client.get("/WhoAmI")
    if not response.ok:
        raise error_for_status(
            response.status,
            f"WhoAmI failed: {response.diagnostic()}",
            diagnostic=response.text,
        )
    return response.body if isinstance(response.body, dict) else {}


__all__ = [
    "ProvisionStep",
    "ProvisioningLog",
    "SAMPLE_BUSINESSES",
    "provision",
    "seed_businesses",
    "seed_sample_data",
    "write_test",
    "who_am_i",
]
