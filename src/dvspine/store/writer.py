"""
Adaptive Write Executor - create records against a partially known schema.

Metadata can say an attribute exists while the store still refuses to write
it (metadata lag, non-writable columns, a field missing in this tenant).
The writer POSTs the payload and, whenever the store answers 400 naming one
offending property, strips that property and tries again.

Manifesto:
    Only a bad payload is answered with a reshaped request. Permission,
    not-found, conflict and server failures stop at once: no payload shape
    fixes them. The loop is bounded so a store that names a new invalid
    field on every attempt still terminates.

    - **Bounded:** at most ``max_attempts`` POSTs per record (default 5)
    - **Named removal only:** never guess the offending field
    - **Non-convergence guard:** a field is removed at most once
    - **Outcome, not exception:** every call returns a WriteOutcome
    - **No rollback:** cancellation stops further attempts only

Architecture:
    ::

        adaptive_create(collection, builder)
          ┌──────────────────────────────────────────────────────────┐
          │ attempt 1..max_attempts                                  │
          │   deadline expired?            → CANCELLED               │
          │   POST /<collection>  build()                            │
          │   2xx                          → ok, record_id           │
          │   transport / timeout          → SERVER_ERROR            │
          │   non-400                      → classify_status(status) │
          │   400: parser → field                                    │
          │     none / absent / seen       → BAD_PAYLOAD(_UNIDENT.)  │
          │     else remove(field) and loop                          │
          └──────────────────────────────────────────────────────────┘
          loop exhausted                   → EXHAUSTED

Examples:
    >>> writer = AdaptiveWriter(client)
    >>> outcome = await writer.adaptive_create(
    ...     "toba_documents",
    ...     PayloadBuilder().set("toba_title", "Policy.pdf").set("toba_bogus", 1),
    ... )
    >>> outcome.ok, outcome.removed_fields
    (True, ['toba_bogus'])

Guardrails:
    ❌ DON'T: Retry a 403 with a smaller payload
    ✅ DO: Return PERMISSION_DENIED after exactly one POST

    ❌ DON'T: Remove a field the diagnostic did not name
    ✅ DO: Stop with the store's diagnostic so an operator can fix the schema

Tags:
    adaptive-write, retry, odata, payload, dvspine, store
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from dvspine.core.errors import FailureKind, StoreError, classify_status, failure_kind_of
from dvspine.core.logging import get_logger
from dvspine.execution.async_batch import BoundedFanout
from dvspine.execution.timeout import DeadlineContext, get_current_deadline
from dvspine.store.client import MetadataClient, StoreResponse
from dvspine.store.diagnostics import DiagnosticParser, InvalidPropertyParser
from dvspine.store.payloads import PayloadBuilder

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


@dataclass
class WriteOutcome:
    """Result of one record write.

    Attributes:
        ok: The store accepted the write
        status: Last HTTP status (``None`` when no answer was received)
        record_id: Identifier of the created record, when the store sent one
        diagnostic: Last ``"<status> <text>"`` or transport error message
        failure: FailureKind when not ok
        attempts: Number of HTTP calls issued
        payload: The last payload sent (the accepted one on success)
        removed_fields: Fields stripped by adaptive removal, in order
    """

    ok: bool
    status: int | None = None
    record_id: str | None = None
    diagnostic: str = ""
    failure: FailureKind | None = None
    attempts: int = 0
    payload: dict[str, Any] = field(default_factory=dict)
    removed_fields: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "status": self.status,
            "record_id": self.record_id,
            "diagnostic": self.diagnostic,
            "failure": self.failure.value if self.failure else None,
            "attempts": self.attempts,
            "removed_fields": list(self.removed_fields),
        }


class AdaptiveWriter:
    """Writes records through the bounded retry-with-removal loop.

    Args:
        client: Metadata client used for every POST
        parser: Extracts the offending property from a 400 (Dataverse phrasing by default)
        max_attempts: Bound on POSTs per record
        max_concurrency: Parallel writes in ``create_many``
    """

    def __init__(
        self,
        client: MetadataClient,
        parser: DiagnosticParser | None = None,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        max_concurrency: int = 5,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.client = client
        self.parser = parser or InvalidPropertyParser()
        self.max_attempts = max_attempts
        self.max_concurrency = max_concurrency

    async def adaptive_create(
        self,
        collection_id: str,
        payload: PayloadBuilder | Mapping[str, Any],
        *,
        deadline: DeadlineContext | None = None,
    ) -> WriteOutcome:
        """Create one record, stripping fields the store names as invalid.

        Args:
            collection_id: Target collection (entity set name)
            payload: Builder or plain mapping; a builder is copied, never mutated
            deadline: Overrides the deadline from ``with_deadline_async``
        """
        builder = payload.copy() if isinstance(payload, PayloadBuilder) else PayloadBuilder(dict(payload))
        deadline = deadline or get_current_deadline()
        outcome = WriteOutcome(ok=False)

        for _ in range(self.max_attempts):
            if deadline is not None and deadline.is_expired():
                outcome.failure = FailureKind.CANCELLED
                outcome.diagnostic = outcome.diagnostic or f"Deadline for '{deadline.operation}' expired"
                logger.warning("writer.cancelled", collection=collection_id, attempts=outcome.attempts)
                return outcome

            outcome.payload = builder.build()
            outcome.attempts += 1
            try:
                response = await self.client.post(f"/{collection_id}", outcome.payload)
            except StoreError as e:
                outcome.status = None
                outcome.failure = failure_kind_of(e)
                outcome.diagnostic = e.message
                logger.warning(
                    "writer.transport_failed",
                    collection=collection_id,
                    attempt=outcome.attempts,
                    error=e.message,
                )
                return outcome

            outcome.status = response.status
            if response.ok:
                outcome.ok = True
                outcome.failure = None
                outcome.diagnostic = ""
                outcome.record_id = response.created_id()
                logger.info(
                    "writer.created",
                    collection=collection_id,
                    record_id=outcome.record_id,
                    attempts=outcome.attempts,
                    removed=outcome.removed_fields,
                )
                return outcome

            outcome.diagnostic = response.diagnostic()
            kind = classify_status(response.status)
            if kind is not FailureKind.BAD_PAYLOAD:
                outcome.failure = kind
                logger.warning(
                    "writer.rejected",
                    collection=collection_id,
                    status=response.status,
                    failure=kind.value,
                )
                return outcome

            offending = self.parser.parse_invalid_property(response.text)
            if not offending:
                outcome.failure = FailureKind.BAD_PAYLOAD_UNIDENTIFIABLE
                logger.warning("writer.unidentifiable", collection=collection_id, diagnostic=outcome.diagnostic)
                return outcome
            if offending in outcome.removed_fields or not builder.has(offending):
                outcome.failure = FailureKind.BAD_PAYLOAD
                logger.warning(
                    "writer.not_converging",
                    collection=collection_id,
                    field=offending,
                    removed=outcome.removed_fields,
                )
                return outcome

            builder.remove(offending)
            outcome.removed_fields.append(offending)
            logger.info(
                "writer.field_removed",
                collection=collection_id,
                field=offending,
                attempt=outcome.attempts,
            )

        outcome.failure = FailureKind.EXHAUSTED
        logger.warning(
            "writer.exhausted",
            collection=collection_id,
            attempts=outcome.attempts,
            removed=outcome.removed_fields,
        )
        return outcome

    async def create_many(
        self,
        collection_id: str,
        payloads: Sequence[PayloadBuilder | Mapping[str, Any]],
        *,
        max_concurrency: int | None = None,
    ) -> list[WriteOutcome]:
        """Create independent records concurrently; outcomes in input order."""
        fanout = BoundedFanout(collection_id, limit=max_concurrency or self.max_concurrency)
        for index, payload in enumerate(payloads):
            fanout.add(
                f"{collection_id}[{index}]",
                lambda payload=payload: self.adaptive_create(collection_id, payload),
            )
        report = await fanout.gather()

        outcomes = []
        for slot in report.slots:
            if slot.error is not None:
                # adaptive_create raised (credential failure); keep the slot
                outcomes.append(
                    WriteOutcome(ok=False, failure=failure_kind_of(slot.error), diagnostic=str(slot.error))
                )
            else:
                outcomes.append(slot.value)
        return outcomes

    async def update(
        self, collection_id: str, record_id: str, payload: PayloadBuilder | Mapping[str, Any]
    ) -> WriteOutcome:
        """PATCH one record. No adaptive removal."""
        body = payload.build() if isinstance(payload, PayloadBuilder) else dict(payload)
        return await self._single("PATCH", f"/{collection_id}({record_id})", body, record_id)

    async def delete(self, collection_id: str, record_id: str) -> WriteOutcome:
        return await self._single("DELETE", f"/{collection_id}({record_id})", None, record_id)

    async def _single(
        self, method: str, path: str, body: dict[str, Any] | None, record_id: str
    ) -> WriteOutcome:
        outcome = WriteOutcome(ok=False, attempts=1, payload=body or {}, record_id=record_id)
        try:
            response: StoreResponse = await self.client.request(method, path, json=body)
        except StoreError as e:
            outcome.failure = failure_kind_of(e)
            outcome.diagnostic = e.message
            return outcome

        outcome.status = response.status
        if response.ok:
            outcome.ok = True
        else:
            outcome.failure = classify_status(response.status)
            outcome.diagnostic = response.diagnostic()
        logger.debug("writer.single", method=method, path=path, status=response.status)
        return outcome


__all__ = ["AdaptiveWriter", "WriteOutcome", "DEFAULT_MAX_ATTEMPTS"]
