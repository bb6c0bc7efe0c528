"""
Structured error types for the dvspine store engine.

Provides a typed hierarchy of errors for every way a conversation with the
metadata-driven store can go wrong, plus the helpers that turn an HTTP
status into a failure classification.

The store answers almost everything with a status code and a diagnostic
string. Callers need to know three things about a failed call: what kind of
failure it was, whether trying again could help, and the exact diagnostic
text an operator needs to fix the deployment by hand. DvSpineError and its
subclasses carry all three.

Manifesto:
    - **Typed taxonomy:** Permission, not-found, bad-payload, conflict,
      server and transport failures are distinct types
    - **Explicit retry semantics:** Each error knows if it is retryable
    - **Diagnostics preserved:** The store's response text travels with the
      error, verbatim
    - **Error chaining:** Transport exceptions are kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        DvSpineError                              │
        │        (category, retryable, context, cause, status)            │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  StoreError (status + diagnostic)     TransientStoreError        │
        │    PermissionDeniedError  (AUTH)        ServerError      (5xx)   │
        │    NotFoundError          (STORE)       StoreNetworkError        │
        │    BadPayloadError        (VALIDATION)  StoreTimeoutError        │
        │    UnidentifiableBadPayloadError                                 │
        │    ConflictError          (STORE)                                │
        │                                                                  │
        │  EntityCreationError (PROVISIONING)   ConfigError (CONFIG)       │
        │                                         MissingConfigError       │
        └─────────────────────────────────────────────────────────────────┘

    HTTP status → FailureKind:

        401, 403      PERMISSION_DENIED   never retried with another shape
        404           NOT_FOUND           "does not exist yet" while ensuring
        400           BAD_PAYLOAD         drives adaptive field removal
        409           CONFLICT
        5xx           SERVER_ERROR
        transport     SERVER_ERROR        timeouts and connection failures

Examples:
    Classifying a response status:

    >>> classify_status(403)
    <FailureKind.PERMISSION_DENIED: 'PERMISSION_DENIED'>
    >>> classify_status(503)
    <FailureKind.SERVER_ERROR: 'SERVER_ERROR'>

    Adding context to an error:

    >>> error = NotFoundError("Collection not found", status=404)
    >>> error.with_context(collection="toba_batches").context.collection
    'toba_batches'

Guardrails:
    ❌ DON'T: Retry a PermissionDeniedError with a different payload
    ✅ DO: Surface it immediately, the deployment needs a role change

    ❌ DON'T: Guess the offending field of a 400 without a diagnostic
    ✅ DO: Raise UnidentifiableBadPayloadError and stop

Tags:
    error-handling, exception-hierarchy, retry-logic, http-status,
    dvspine, store
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories for classification and routing."""

    NETWORK = "NETWORK"             # Connection, timeout, DNS
    STORE = "STORE"                 # Store-side failures (404, 409, 5xx)
    VALIDATION = "VALIDATION"       # Payload rejected by the store
    AUTH = "AUTH"                   # Authentication, authorization
    CONFIG = "CONFIG"               # Missing config, invalid settings
    PROVISIONING = "PROVISIONING"   # Entity/attribute creation
    INTERNAL = "INTERNAL"           # Bugs, unexpected state


class FailureKind(str, Enum):
    """
    Classification of a failed store call.

    FailureKind is what the adaptive writer reports in a WriteOutcome and
    what the retry loop branches on. Only BAD_PAYLOAD is ever answered with a
    reshaped request; every other kind stops the write.

    Attributes:
        PERMISSION_DENIED: 401/403
        NOT_FOUND: 404
        BAD_PAYLOAD: 400 naming an offending field
        BAD_PAYLOAD_UNIDENTIFIABLE: 400 without a parseable field
        CONFLICT: 409
        SERVER_ERROR: 5xx, network failure or timeout
        REJECTED: any other non-2xx status
        CANCELLED: deadline expired before the write converged
        EXHAUSTED: attempt bound reached while still removing fields
    """

    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    BAD_PAYLOAD = "BAD_PAYLOAD"
    BAD_PAYLOAD_UNIDENTIFIABLE = "BAD_PAYLOAD_UNIDENTIFIABLE"
    CONFLICT = "CONFLICT"
    SERVER_ERROR = "SERVER_ERROR"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    EXHAUSTED = "EXHAUSTED"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Typed fields cover what the store engine knows about a failed call; any
    extra key/value pairs go into ``metadata``. ``to_dict()`` drops unset
    fields so the result can be passed straight to a structlog call.

    Attributes:
        entity: Logical name of the entity being ensured or written
        attribute: Logical name of the attribute involved
        collection: Entity-set (collection) identifier
        role: Application-level role ("batches", "documents", ...)
        url: URL that was being accessed
        method: HTTP method
        metadata: Additional key-value pairs
    """

    entity: str | None = None
    attribute: str | None = None
    collection: str | None = None
    role: str | None = None
    url: str | None = None
    method: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["entity", "attribute", "collection", "role", "url", "method"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class DvSpineError(Exception):
    """
    Base exception for all dvspine errors.

    Every instance carries:
    - **category:** ErrorCategory for classification and routing
    - **retryable:** Whether the same call could succeed later
    - **context:** ErrorContext with structured metadata
    - **cause:** Optional underlying exception for chaining

    Subclasses set ``default_category`` and ``default_retryable``.

    Examples:
        >>> error = DvSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False
        >>> error.to_dict()["error_type"]
        'DvSpineError'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> DvSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NotFoundError("Missing", status=404).with_context(
                collection="toba_batches",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# STORE RESPONSE ERRORS
# =============================================================================


class StoreError(DvSpineError):
    """
    A non-2xx answer from the store.

    Carries the HTTP ``status`` and the store's ``diagnostic`` text so the
    operator sees exactly what the deployment said.
    """

    default_category = ErrorCategory.STORE
    default_retryable = False
    failure_kind: FailureKind = FailureKind.REJECTED

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        diagnostic: str = "",
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.status = status
        self.diagnostic = diagnostic

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["failure_kind"] = self.failure_kind.value
        if self.status is not None:
            result["status"] = self.status
        if self.diagnostic:
            result["diagnostic"] = self.diagnostic
        return result


class PermissionDeniedError(StoreError):
    """401/403 from the store. Never retried with a different payload."""

    default_category = ErrorCategory.AUTH
    failure_kind = FailureKind.PERMISSION_DENIED


class NotFoundError(StoreError):
    """404 on a metadata probe or a collection."""

    failure_kind = FailureKind.NOT_FOUND


class BadPayloadError(StoreError):
    """400 naming an offending property."""

    default_category = ErrorCategory.VALIDATION
    failure_kind = FailureKind.BAD_PAYLOAD

    def __init__(self, message: str, *, field: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        return result


class UnidentifiableBadPayloadError(StoreError):
    """400 without a parseable offending property."""

    default_category = ErrorCategory.VALIDATION
    failure_kind = FailureKind.BAD_PAYLOAD_UNIDENTIFIABLE


class ConflictError(StoreError):
    """409 from the store."""

    failure_kind = FailureKind.CONFLICT


# =============================================================================
# TRANSIENT ERRORS
# =============================================================================


class TransientStoreError(StoreError):
    """
    Failure that may succeed if the caller tries again later.

    The engine itself never retries these; retry-with-backoff belongs to the
    caller's workflow layer.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True
    failure_kind = FailureKind.SERVER_ERROR


class ServerError(TransientStoreError):
    """5xx from the store."""

    default_category = ErrorCategory.STORE


class StoreNetworkError(TransientStoreError):
    """Connection-level failure talking to the store."""


class StoreTimeoutError(TransientStoreError):
    """A store call exceeded its timeout."""


# =============================================================================
# PROVISIONING AND CONFIGURATION ERRORS
# =============================================================================


class EntityCreationError(DvSpineError):
    """All entity creation strategies were exhausted."""

    default_category = ErrorCategory.PROVISIONING
    default_retryable = False

    def __init__(self, message: str, *, last_diagnostic: str = "", **kwargs: Any):
        super().__init__(message, **kwargs)
        self.last_diagnostic = last_diagnostic


class CredentialError(DvSpineError):
    """The token provider could not produce a bearer token."""

    default_category = ErrorCategory.AUTH
    default_retryable = False


class ConfigError(DvSpineError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


_ERROR_BY_KIND: dict[FailureKind, type[StoreError]] = {
    FailureKind.PERMISSION_DENIED: PermissionDeniedError,
    FailureKind.NOT_FOUND: NotFoundError,
    FailureKind.BAD_PAYLOAD: BadPayloadError,
    FailureKind.BAD_PAYLOAD_UNIDENTIFIABLE: UnidentifiableBadPayloadError,
    FailureKind.CONFLICT: ConflictError,
    FailureKind.SERVER_ERROR: ServerError,
    FailureKind.REJECTED: StoreError,
}


def classify_status(status: int) -> FailureKind:
    """Map a non-2xx HTTP status to a FailureKind.

    A 400 is reported as BAD_PAYLOAD; whether the offending field can be
    identified is decided by the diagnostic parser, not the status.
    """
    if status in (401, 403):
        return FailureKind.PERMISSION_DENIED
    if status == 404:
        return FailureKind.NOT_FOUND
    if status == 400:
        return FailureKind.BAD_PAYLOAD
    if status == 409:
        return FailureKind.CONFLICT
    if status >= 500:
        return FailureKind.SERVER_ERROR
    return FailureKind.REJECTED


def error_for_status(
    status: int,
    message: str,
    *,
    diagnostic: str = "",
    **context: Any,
) -> StoreError:
    """Build the StoreError subclass matching ``status``."""
    kind = classify_status(status)
    error_cls = _ERROR_BY_KIND[kind]
    error = error_cls(message, status=status, diagnostic=diagnostic)
    if context:
        error.with_context(**context)
    return error


def failure_kind_of(error: Exception) -> FailureKind:
    """FailureKind for any exception raised while talking to the store."""
    if isinstance(error, StoreError):
        return error.failure_kind
    if isinstance(error, CredentialError):
        return FailureKind.PERMISSION_DENIED
    return FailureKind.SERVER_ERROR


__all__ = [
    "ErrorCategory",
    "FailureKind",
    "ErrorContext",
    "DvSpineError",
    "StoreError",
    "PermissionDeniedError",
    "NotFoundError",
    "BadPayloadError",
    "UnidentifiableBadPayloadError",
    "ConflictError",
    "TransientStoreError",
    "ServerError",
    "StoreNetworkError",
    "StoreTimeoutError",
    "EntityCreationError",
    "CredentialError",
    "ConfigError",
    "MissingConfigError",
    "classify_status",
    "error_for_status",
    "failure_kind_of",
]
