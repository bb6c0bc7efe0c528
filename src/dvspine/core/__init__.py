"""dvspine core -- errors, logging, settings and the session cache.

Architecture::

    errors.py      Structured error hierarchy + HTTP status classification
    logging.py     structlog configuration (configure_logging, get_logger)
    settings.py    StoreSettings (pydantic-settings, DVSPINE_ prefix)
    cache.py       SingleFlightCache (session-scoped compute-once memo)
"""

from dvspine.core.cache import SingleFlightCache
from dvspine.core.errors import (
    BadPayloadError,
    ConfigError,
    ConflictError,
    CredentialError,
    DvSpineError,
    EntityCreationError,
    ErrorCategory,
    ErrorContext,
    FailureKind,
    MissingConfigError,
    NotFoundError,
    PermissionDeniedError,
    ServerError,
    StoreError,
    StoreNetworkError,
    StoreTimeoutError,
    TransientStoreError,
    UnidentifiableBadPayloadError,
    classify_status,
    error_for_status,
    failure_kind_of,
)
from dvspine.core.logging import LogContext, configure_logging, get_logger
from dvspine.core.settings import StoreSettings, clear_settings_cache, get_settings

__all__ = [
    "SingleFlightCache",
    "BadPayloadError",
    "ConfigError",
    "ConflictError",
    "CredentialError",
    "DvSpineError",
    "EntityCreationError",
    "ErrorCategory",
    "ErrorContext",
    "FailureKind",
    "MissingConfigError",
    "NotFoundError",
    "PermissionDeniedError",
    "ServerError",
    "StoreError",
    "StoreNetworkError",
    "StoreTimeoutError",
    "TransientStoreError",
    "UnidentifiableBadPayloadError",
    "classify_status",
    "error_for_status",
    "failure_kind_of",
    "LogContext",
    "configure_logging",
    "get_logger",
    "StoreSettings",
    "clear_settings_cache",
    "get_settings",
]
