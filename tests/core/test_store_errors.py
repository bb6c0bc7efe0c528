"""Tests for dvspine.core.errors — status classification and the error hierarchy."""

from __future__ import annotations

import pytest

from dvspine.core.errors import (
    BadPayloadError,
    ConfigError,
    ConflictError,
    CredentialError,
    DvSpineError,
    EntityCreationError,
    ErrorCategory,
    FailureKind,
    MissingConfigError,
    NotFoundError,
    PermissionDeniedError,
    ServerError,
    StoreError,
    StoreNetworkError,
    StoreTimeoutError,
    classify_status,
    error_for_status,
    failure_kind_of,
)


class TestClassifyStatus:
    """Non-2xx status → FailureKind."""

    @pytest.mark.parametrize(
        "status,kind",
        [
            (400, FailureKind.BAD_PAYLOAD),
            (401, FailureKind.PERMISSION_DENIED),
            (403, FailureKind.PERMISSION_DENIED),
            (404, FailureKind.NOT_FOUND),
            (409, FailureKind.CONFLICT),
            (500, FailureKind.SERVER_ERROR),
            (503, FailureKind.SERVER_ERROR),
            (412, FailureKind.REJECTED),
            (429, FailureKind.REJECTED),
        ],
    )
    def test_mapping(self, status, kind):
        assert classify_status(status) is kind


class TestErrorForStatus:
    """error_for_status picks the matching StoreError subclass."""

    @pytest.mark.parametrize(
        "status,cls",
        [
            (403, PermissionDeniedError),
            (404, NotFoundError),
            (400, BadPayloadError),
            (409, ConflictError),
            (502, ServerError),
        ],
    )
    def test_subclass(self, status, cls):
        error = error_for_status(status, "boom", diagnostic="raw text")
        assert type(error) is cls
        assert error.status == status
        assert error.diagnostic == "raw text"

    def test_unknown_status_is_plain_store_error(self):
        error = error_for_status(418, "teapot")
        assert type(error) is StoreError
        assert error.failure_kind is FailureKind.REJECTED

    def test_context_goes_to_metadata(self):
        error = error_for_status(404, "missing", entity="toba_batch")
        assert error.to_dict()["context"]["entity"] == "toba_batch"

    def test_to_dict_includes_status_and_kind(self):
        d = error_for_status(403, "denied", diagnostic="403 Forbidden").to_dict()
        assert d["error_type"] == "PermissionDeniedError"
        assert d["failure_kind"] == "PERMISSION_DENIED"
        assert d["status"] == 403
        assert d["category"] == "AUTH"


class TestHierarchy:
    """Categories, retryability and kinds of the concrete errors."""

    def test_base_defaults(self):
        error = DvSpineError("x")
        assert error.category is ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.message == "x"

    def test_transient_errors_are_retryable(self):
        assert StoreNetworkError("down").retryable is True
        assert StoreTimeoutError("slow").retryable is True
        assert ServerError("500").retryable is True

    def test_permission_denied_not_retryable(self):
        assert PermissionDeniedError("no").retryable is False

    def test_failure_kind_of_transport_errors(self):
        assert failure_kind_of(StoreTimeoutError("t")) is FailureKind.SERVER_ERROR
        assert failure_kind_of(RuntimeError("x")) is FailureKind.SERVER_ERROR
        assert failure_kind_of(ConflictError("c")) is FailureKind.CONFLICT

    def test_failure_kind_of_credential_error(self):
        assert failure_kind_of(CredentialError("token expired")) is FailureKind.PERMISSION_DENIED

    def test_entity_creation_error_keeps_diagnostic(self):
        error = EntityCreationError("failed", last_diagnostic="Unbound action (FQ name): 400 nope")
        assert error.category is ErrorCategory.PROVISIONING
        assert error.last_diagnostic.endswith("400 nope")

    def test_missing_config(self):
        error = MissingConfigError("access_token")
        assert isinstance(error, ConfigError)
        assert error.key == "access_token"
        assert "access_token" in str(error)

    def test_credential_error_category(self):
        assert CredentialError("no token").category is ErrorCategory.AUTH

    def test_cause_chained(self):
        root = OSError("reset")
        error = StoreNetworkError("failed", cause=root)
        assert error.__cause__ is root
        assert error.to_dict()["cause"] == "reset"

    def test_bad_payload_field(self):
        error = BadPayloadError("bad", field="toba_bogus", status=400)
        assert error.to_dict()["field"] == "toba_bogus"
