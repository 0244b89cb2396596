"""Error Hierarchy: verifies codes, categories, HTTP status and retryability.

Tests cover:
    - Every error is a LedgerError with a distinct class
    - NotFound is permanent; Database and Concurrency errors are retryable
    - to_response() exposes identifying keys but no debug info
"""

import pytest

from flyerledger.core.errors import (
    ConcurrencyError,
    DatabaseError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    InvalidStateError,
    LedgerError,
    PriceWindowConflictError,
    ResourceNotFoundError,
    ValidationError,
)


def test_not_found_message_and_status():
    err = ResourceNotFoundError("Flyer", "12")
    assert err.message == "Flyer '12' not found"
    assert err.code == "RESOURCE_NOT_FOUND"
    assert err.http_status == 404
    assert err.retryable is False


def test_invalid_state_carries_reason_and_status():
    err = InvalidStateError("nope", "NOT_PENDING", "completed")
    assert err.code == "INVALID_STATE"
    assert err.reason_code == "NOT_PENDING"
    assert err.current_status == "completed"
    assert err.category == ErrorCategory.BUSINESS_RULE
    assert err.severity == ErrorSeverity.WARNING


def test_database_error_is_retryable_and_names_operation():
    err = DatabaseError("connection lost", "start_processing")
    assert err.retryable is True
    assert err.http_status == 503
    assert err.message == "Database start_processing failed: connection lost"
    assert err.context.operation == "start_processing"


def test_database_error_keeps_existing_operation_in_context():
    ctx = ErrorContext(operation="archive_older_than")
    err = DatabaseError("boom", "commit", ctx)
    assert err.context.operation == "archive_older_than"


def test_concurrency_error_is_retryable_conflict():
    err = ConcurrencyError("stale")
    assert err.retryable is True
    assert err.category == ErrorCategory.CONFLICT


@pytest.mark.parametrize("error", [
    ValidationError("bad", "field"),
    ResourceNotFoundError("Flyer", "1"),
    InvalidStateError("bad", "X"),
    PriceWindowConflictError("overlap"),
    ConcurrencyError("stale"),
    DatabaseError("down", "op"),
])
def test_all_errors_share_base(error):
    assert isinstance(error, LedgerError)


def test_error_types_are_distinguishable():
    with pytest.raises(ResourceNotFoundError):
        raise ResourceNotFoundError("Flyer", "1")
    assert not issubclass(ResourceNotFoundError, InvalidStateError)
    assert not issubclass(InvalidStateError, DatabaseError)


def test_to_response_includes_context_keys_only():
    ctx = ErrorContext(
        operation="get_current_price", product_master_id=42, store_id=1,
        debug_info={"exception": "OperationalError"},
    )
    body = ResourceNotFoundError("Current price", "x", ctx).to_response()["error"]
    assert body["code"] == "RESOURCE_NOT_FOUND"
    assert body["retryable"] is False
    assert body["context"] == {
        "operation": "get_current_price", "product_master_id": 42, "store_id": 1,
    }
    assert "debug_info" not in body
    assert "OperationalError" not in str(body)
