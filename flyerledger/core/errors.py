"""Error Hierarchy: typed, categorized exceptions for the flyer lifecycle and price ledger.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - NotFound, InvalidState and Internal are distinct classes: callers branch on type,
      never on message text
    - ErrorContext carries the operation name and identifying keys (flyer_id,
      product_master_id, store_id, record_id) for diagnosis
    - No driver or SQL details leaked in message; those go to debug_info only

Design Decisions:
    - Single hierarchy with LedgerError base: one except clause catches everything the core raises
    - retryable flag on the class: ResourceNotFoundError is permanent, DatabaseError and
      ConcurrencyError may succeed on retry
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    INTERNAL = "internal"
    CONFLICT = "conflict"


@dataclass
class ErrorContext:
    """Structured context: what operation, on what key, failed."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    operation: str | None = None
    flyer_id: int | None = None
    product_master_id: int | None = None
    store_id: int | None = None
    record_id: int | None = None
    debug_info: dict[str, Any] | None = None

    def keys(self) -> dict[str, Any]:
        """Identifying keys that are set, for logs and responses."""
        return {
            name: value for name, value in (
                ("operation", self.operation),
                ("flyer_id", self.flyer_id),
                ("product_master_id", self.product_master_id),
                ("store_id", self.store_id),
                ("record_id", self.record_id),
            ) if value is not None
        }


class LedgerError(Exception):
    """Base exception for all flyer lifecycle and price ledger errors."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "retryable": self.retryable,
                "timestamp": self.context.timestamp.isoformat(),
                "context": self.context.keys(),
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class ValidationError(LedgerError):
    """Caller supplied an argument the core cannot act on."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class ResourceNotFoundError(LedgerError):
    """Requested entity does not exist, or no record satisfies a temporal query."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class InvalidStateError(LedgerError):
    """A state-machine guard rejected the transition. Nothing was written."""
    def __init__(
        self,
        message: str,
        reason_code: str,
        current_status: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "INVALID_STATE", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 409,
        )
        self.reason_code = reason_code
        self.current_status = current_status


class PriceWindowConflictError(LedgerError):
    """A new open price window would start before the key's existing open window."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "PRICE_WINDOW_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


class ConcurrencyError(LedgerError):
    """Concurrent modification detected (optimistic version mismatch)."""
    retryable = True

    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONCURRENCY_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(LedgerError):
    """Database operation failed."""
    retryable = True

    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.operation = ctx.operation or operation
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, ctx, 503,
        )
        self.operation = operation
