"""
Core error taxonomy.

Every failure raised by the engines and workflows derives from CoreError and
carries a stable `kind` plus the HTTP status the boundary layer maps it to.

RETRY POLICY:
- TransientStoreFailure is the only retryable kind (lock timeout, deadlock,
  lost insert race). Retrying is the caller's job (see concurrency.run_with_retry).
- Everything else is a permanent business-rule or client error.
"""
from __future__ import annotations


class CoreError(Exception):
    """Base class for all core failures."""
    kind = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class ValidationError(CoreError):
    """400-level input problem (non-positive amounts, empty item lists...)."""
    kind = "validation"
    status_code = 400


class NotFoundError(CoreError):
    """Referenced scope/account/request/product does not exist."""
    kind = "not_found"
    status_code = 404


class InvalidStateError(CoreError):
    """Operation attempted from a state that does not permit it."""
    kind = "invalid_state"
    status_code = 409


class UnauthorizedError(CoreError):
    """Caller's scope is not the counterpart required for the action."""
    kind = "unauthorized"
    status_code = 403


class InvalidHierarchyError(CoreError):
    """Scope levels do not allow the requested relationship."""
    kind = "invalid_hierarchy"
    status_code = 400


class InsufficientBalanceError(CoreError):
    kind = "insufficient_balance"
    status_code = 409

    def __init__(self, message: str, *, available_cents: int, requested_cents: int):
        super().__init__(message)
        self.available_cents = available_cents
        self.requested_cents = requested_cents

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "available_cents": self.available_cents,
            "requested_cents": self.requested_cents,
        }


class InsufficientStockError(CoreError):
    kind = "insufficient_stock"
    status_code = 409

    def __init__(self, message: str, *, available: int, requested: int):
        super().__init__(message)
        self.available = available
        self.requested = requested

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "available": self.available,
            "requested": self.requested,
        }


class TransientStoreFailure(CoreError):
    """Lock timeout, deadlock, connectivity or lost insert race. Safe to retry."""
    kind = "transient"
    status_code = 503
