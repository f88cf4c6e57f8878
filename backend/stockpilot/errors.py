# Overview: Typed failures raised by services and converted to structured results at the boundary.

"""
StockPilot failure taxonomy.

Every failure a caller can act on is a StockPilotError subclass carrying:
- kind: stable machine-readable category
- status_code: HTTP status used by the JSON API
- message: human-readable text safe to show to the user

Anything that is not a StockPilotError is unexpected; the boundary logs it
and reports a generic InfrastructureError instead.
"""

from __future__ import annotations


class StockPilotError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(StockPilotError):
    """Malformed or missing input, reported field by field."""
    kind = "validation"
    status_code = 422

    def __init__(self, message: str = "Validation failed", field_errors: dict[str, list[str]] | None = None):
        super().__init__(message)
        self.field_errors = field_errors or {}


class ConflictError(StockPilotError):
    """409-level business rule conflict (e.g., duplicate category name)."""
    kind = "conflict"
    status_code = 409


class NotFoundError(StockPilotError):
    kind = "not_found"
    status_code = 404


class InvalidTransitionError(ConflictError):
    """Order status change not allowed from the current status."""


class InsufficientStockError(StockPilotError):
    """Batch allocation could not satisfy the requested quantity."""
    kind = "insufficient_stock"
    status_code = 409

    def __init__(self, *, product_id: int, product_name: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.shortfall = max(requested - available, 0)
        super().__init__(
            f"Insufficient stock for product {product_name}. "
            f"Available: {available}, Requested: {requested}.",
            details={
                "product_id": product_id,
                "requested": requested,
                "available": available,
                "shortfall": self.shortfall,
            },
        )


class MalformedRequestError(ValidationError):
    """Request body could not be parsed at all."""
    status_code = 400


class PermissionDeniedError(StockPilotError):
    kind = "permission"
    status_code = 403


class AuthenticationError(StockPilotError):
    kind = "authentication"
    status_code = 401


class InfrastructureError(StockPilotError):
    """Store or collaborator unavailable; message never carries internals."""
    kind = "infrastructure"
    status_code = 500

    def __init__(self, message: str = "Something went wrong on our side. Please try again.", status_code: int | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class StaleStockError(Exception):
    """A conditional stock update lost a race; the unit of work is retried."""
