# Overview: Structured operation results; the boundary between services and callers.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from .errors import InfrastructureError, StockPilotError
from .extensions import db

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """
    Outcome of one service operation.

    success=True carries data; success=False carries error (human-readable),
    kind (machine-readable category) and, for validation failures,
    field_errors keyed by field path (e.g. "items.0.quantity").
    """
    success: bool
    data: Any = None
    error: str | None = None
    kind: str | None = None
    field_errors: dict[str, list[str]] = field(default_factory=dict)
    details: dict = field(default_factory=dict)
    status_code: int = 200

    @classmethod
    def ok(cls, data: Any = None, status_code: int = 200) -> "ActionResult":
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(cls, exc: StockPilotError) -> "ActionResult":
        return cls(
            success=False,
            error=exc.message,
            kind=exc.kind,
            field_errors=getattr(exc, "field_errors", {}) or {},
            details=exc.details,
            status_code=exc.status_code,
        )

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data}
        body: dict = {"success": False, "error": self.error, "kind": self.kind}
        if self.field_errors:
            body["field_errors"] = self.field_errors
        if self.details:
            body["details"] = self.details
        return body

    def to_response(self):
        return self.to_dict(), self.status_code


def run_action(func: Callable[..., Any], *args, success_status: int = 200, **kwargs) -> ActionResult:
    """
    Run a service call and convert its outcome into an ActionResult.

    Typed failures become failed results as-is. Anything else is logged with
    its traceback and reported as a generic infrastructure failure. The
    session is rolled back on every failure so no partial write survives.
    """
    try:
        return ActionResult.ok(func(*args, **kwargs), status_code=success_status)
    except StockPilotError as exc:
        db.session.rollback()
        return ActionResult.fail(exc)
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected failure in %s", getattr(func, "__name__", repr(func)))
        return ActionResult.fail(InfrastructureError())
